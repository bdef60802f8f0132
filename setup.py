import setuptools
from os.path import join, dirname

def get_file_contents(filename):
    package_directory = dirname(__file__)
    with open(join(package_directory, filename), 'r', encoding='utf-8') as file:
        contents = file.read()
    return contents

long_description = """Batch orchestration of per-sample MitoHPC analyses: discovery of sample
directories, partitioning of cores and memory across parallel jobs, containerized dispatch, and
order-stable merging of per-sample results.
"""
version = get_file_contents(join('mitobatch', 'version.txt')).strip()

setuptools.setup(
    name='mitobatch',
    version=version,
    description='Parallel batch runner for per-sample mitochondrial variant calling pipelines.',
    long_description=long_description,
    long_description_content_type='text/markdown',
    packages=[
        'mitobatch',
        'mitobatch.entry_point',
        'mitobatch.standalone_utilities',
        'mitobatch.batch',
        'mitobatch.batch.common',
        'mitobatch.batch.common.logging',
        'mitobatch.batch.component_interfaces',
        'mitobatch.batch.mitohpc',
        'mitobatch.batch.scripts',
    ],
    classifiers=[
        'Programming Language :: Python :: 3',
        'Topic :: Scientific/Engineering :: Bio-Informatics',
        'Intended Audience :: Science/Research',
    ],
    package_data={
        'mitobatch': [
            'version.txt',
        ],
        'mitobatch.batch.scripts': [
            'run.py',
            'build_manifest.py',
            'partition_resources.py',
            'scheduler_config.py',
            'merge_results.py',
            'compare_outputs.py',
        ],
        'mitobatch.batch': [
            'templates/scheduler.config.jinja',
            'templates/planned_invocations.sh.jinja',
        ],
    },
    python_requires='>=3.10',
    entry_points={
        'console_scripts' : [
            'mitobatch = mitobatch.entry_point.cli:main_program',
        ]
    },
    install_requires=[
        'attrs>=22.2.0',
        'Jinja2>=3.0.1',
        'pandas>=1.1.5',
    ],
    extras_require={
        'test': ['pytest>=7.0'],
    },
)
