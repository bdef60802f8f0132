import os

import pytest

from mitobatch.batch.invocation import InvocationBuilder
from mitobatch.batch.invocation import PipelineInvocation
from mitobatch.batch.invocation import pipeline_environment
from mitobatch.batch.invocation import render_planned_invocations
from mitobatch.batch.manifest import write_unit_manifest_lines
from mitobatch.batch.resources import partition_resources
from mitobatch.batch.errors import ConfigurationError
from mitobatch.batch.errors import UnitFailure

from sample_trees import build_manifest


@pytest.fixture
def entry(abc_root, tmp_path):
    return build_manifest(abc_root, tmp_path / 'out')[0]


def test_pipeline_environment(entry):
    budget = partition_resources(8, 2)
    environment = dict(pipeline_environment(entry, budget))
    assert environment == {
        'HP_ADIR': os.path.join(entry.input_path, 'bams'),
        'HP_ODIR': os.path.join(entry.working_directory, 'out'),
        'HP_IN': os.path.join(entry.working_directory, 'in.txt'),
        'HP_P': '4',
        'HP_MM': '8G',
        'HP_JOPT': '-Xms8G -Xmx8G -XX:ParallelGCThreads=4',
    }


def test_apptainer_command(entry):
    builder = InvocationBuilder('apptainer', 'docker://ghcr.io/jlanej/mitohpc:main', 'mitohpc.sh')
    invocation = builder.build(entry, partition_resources(8, 2))
    command = list(invocation.command)
    assert command[:2] == ['apptainer', 'exec']
    assert f'{entry.input_path}:{entry.input_path}' in command
    assert f'{entry.working_directory}:{entry.working_directory}' in command
    assert command[command.index('--pwd') + 1] == entry.working_directory
    assert 'HP_P=4' in command
    assert 'HP_JOPT=-Xms8G -Xmx8G -XX:ParallelGCThreads=4' in command
    assert command[-2:] == ['docker://ghcr.io/jlanej/mitohpc:main', 'mitohpc.sh']
    assert not invocation.overlay_environment
    assert 'HP_P' not in invocation.process_environment(base={})


def test_docker_command_strips_transport(entry):
    builder = InvocationBuilder('docker', 'docker://ghcr.io/jlanej/mitohpc:main', 'mitohpc.sh')
    command = list(builder.build(entry, partition_resources(8, 2)).command)
    assert command[:3] == ['docker', 'run', '--rm']
    assert command[command.index('-w') + 1] == entry.working_directory
    assert 'HP_MM=8G' in command
    assert command[-2:] == ['ghcr.io/jlanej/mitohpc:main', 'mitohpc.sh']


def test_direct_command_overlays_environment(entry):
    builder = InvocationBuilder('none', '', '/opt/mitohpc.sh')
    invocation = builder.build(entry, partition_resources(8, 2))
    assert invocation.command == ('/opt/mitohpc.sh',)
    environment = invocation.process_environment(base={'PATH': '/bin'})
    assert environment['PATH'] == '/bin'
    assert environment['HP_IN'] == entry.unit_manifest_file
    assert invocation.shell_command.startswith('env HP_ADIR=')


def test_unknown_platform():
    with pytest.raises(ConfigurationError):
        InvocationBuilder('podman', 'image', 'mitohpc.sh')


def test_unavailable_executor(tmp_path):
    with pytest.raises(ConfigurationError):
        InvocationBuilder('none', '', str(tmp_path / 'absent.sh')).check_available()
    with pytest.raises(ConfigurationError):
        InvocationBuilder('none', '', 'surely-not-a-real-command-name').check_available()


def test_available_executor(fake_pipeline):
    assert InvocationBuilder('none', '', fake_pipeline).check_available() == fake_pipeline


def test_planned_invocations_listing(abc_root, tmp_path):
    manifest = build_manifest(abc_root, tmp_path / 'out')
    budget = partition_resources(8, 2)
    builder = InvocationBuilder('apptainer', 'image.sif', 'mitohpc.sh')
    listing = render_planned_invocations([builder.build(e, budget) for e in manifest], budget)
    assert listing.index('# a\n') < listing.index('# b\n') < listing.index('# c\n')
    assert listing.count('apptainer exec') == 3


def test_pipeline_output_is_tagged_and_logged(entry, fake_pipeline, caplog):
    os.makedirs(os.path.dirname(entry.output_stem))
    write_unit_manifest_lines(entry)
    invocation = InvocationBuilder('none', '', fake_pipeline).build(entry, partition_resources(8, 2))
    job = PipelineInvocation(entry, invocation)
    with caplog.at_level('INFO'):
        code = job.run()
    assert code == 0
    assert '[a] threads=4 memory=8G' in caplog.text
    with open(entry.log_file, 'rt', encoding='utf-8') as file:
        assert file.read().splitlines() == ['threads=4 memory=8G', 'finished']
    assert os.path.exists(entry.intermediate_path('mutect2.mutect2.05'))
    assert job.diagnostic.endswith('finished')


def test_missing_executable_is_unit_failure(entry, tmp_path):
    os.makedirs(entry.working_directory)
    invocation = InvocationBuilder('none', '', str(tmp_path / 'absent.sh')).build(
        entry, partition_resources(8, 2))
    with pytest.raises(UnitFailure):
        PipelineInvocation(entry, invocation).run()
