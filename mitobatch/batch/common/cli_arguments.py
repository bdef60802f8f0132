"""CLI arguments solicitation."""
import re
from typing import Literal
from typing import Union
from typing import get_args
from typing import cast
from argparse import ArgumentParser

from mitobatch.batch import get_profile_names
from mitobatch.batch import DEFAULT_PROFILE
from mitobatch.batch.invocation import CONTAINER_PLATFORMS
from mitobatch.batch.manifest import IDENTIFIER_POLICIES
from mitobatch.batch.resources import SCHEDULERS


SettingArgumentName = Literal['root', 'jobs', 'container image', 'container platform',
                              'executable', 'output base', 'verbose', 'dry run', 'grace period',
                              'identifier policy', 'profile', 'scheduler', 'total cores',
                              'categories']
FileArgumentName = Literal['config file', 'manifest file', 'run report file']


def add_argument(parser: ArgumentParser, name: Union[SettingArgumentName, FileArgumentName]):
    if name in get_args(FileArgumentName):
        add_file_argument(parser, cast(FileArgumentName, name))

    if name == 'root':
        parser.add_argument('-d', '--root', dest='root', type=str, required=True,
                            help='Root directory to search for sample directories containing '
                            'bams/ or crams/.')
    if name == 'jobs':
        parser.add_argument('-j', '--jobs', dest='jobs', type=str, default=None,
                            help='Number of samples to process in parallel (default: 1).')
    if name == 'container image':
        parser.add_argument('-c', '--container-image', dest='container_image', type=str,
                            default=None,
                            help='Container image reference (default: the profile\'s image).')
    if name == 'container platform':
        parser.add_argument('--container-platform', dest='container_platform',
                            choices=CONTAINER_PLATFORMS, default=None,
                            help='How the pipeline is run (default: apptainer).')
    if name == 'executable':
        parser.add_argument('--executable', dest='executable', type=str, default=None,
                            help='The pipeline command run for each sample.')
    if name == 'output base':
        parser.add_argument('-o', '--output-base', dest='output_base', type=str, default=None,
                            help='Base directory for outputs (default: <root>/batch_output).')
    if name == 'verbose':
        parser.add_argument('-v', '--verbose', dest='verbose', action='store_true', default=False,
                            help='Enable debug logging.')
    if name == 'dry run':
        parser.add_argument('-n', '--dry-run', dest='dry_run', action='store_true', default=False,
                            help='Show the commands that would be executed without running them.')
    if name == 'grace period':
        parser.add_argument('--grace-period', dest='grace_period', type=str, default=None,
                            help='Seconds to wait for terminated pipelines before killing them '
                            '(default: 30).')
    if name == 'identifier policy':
        parser.add_argument('--identifier-policy', dest='identifier_policy',
                            choices=IDENTIFIER_POLICIES, default=None,
                            help='How sample identifiers from read-group metadata and file names '
                            'are reconciled (default: metadata-first).')
    if name == 'profile':
        parser.add_argument('--profile', dest='profile', choices=get_profile_names(),
                            default=DEFAULT_PROFILE)
    if name == 'scheduler':
        parser.add_argument('--scheduler', dest='scheduler', choices=SCHEDULERS, default=None,
                            help='Job scheduler for which to render resource requests.')
    if name == 'total cores':
        parser.add_argument('--total-cores', dest='total_cores', type=str, default=None,
                            help='Total cores available (default: probed from the host).')
    if name == 'categories':
        parser.add_argument('--categories', dest='categories', nargs='+', default=None,
                            help='Merge categories (default: the profile\'s categories).')


def add_file_argument(parser, name: FileArgumentName):
    hyphens = re.sub(' ', '-', name)
    snake = re.sub(' ', '_', name)
    parser.add_argument(f'--{hyphens}', dest=f'{snake}', type=str, required=False)
