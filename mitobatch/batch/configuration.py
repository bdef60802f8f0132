"""
Settings for one batch run, assembled from the pipeline profile's defaults, an optional
configuration file, and command-line values (in increasing precedence).

Configuration file format:

    [general]
    container_platform: {apptainer, singularity, docker, none} (default: apptainer)
    container_image: <image reference> (default: the profile's image)
    executable: <command run for each unit> (default: the profile's executable)
    jobs: <positive integer> (default: 1)
    output_base: <path> (default: <root>/batch_output)
    grace_period: <seconds> (default: 30)
    identifier_policy: {metadata-first, filename, strict} (default: metadata-first)
    oversubscription_factor: <positive integer> (default: 2)
    scheduler: {bash, slurm, sge} (default: bash)

    [merge]
    categories: <category names, separated by whitespace or commas>
"""
import re
from configparser import ConfigParser
from configparser import Error as ConfigParserError
from os.path import abspath
from os.path import exists
from os.path import expanduser
from os.path import join
from typing import Any

from attrs import define
from attrs import field

from mitobatch.batch import DEFAULT_PROFILE
from mitobatch.batch import get_profile
from mitobatch.batch.cancellation import DEFAULT_GRACE_PERIOD
from mitobatch.batch.invocation import CONTAINER_PLATFORMS
from mitobatch.batch.manifest import IDENTIFIER_POLICIES
from mitobatch.batch.resources import DEFAULT_OVERSUBSCRIPTION_FACTOR
from mitobatch.batch.resources import SCHEDULERS
from mitobatch.batch.resources import parse_positive_integer
from mitobatch.batch.resources import probe_total_cores
from mitobatch.batch.resources import read_core_override
from mitobatch.batch.errors import ConfigurationError
from mitobatch.standalone_utilities.log_formats import colorized_logger

logger = colorized_logger(__name__)

DEFAULT_OUTPUT_DIRECTORY = 'batch_output'
GENERAL_KEYS = (
    'container_platform',
    'container_image',
    'executable',
    'jobs',
    'output_base',
    'grace_period',
    'identifier_policy',
    'oversubscription_factor',
    'scheduler',
)
MERGE_KEYS = ('categories',)


@define(frozen=True)
class BatchSettings:
    """Immutable configuration of one batch run."""
    root: str
    output_base: str
    jobs: int
    total_cores: int
    container_platform: str
    container_image: str
    executable: str
    categories: tuple[str, ...] = field(converter=tuple)
    per_job_core_override: int | None = None
    grace_period: float = DEFAULT_GRACE_PERIOD
    identifier_policy: str = 'metadata-first'
    oversubscription_factor: int = DEFAULT_OVERSUBSCRIPTION_FACTOR
    scheduler: str = 'bash'
    profile: str = DEFAULT_PROFILE
    dry_run: bool = False
    verbose: bool = False


def parse_categories(value: str) -> tuple[str, ...]:
    categories = tuple(token for token in re.split(r'[\s,]+', value) if token != '')
    if len(categories) == 0:
        raise ConfigurationError('At least one merge category is required.')
    return categories


def parse_grace_period(value) -> float:
    try:
        seconds = float(value)
    except (TypeError, ValueError) as error:
        raise ConfigurationError(f'Grace period must be a number of seconds. Got {value!r}.') \
            from error
    if seconds < 0:
        raise ConfigurationError(f'Grace period must not be negative. Got {value!r}.')
    return seconds


def _check_choice(value: str, choices: tuple[str, ...], description: str) -> str:
    if value not in choices:
        raise ConfigurationError(
            f'{description} must be one of {", ".join(choices)}. Got "{value}".'
        )
    return value


def read_configuration_file(config_file: str) -> dict[str, str]:
    """Values of the [general] and [merge] sections. Unknown keys are ignored with a warning."""
    if not exists(config_file):
        raise ConfigurationError(f'Configuration file does not exist: {config_file}')
    parser = ConfigParser()
    try:
        parser.read(config_file, encoding='utf-8')
    except ConfigParserError as error:
        raise ConfigurationError(f'Could not parse configuration file {config_file}: {error}') \
            from error
    values = {}
    for section, keys in (('general', GENERAL_KEYS), ('merge', MERGE_KEYS)):
        if not parser.has_section(section):
            continue
        for key, value in parser.items(section):
            if key not in keys:
                logger.warning('Ignoring unknown key "%s" in [%s] of %s.', key, section,
                               config_file)
                continue
            values[key] = value.strip()
    return values


def load_settings(
    root: str,
    config_file: str | None = None,
    overrides: dict[str, Any] | None = None,
    profile_name: str = DEFAULT_PROFILE,
    environment=None,
    total_cores: int | None = None,
) -> BatchSettings:
    """Builds the settings. Overrides with value None are treated as unset. The host core count
    and the per-job core override are read here, once per run.
    """
    profile = get_profile(profile_name)
    values: dict[str, Any] = {
        'container_platform': 'apptainer',
        'container_image': profile.image,
        'executable': profile.executable,
        'jobs': 1,
        'output_base': None,
        'grace_period': DEFAULT_GRACE_PERIOD,
        'identifier_policy': 'metadata-first',
        'oversubscription_factor': DEFAULT_OVERSUBSCRIPTION_FACTOR,
        'scheduler': 'bash',
        'categories': profile.categories,
    }
    if config_file is not None:
        from_file = read_configuration_file(config_file)
        if 'categories' in from_file:
            from_file['categories'] = parse_categories(from_file['categories'])
        values.update(from_file)
    if overrides is not None:
        values.update({key: value for key, value in overrides.items() if value is not None})

    if root is None or root == '':
        raise ConfigurationError('A root directory is required.')
    root = abspath(expanduser(root))
    output_base = values['output_base']
    if output_base is None or output_base == '':
        output_base = join(root, DEFAULT_OUTPUT_DIRECTORY)
    if total_cores is None:
        total_cores = probe_total_cores()
    categories = values['categories']
    if isinstance(categories, str):
        categories = parse_categories(categories)

    return BatchSettings(
        root=root,
        output_base=abspath(expanduser(output_base)),
        jobs=parse_positive_integer(values['jobs'], 'Number of jobs'),
        total_cores=parse_positive_integer(total_cores, 'Total cores'),
        container_platform=_check_choice(
            str(values['container_platform']).lower(), CONTAINER_PLATFORMS, 'Container platform',
        ),
        container_image=values['container_image'],
        executable=values['executable'],
        categories=categories,
        per_job_core_override=read_core_override(environment),
        grace_period=parse_grace_period(values['grace_period']),
        identifier_policy=_check_choice(
            values['identifier_policy'], IDENTIFIER_POLICIES, 'Identifier policy',
        ),
        oversubscription_factor=parse_positive_integer(
            values['oversubscription_factor'], 'Oversubscription factor',
        ),
        scheduler=_check_choice(values['scheduler'], SCHEDULERS, 'Scheduler'),
        profile=profile.name,
        dry_run=bool(values.get('dry_run', False)),
        verbose=bool(values.get('verbose', False)),
    )
