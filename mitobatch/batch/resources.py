"""
Partitioning of host cores and memory across concurrently running units, and rendering of the
corresponding job-scheduler resource requests.
"""
import os
import re
from importlib.resources import files

from attrs import define
from attrs import field
from jinja2 import Environment
from jinja2 import BaseLoader

from mitobatch.batch.errors import ConfigurationError
from mitobatch.standalone_utilities.log_formats import colorized_logger

logger = colorized_logger(__name__)

DEFAULT_TOTAL_CORES = 4
MEMORY_GB_PER_CORE = 2
DEFAULT_OVERSUBSCRIPTION_FACTOR = 2
OVERRIDE_VARIABLE = 'HP_P'
SCHEDULERS = ('bash', 'slurm', 'sge')

_POSITIVE_INTEGER = re.compile(r'^[1-9][0-9]*$')


@define(frozen=True)
class ResourceBudget:
    """Per-job allocation for one batch run. Computed once, read by every worker."""
    total_cores: int
    concurrency: int
    per_job_cores: int
    per_job_memory_gb: int
    override_applied: bool = False
    warnings: tuple[str, ...] = field(default=(), converter=tuple)

    @property
    def effective_total(self) -> int:
        return self.concurrency * self.per_job_cores

    @property
    def memory_string(self) -> str:
        return f'{self.per_job_memory_gb}G'

    @property
    def java_options(self) -> str:
        memory = self.memory_string
        return f'-Xms{memory} -Xmx{memory} -XX:ParallelGCThreads={self.per_job_cores}'


def parse_positive_integer(value, description: str) -> int:
    """Validates a user-supplied count. Accepts positive ints and their decimal spellings."""
    if isinstance(value, bool):
        raise ConfigurationError(f'{description} must be a positive integer. Got {value!r}.')
    if isinstance(value, int):
        if value < 1:
            raise ConfigurationError(f'{description} must be a positive integer. Got {value}.')
        return value
    if isinstance(value, str) and _POSITIVE_INTEGER.match(value.strip()):
        return int(value.strip())
    raise ConfigurationError(f'{description} must be a positive integer. Got {value!r}.')


def probe_total_cores() -> int:
    """Cores available to this process, as `nproc` reports them."""
    try:
        count = len(os.sched_getaffinity(0))
    except (AttributeError, OSError):
        count = os.cpu_count() or 0
    if count < 1:
        logger.debug('Could not determine the host core count; assuming %s.', DEFAULT_TOTAL_CORES)
        return DEFAULT_TOTAL_CORES
    return count


def read_core_override(environment=None) -> int | None:
    """The user's per-job core override from the environment, if set."""
    if environment is None:
        environment = os.environ
    value = environment.get(OVERRIDE_VARIABLE, '')
    if value.strip() == '':
        return None
    return parse_positive_integer(value, f'{OVERRIDE_VARIABLE} (per-job core override)')


def partition_resources(
    total_cores,
    requested_concurrency,
    override_per_job_cores=None,
    oversubscription_factor: int = DEFAULT_OVERSUBSCRIPTION_FACTOR,
) -> ResourceBudget:
    """Computes the per-job allocation. Pure: identical inputs give identical budgets, and
    warnings are returned in the budget rather than logged.
    """
    total_cores = parse_positive_integer(total_cores, 'Total cores')
    concurrency = parse_positive_integer(requested_concurrency, 'Number of jobs')
    warnings = []
    if override_per_job_cores is None:
        per_job_cores = max(1, total_cores // concurrency)
        override_applied = False
        if concurrency > total_cores:
            warnings.append(
                f'Number of jobs ({concurrency}) exceeds available cores ({total_cores}); each job '
                'still gets 1 core.'
            )
    else:
        per_job_cores = parse_positive_integer(override_per_job_cores, 'Per-job cores')
        override_applied = True
        effective_total = concurrency * per_job_cores
        if effective_total > oversubscription_factor * total_cores:
            warnings.append(
                'Potential thread oversubscription detected! '
                f'Available cores: {total_cores}. Potential threads: {effective_total}. '
                f'Consider reducing the number of jobs or setting {OVERRIDE_VARIABLE} to a lower '
                'value.'
            )
    return ResourceBudget(
        total_cores=total_cores,
        concurrency=concurrency,
        per_job_cores=per_job_cores,
        per_job_memory_gb=MEMORY_GB_PER_CORE * per_job_cores,
        override_applied=override_applied,
        warnings=tuple(warnings),
    )


def log_budget(budget: ResourceBudget) -> None:
    if budget.override_applied:
        logger.info('Using user-specified %s=%s threads per sample.', OVERRIDE_VARIABLE,
                    budget.per_job_cores)
    else:
        logger.info('Setting %s=%s threads per sample (total cores: %s, parallel samples: %s).',
                    OVERRIDE_VARIABLE, budget.per_job_cores, budget.total_cores,
                    budget.concurrency)
    logger.info('Per-sample memory: %s. Total potential thread usage: %s.',
                budget.memory_string, budget.effective_total)
    for warning in budget.warnings:
        logger.warning(warning)


def memory_breakdown(budget: ResourceBudget) -> list[tuple[str, str]]:
    """How the per-job memory is spent by the pipeline's tools."""
    per_thread = f'{MEMORY_GB_PER_CORE}G'
    safe = MEMORY_GB_PER_CORE * budget.per_job_cores == budget.per_job_memory_gb
    return [
        ('Threads (HP_P)', str(budget.per_job_cores)),
        ('Total memory (HP_MM)', budget.memory_string),
        ('Per-thread memory', per_thread),
        ('Job schedulers (SLURM/SGE)', budget.memory_string),
        ('samtools sort total usage',
         f'{budget.per_job_cores} x {per_thread} = {budget.per_job_memory_gb}G'),
        ('Java options (HP_JOPT)', budget.java_options),
        ('Memory safety check', 'SAFE' if safe else 'ISSUE'),
    ]


def _template_contents(filename: str) -> str:
    return files('mitobatch.batch').joinpath('templates', filename).read_text(encoding='utf-8')


def render_scheduler_config(
    budget: ResourceBudget,
    scheduler: str = 'bash',
    job_name: str = 'HP_$$',
) -> str:
    """The job-submission lines (HP_SH, HP_SHS) requesting this budget's per-job resources."""
    if scheduler not in SCHEDULERS:
        raise ConfigurationError(
            f'Scheduler must be one of {", ".join(SCHEDULERS)}. Got "{scheduler}".'
        )
    environment = Environment(loader=BaseLoader())
    template = environment.from_string(_template_contents('scheduler.config.jinja'))
    contents = template.render(
        scheduler=scheduler,
        job_name=job_name,
        cores=budget.per_job_cores,
        memory=budget.memory_string,
        java_options=budget.java_options,
    )
    return re.sub(r'\n\n+', '\n', contents).lstrip('\n')
