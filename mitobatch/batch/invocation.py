"""
Construction of one unit's pipeline command line and environment, and the unit job that runs it
while streaming its output.
"""
import os
import re
import shlex
import subprocess
from collections import deque
from importlib.resources import files
from os.path import isabs
from shutil import which

from attrs import define
from attrs import field
from jinja2 import Environment
from jinja2 import BaseLoader

from mitobatch.batch.component_interfaces.unit_job import UnitJob
from mitobatch.batch.manifest import ManifestEntry
from mitobatch.batch.resources import ResourceBudget
from mitobatch.batch.errors import ConfigurationError
from mitobatch.batch.errors import UnitFailure
from mitobatch.standalone_utilities.log_formats import colorized_logger

logger = colorized_logger(__name__)

CONTAINER_PLATFORMS = ('apptainer', 'singularity', 'docker', 'none')
DIAGNOSTIC_TAIL_LINES = 20


def _as_pairs(value) -> tuple[tuple[str, str], ...]:
    if isinstance(value, dict):
        value = value.items()
    return tuple((str(key), str(item)) for key, item in value)


@define(frozen=True)
class Invocation:
    """The complete, platform-specific command for one unit."""
    sample_id: str
    command: tuple[str, ...] = field(converter=tuple)
    environment: tuple[tuple[str, str], ...] = field(converter=_as_pairs)
    working_directory: str
    overlay_environment: bool = False

    @property
    def shell_command(self) -> str:
        tokens = [shlex.quote(token) for token in self.command]
        if self.overlay_environment:
            assignments = [f'{key}={shlex.quote(value)}' for key, value in self.environment]
            tokens = ['env'] + assignments + tokens
        return ' '.join(tokens)

    @property
    def quoted_working_directory(self) -> str:
        return shlex.quote(self.working_directory)

    def process_environment(self, base=None) -> dict[str, str]:
        """The environment of the child process. Container platforms receive the pipeline
        variables on their command line, so only the overlay case adds them here."""
        environment = dict(os.environ if base is None else base)
        if self.overlay_environment:
            environment.update(dict(self.environment))
        return environment


def pipeline_environment(entry: ManifestEntry, budget: ResourceBudget) -> tuple[tuple[str, str], ...]:
    return (
        ('HP_ADIR', entry.input_directory),
        ('HP_ODIR', entry.output_directory),
        ('HP_IN', entry.unit_manifest_file),
        ('HP_P', str(budget.per_job_cores)),
        ('HP_MM', budget.memory_string),
        ('HP_JOPT', budget.java_options),
    )


class InvocationBuilder:
    """Builds invocations for one container platform, image and pipeline executable."""

    def __init__(self, platform: str, image: str, executable: str):
        if platform not in CONTAINER_PLATFORMS:
            raise ConfigurationError(
                f'Container platform must be one of {", ".join(CONTAINER_PLATFORMS)}. '
                f'Got "{platform}".'
            )
        self.platform = platform
        self.image = image
        self.executable = executable

    def check_available(self) -> str:
        """Location of the program that will be run for every unit. Fails before any unit
        starts if it cannot be found."""
        program = self.executable if self.platform == 'none' else self.platform
        if self.platform == 'none' and isabs(program):
            if os.access(program, os.X_OK):
                return program
            located = None
        else:
            located = which(program)
        if located is None:
            raise ConfigurationError(
                f'"{program}" is not available. Install it or choose another container platform.'
            )
        logger.debug('Using %s for pipeline invocations.', located)
        return located

    def _docker_image(self) -> str:
        return re.sub(r'^docker://', '', self.image)

    def _bind_paths(self, entry: ManifestEntry) -> list[str]:
        paths = [entry.input_path]
        if entry.working_directory not in paths:
            paths.append(entry.working_directory)
        return paths

    def build(self, entry: ManifestEntry, budget: ResourceBudget) -> Invocation:
        environment = pipeline_environment(entry, budget)
        working_directory = entry.working_directory
        if self.platform in ('apptainer', 'singularity'):
            command = [self.platform, 'exec']
            for path in self._bind_paths(entry):
                command.extend(['--bind', f'{path}:{path}'])
            command.extend(['--pwd', working_directory])
            for key, value in environment:
                command.extend(['--env', f'{key}={value}'])
            command.extend([self.image, self.executable])
        elif self.platform == 'docker':
            command = ['docker', 'run', '--rm']
            for path in self._bind_paths(entry):
                command.extend(['-v', f'{path}:{path}'])
            command.extend(['-w', working_directory])
            for key, value in environment:
                command.extend(['-e', f'{key}={value}'])
            command.extend([self._docker_image(), self.executable])
        else:
            command = [self.executable]
        return Invocation(
            sample_id=entry.sample_id,
            command=command,
            environment=environment,
            working_directory=working_directory,
            overlay_environment=self.platform == 'none',
        )


def render_planned_invocations(invocations: list[Invocation], budget: ResourceBudget) -> str:
    """Shell listing of every planned invocation, in manifest order."""
    template_file = files('mitobatch.batch').joinpath('templates', 'planned_invocations.sh.jinja')
    environment = Environment(loader=BaseLoader())
    template = environment.from_string(template_file.read_text(encoding='utf-8'))
    contents = template.render(invocations=invocations, budget=budget)
    return re.sub(r'\n\n+', '\n', contents)


class PipelineInvocation(UnitJob):
    """Runs one unit's invocation to completion. Combined stdout/stderr is tagged with the sample
    identifier, logged line by line, and copied to the unit's log file.
    """

    def __init__(self, entry: ManifestEntry, invocation: Invocation, cancellation=None):
        self.entry = entry
        self.sample_id = entry.sample_id
        self.invocation = invocation
        self.cancellation = cancellation
        self.tail: deque[str] = deque(maxlen=DIAGNOSTIC_TAIL_LINES)

    @property
    def diagnostic(self) -> str:
        return '\n'.join(self.tail)

    def _start(self) -> subprocess.Popen:
        try:
            return subprocess.Popen(
                list(self.invocation.command),
                cwd=self.invocation.working_directory,
                env=self.invocation.process_environment(),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                text=True,
                errors='replace',
                bufsize=1,
                start_new_session=True,
            )
        except OSError as error:
            raise UnitFailure(f'Could not start the pipeline for {self.sample_id}: {error}') \
                from error

    def _run(self) -> int:
        with open(self.entry.log_file, 'wt', encoding='utf-8') as log:
            process = self._start()
            if self.cancellation is not None:
                self.cancellation.register_process(process)
            try:
                assert process.stdout is not None
                for line in process.stdout:
                    line = line.rstrip('\n')
                    log.write(line + '\n')
                    self.tail.append(line)
                    logger.info('[%s] %s', self.sample_id, line)
                code = process.wait()
            finally:
                if process.stdout is not None:
                    process.stdout.close()
                if process.poll() is None:
                    process.kill()
                    process.wait()
                if self.cancellation is not None:
                    self.cancellation.unregister_process(process)
        return code
