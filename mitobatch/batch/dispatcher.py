"""
Bounded-concurrency execution of one pipeline invocation per manifest entry.
"""
import subprocess
from concurrent.futures import Future
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import wait as wait_for_futures
from datetime import datetime
from functools import partial
from os import makedirs
from os.path import dirname
from os.path import exists
from threading import Lock
from typing import Type

from mitobatch.batch.manifest import Manifest
from mitobatch.batch.manifest import ManifestEntry
from mitobatch.batch.manifest import write_unit_manifest_lines
from mitobatch.batch.resources import ResourceBudget
from mitobatch.batch.invocation import Invocation
from mitobatch.batch.invocation import InvocationBuilder
from mitobatch.batch.invocation import PipelineInvocation
from mitobatch.batch.tracker import CompletionTracker
from mitobatch.batch.tracker import ExitStatus
from mitobatch.batch.tracker import JobResult
from mitobatch.batch.cancellation import CancellationManager
from mitobatch.batch.errors import DuplicateResultError
from mitobatch.batch.errors import UnitFailure
from mitobatch.standalone_utilities.log_formats import colorized_logger

logger = colorized_logger(__name__)


class JobDispatcher:
    """Runs every manifest entry on a fixed pool of `concurrency` workers. Entries are submitted
    in manifest order. Each worker handles one entry end to end and delivers exactly one result
    to the tracker; a unit's failure never reaches its siblings or the caller.
    """

    def __init__(
        self,
        manifest: Manifest,
        budget: ResourceBudget,
        builder: InvocationBuilder,
        tracker: CompletionTracker,
        cancellation: CancellationManager,
        categories: tuple[str, ...] = (),
        record_suffix: str = 'vcf',
        unit_job: Type[PipelineInvocation] = PipelineInvocation,
    ):
        self.manifest = manifest
        self.budget = budget
        self.builder = builder
        self.tracker = tracker
        self.cancellation = cancellation
        self.categories = categories
        self.record_suffix = record_suffix
        self.unit_job = unit_job
        self._executor: ThreadPoolExecutor | None = None
        self._futures: list[Future] = []
        self._lock = Lock()
        self._in_flight = 0
        self.peak_in_flight = 0

    def plan(self) -> list[Invocation]:
        return [self.builder.build(entry, self.budget) for entry in self.manifest]

    def log_plan(self) -> None:
        for invocation in self.plan():
            logger.info('[%s] (cd %s && %s)', invocation.sample_id,
                        invocation.quoted_working_directory, invocation.shell_command)

    def dispatch(self) -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=self.budget.concurrency,
            thread_name_prefix='mitobatch-unit',
        )
        logger.info('Dispatching %s units on %s workers.', len(self.manifest),
                    self.budget.concurrency)
        for entry in self.manifest:
            future = self._executor.submit(self._work, entry)
            future.add_done_callback(partial(self._check_delivered, entry))
            self._futures.append(future)

    def wait(self, timeout: float | None = None) -> bool:
        """True once every submitted entry has left its worker."""
        _, not_done = wait_for_futures(self._futures, timeout=timeout)
        return len(not_done) == 0

    def shutdown(self, cancel_pending: bool = False) -> None:
        if self._executor is None:
            return
        self._executor.shutdown(wait=True, cancel_futures=cancel_pending)
        self._executor = None

    def _work(self, entry: ManifestEntry) -> JobResult | None:
        if self.cancellation.is_cancelled():
            logger.debug('Not starting %s; the batch was cancelled.', entry.sample_id)
            return None
        with self._lock:
            self._in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self._in_flight)
        try:
            result = self._execute(entry)
        finally:
            with self._lock:
                self._in_flight -= 1
        self.tracker.submit(result)
        return result

    def _prepare(self, entry: ManifestEntry) -> None:
        makedirs(dirname(entry.output_stem), exist_ok=True)
        write_unit_manifest_lines(entry)

    def _execute(self, entry: ManifestEntry) -> JobResult:
        started_at = datetime.now()
        job = None
        try:
            self._prepare(entry)
            invocation = self.builder.build(entry, self.budget)
            logger.debug('[%s] %s', entry.sample_id, invocation.shell_command)
            job = self.unit_job(entry, invocation, self.cancellation)
            code = job.run()
        except UnitFailure as failure:
            logger.error(failure.message)
            return self._result(entry, ExitStatus.failure(failure.code), started_at,
                                diagnostic=failure.message)
        except (OSError, subprocess.SubprocessError) as error:
            message = f'Unit {entry.sample_id} failed: {error}'
            logger.error(message)
            diagnostic = message if job is None or job.diagnostic == '' else job.diagnostic
            return self._result(entry, ExitStatus.failure(None), started_at, diagnostic=diagnostic)
        diagnostic = job.diagnostic
        if code == 0:
            logger.info('Unit %s succeeded.', entry.sample_id)
            return self._result(entry, ExitStatus.success(), started_at,
                                output_paths=self._produced_outputs(entry))
        if self.cancellation.is_cancelled():
            logger.warning('Unit %s was cancelled (exit code %s).', entry.sample_id, code)
            return self._result(entry, ExitStatus.cancelled(code), started_at,
                                diagnostic=diagnostic)
        logger.error('Unit %s failed with exit code %s. See %s', entry.sample_id, code,
                     entry.log_file)
        return self._result(entry, ExitStatus.failure(code), started_at, diagnostic=diagnostic)

    def _produced_outputs(self, entry: ManifestEntry) -> tuple[str, ...]:
        paths = [entry.intermediate_path(category, self.record_suffix) for category in self.categories]
        return tuple(path for path in paths if exists(path))

    @staticmethod
    def _result(entry, exit_status, started_at, output_paths=(), diagnostic='') -> JobResult:
        return JobResult(
            entry=entry,
            exit_status=exit_status,
            started_at=started_at,
            finished_at=datetime.now(),
            output_paths=output_paths,
            diagnostic=diagnostic,
            log_path=entry.log_file,
        )

    def _check_delivered(self, entry: ManifestEntry, future: Future) -> None:
        """Converts an unexpected worker exception into a failure result for its entry."""
        if future.cancelled():
            return
        error = future.exception()
        if error is None or self.tracker.result_for(entry) is not None:
            return
        logger.error('Worker for %s raised %s: %s', entry.sample_id, type(error).__name__, error)
        now = datetime.now()
        try:
            self.tracker.submit(JobResult(
                entry=entry,
                exit_status=ExitStatus.failure(None),
                started_at=now,
                finished_at=now,
                diagnostic=f'{type(error).__name__}: {error}',
                log_path=entry.log_file,
            ))
        except DuplicateResultError as duplicate:
            logger.error(duplicate.message)
