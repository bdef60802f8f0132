"""
Collection of per-unit results from concurrently running workers, and the batch report built from
them in manifest order.
"""
from datetime import datetime
from enum import Enum
from threading import Condition

from attrs import define
from attrs import field
from pandas import DataFrame
from pandas import read_csv

from mitobatch.batch.manifest import Manifest
from mitobatch.batch.manifest import ManifestEntry
from mitobatch.batch.errors import ConfigurationError
from mitobatch.batch.errors import DuplicateResultError
from mitobatch.batch.errors import ExitCode
from mitobatch.batch.common.logging.fractional_progress_reporter import FractionalProgressReporter
from mitobatch.standalone_utilities.log_formats import colorized_logger

logger = colorized_logger(__name__)


class ExitKind(Enum):
    SUCCESS = 'succeeded'
    FAILURE = 'failed'
    CANCELLED = 'cancelled'


NOT_RUN = 'not run'


@define(frozen=True)
class ExitStatus:
    """Terminal state of one unit. Nonzero codes are kept verbatim."""
    kind: ExitKind
    code: int | None = None

    @classmethod
    def success(cls) -> 'ExitStatus':
        return cls(ExitKind.SUCCESS, 0)

    @classmethod
    def failure(cls, code: int | None) -> 'ExitStatus':
        return cls(ExitKind.FAILURE, code)

    @classmethod
    def cancelled(cls, code: int | None = None) -> 'ExitStatus':
        return cls(ExitKind.CANCELLED, code)

    @property
    def succeeded(self) -> bool:
        return self.kind == ExitKind.SUCCESS


@define(frozen=True)
class JobResult:
    """The terminal outcome of one unit's pipeline invocation."""
    entry: ManifestEntry
    exit_status: ExitStatus
    started_at: datetime
    finished_at: datetime
    output_paths: tuple[str, ...] = field(default=(), converter=tuple)
    diagnostic: str = ''
    log_path: str = ''

    @property
    def sample_id(self) -> str:
        return self.entry.sample_id

    @property
    def elapsed_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()


class BatchStatus(Enum):
    SUCCEEDED = 'succeeded'
    COMPLETED_WITH_ERRORS = 'completed with errors'
    FAILED = 'failed'
    CANCELLED = 'cancelled'


@define(frozen=True)
class BatchReport:
    """Per-unit results in manifest order (None for units that never ran) and the counts."""
    manifest: Manifest
    results: tuple[JobResult | None, ...] = field(converter=tuple)
    elapsed_seconds: float = 0.0
    cancelled: bool = False

    @property
    def total_units(self) -> int:
        return len(self.manifest)

    def _count(self, kind: ExitKind) -> int:
        return sum(1 for result in self.results if result is not None and result.exit_status.kind == kind)

    @property
    def succeeded(self) -> int:
        return self._count(ExitKind.SUCCESS)

    @property
    def failed(self) -> int:
        return self._count(ExitKind.FAILURE)

    @property
    def cancelled_units(self) -> int:
        return self._count(ExitKind.CANCELLED)

    @property
    def not_run(self) -> int:
        return sum(1 for result in self.results if result is None)

    @property
    def status(self) -> BatchStatus:
        if self.cancelled:
            return BatchStatus.CANCELLED
        if self.succeeded == self.total_units:
            return BatchStatus.SUCCEEDED
        if self.succeeded == 0:
            return BatchStatus.FAILED
        return BatchStatus.COMPLETED_WITH_ERRORS

    @property
    def exit_code(self) -> ExitCode:
        return {
            BatchStatus.SUCCEEDED: ExitCode.SUCCESS,
            BatchStatus.COMPLETED_WITH_ERRORS: ExitCode.COMPLETED_WITH_ERRORS,
            BatchStatus.FAILED: ExitCode.FAILURE,
            BatchStatus.CANCELLED: ExitCode.CANCELLED,
        }[self.status]

    def pairs(self):
        return zip(self.manifest, self.results)

    def successful_entries(self) -> list[ManifestEntry]:
        return [
            entry for entry, result in self.pairs()
            if result is not None and result.exit_status.succeeded
        ]

    def unsuccessful(self) -> list[tuple[ManifestEntry, JobResult | None]]:
        return [
            (entry, result) for entry, result in self.pairs()
            if result is None or not result.exit_status.succeeded
        ]

    def log_statistics(self) -> None:
        logger.info('Batch %s.', self.status.value)
        logger.info('  Total jobs: %s', self.total_units)
        logger.info('  Succeeded jobs: %s', self.succeeded)
        logger.info('  Failed jobs: %s', self.failed)
        if self.cancelled_units or self.not_run:
            logger.info('  Cancelled jobs: %s. Jobs not run: %s.', self.cancelled_units, self.not_run)
        for entry, result in self.unsuccessful():
            if result is None:
                continue
            logger.warning('  %s (exit code: %s) %s', entry.sample_id, result.exit_status.code,
                           result.log_path)
        logger.info('Total processing time: %s seconds', int(self.elapsed_seconds))


class CompletionTracker:
    """Single sink for the results of all workers. Exactly one result per manifest entry."""

    def __init__(self, manifest: Manifest):
        self.manifest = manifest
        self._positions = {entry: index for index, entry in enumerate(manifest)}
        self._results: dict[ManifestEntry, JobResult] = {}
        self._condition = Condition()
        self._cancelled = False
        self._progress = FractionalProgressReporter(
            len(manifest),
            task_and_done_message=('units', 'All units reached a terminal state.'),
            logger=logger,
        )

    def submit(self, result: JobResult) -> None:
        with self._condition:
            if result.entry not in self._positions:
                raise DuplicateResultError(
                    f'Result for {result.sample_id} ({result.entry.input_path}) does not belong '
                    'to the manifest.'
                )
            if result.entry in self._results:
                raise DuplicateResultError(
                    f'A result for {result.sample_id} ({result.entry.input_path}) was already '
                    'recorded.'
                )
            self._results[result.entry] = result
            self._progress.increment(iteration_details=result.sample_id)
            if len(self._results) == len(self.manifest):
                self._progress.done()
            self._condition.notify_all()

    def signal_cancelled(self) -> None:
        with self._condition:
            self._cancelled = True
            self._condition.notify_all()

    @property
    def cancelled(self) -> bool:
        with self._condition:
            return self._cancelled

    def result_for(self, entry: ManifestEntry) -> JobResult | None:
        with self._condition:
            return self._results.get(entry)

    def await_all(self, timeout: float | None = None) -> bool:
        """Blocks until every entry is terminal or cancellation is signalled. True if every entry
        is terminal."""
        with self._condition:
            self._condition.wait_for(
                lambda: self._cancelled or len(self._results) == len(self.manifest),
                timeout=timeout,
            )
            return len(self._results) == len(self.manifest)

    def build_report(self, elapsed_seconds: float = 0.0) -> BatchReport:
        with self._condition:
            results = [self._results.get(entry) for entry in self.manifest]
            cancelled = self._cancelled and len(self._results) < len(self.manifest)
            cancelled = cancelled or any(
                result is not None and result.exit_status.kind == ExitKind.CANCELLED
                for result in results
            )
        return BatchReport(self.manifest, results, elapsed_seconds=elapsed_seconds,
                           cancelled=cancelled)


REPORT_COLUMNS = [
    'sample_id',
    'input_path',
    'status',
    'exit_code',
    'started_at',
    'finished_at',
    'elapsed_seconds',
    'output_paths',
    'log_path',
    'diagnostic',
]


class BatchReportSerialization:
    """Batch report to and from the line-oriented run report: a few `# key: value` summary lines
    followed by a tab-separated table with one row per unit, in manifest order."""

    @classmethod
    def to_dataframe(cls, report: BatchReport) -> DataFrame:
        rows = []
        for entry, result in report.pairs():
            if result is None:
                rows.append({
                    'sample_id': entry.sample_id,
                    'input_path': entry.input_path,
                    'status': NOT_RUN,
                    'exit_code': '',
                    'started_at': '',
                    'finished_at': '',
                    'elapsed_seconds': '',
                    'output_paths': '',
                    'log_path': '',
                    'diagnostic': '',
                })
                continue
            code = result.exit_status.code
            rows.append({
                'sample_id': entry.sample_id,
                'input_path': entry.input_path,
                'status': result.exit_status.kind.value,
                'exit_code': '' if code is None else str(code),
                'started_at': result.started_at.isoformat(),
                'finished_at': result.finished_at.isoformat(),
                'elapsed_seconds': f'{result.elapsed_seconds:.1f}',
                'output_paths': ';'.join(result.output_paths),
                'log_path': result.log_path,
                'diagnostic': ' | '.join(result.diagnostic.splitlines()).replace('\t', ' '),
            })
        return DataFrame(rows, columns=REPORT_COLUMNS)

    @classmethod
    def summary_lines(cls, report: BatchReport) -> list[str]:
        return [
            f'# status: {report.status.value}',
            f'# total_units: {report.total_units}',
            f'# succeeded: {report.succeeded}',
            f'# failed: {report.failed}',
            f'# cancelled: {report.cancelled_units}',
            f'# not_run: {report.not_run}',
            f'# elapsed_seconds: {report.elapsed_seconds:.1f}',
        ]

    @classmethod
    def write(cls, report: BatchReport, filename: str) -> None:
        with open(filename, 'wt', encoding='utf-8') as file:
            for line in cls.summary_lines(report):
                file.write(line + '\n')
            cls.to_dataframe(report).to_csv(file, sep='\t', index=False, header=True)

    @classmethod
    def read(cls, filename: str, manifest: Manifest) -> BatchReport:
        summary = {}
        with open(filename, 'rt', encoding='utf-8') as file:
            for line in file:
                if not line.startswith('# '):
                    break
                key, _, value = line[2:].rstrip('\n').partition(': ')
                summary[key] = value
        df = read_csv(filename, sep='\t', skiprows=len(summary), dtype=str, keep_default_na=False)
        if len(df) != len(manifest):
            raise ConfigurationError(
                f'Run report {filename} has {len(df)} rows but the manifest has {len(manifest)} '
                'entries.'
            )
        results: list[JobResult | None] = []
        for entry, (_, row) in zip(manifest, df.iterrows()):
            if row['sample_id'] != entry.sample_id or row['input_path'] != entry.input_path:
                raise ConfigurationError(
                    f'Run report row for {row["input_path"]} does not match manifest entry '
                    f'{entry.input_path}.'
                )
            if row['status'] == NOT_RUN:
                results.append(None)
                continue
            code = int(row['exit_code']) if row['exit_code'] != '' else None
            output_paths = tuple(path for path in row['output_paths'].split(';') if path != '')
            results.append(JobResult(
                entry=entry,
                exit_status=ExitStatus(ExitKind(row['status']), code),
                started_at=datetime.fromisoformat(row['started_at']),
                finished_at=datetime.fromisoformat(row['finished_at']),
                output_paths=output_paths,
                diagnostic=row['diagnostic'],
                log_path=row['log_path'],
            ))
        return BatchReport(
            manifest,
            results,
            elapsed_seconds=float(summary.get('elapsed_seconds', '0') or 0),
            cancelled=summary.get('status') == BatchStatus.CANCELLED.value,
        )
