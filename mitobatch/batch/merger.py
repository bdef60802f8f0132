"""
Recombination of per-unit intermediates into one aggregate artifact per merge category. Output is
a function of the manifest and the intermediates only, never of completion order.
"""
import os
from os import makedirs
from os.path import exists
from os.path import join
from os.path import lexists
from shutil import rmtree
from tempfile import mkdtemp

from attrs import define
from attrs import field

from mitobatch.batch.component_interfaces.integrator import Integrator
from mitobatch.batch.common.natural_sort import natural_key
from mitobatch.batch.manifest import ManifestEntry
from mitobatch.batch.tracker import BatchReport
from mitobatch.batch.errors import CancellationError
from mitobatch.batch.errors import MergeError
from mitobatch.standalone_utilities.log_formats import colorized_logger

logger = colorized_logger(__name__)

STAGING_PREFIX = '.mitobatch-merge-'


@define(frozen=True)
class MergeOutcome:
    category: str
    final_path: str | None
    contributors: tuple[str, ...] = field(default=(), converter=tuple)
    excluded: tuple[str, ...] = field(default=(), converter=tuple)
    record_count: int = 0
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.final_path is not None


def merged_filename(category: str, record_suffix: str = 'vcf') -> str:
    return f'{category}.merge.{record_suffix}'


class _Intermediate:
    """Header and record lines of one per-unit intermediate, kept as bytes."""

    def __init__(self, path: str):
        self.path = path
        self.meta_lines: list[bytes] = []
        self.column_header: bytes | None = None
        self.records: list[bytes] = []
        with open(path, 'rb') as file:
            for line in file:
                if not line.endswith(b'\n'):
                    line = line + b'\n'
                if line.startswith(b'##'):
                    self.meta_lines.append(line)
                elif line.startswith(b'#'):
                    if self.column_header is None:
                        self.column_header = line
                elif line.strip() != b'':
                    self.records.append(line)


def record_sort_key(line: bytes, path: str = ''):
    """Chromosome in natural order, then integer position."""
    fields = line.split(b'\t', 2)
    if len(fields) < 2:
        raise MergeError(f'Malformed record in {path}: {line[:80]!r}')
    try:
        position = int(fields[1])
    except ValueError as error:
        raise MergeError(f'Non-integer position in {path}: {fields[1]!r}') from error
    return (natural_key(fields[0].decode('utf-8', errors='replace')), position)


class ResultMerger(Integrator):
    """Merges the intermediates of successful units, category by category. Every merged artifact
    is first written to a staging directory. Only once all categories are staged, and the batch
    is still not cancelled, are the staged files renamed into place, so neither a partial file
    nor the result of a cancelled merge ever appears under a final name.
    """

    def __init__(
        self,
        output_base: str,
        categories: tuple[str, ...],
        record_suffix: str = 'vcf',
        cancellation=None,
    ):
        self.output_base = output_base
        self.categories = categories
        self.record_suffix = record_suffix
        self.cancellation = cancellation

    def final_path(self, category: str) -> str:
        return join(self.output_base, merged_filename(category, self.record_suffix))

    def withdraw(self, category: str) -> bool:
        """Removes a merged artifact left under the final name by an earlier run."""
        path = self.final_path(category)
        if not lexists(path):
            return False
        os.remove(path)
        logger.warning('Removed stale merged artifact %s', path)
        return True

    def withdraw_all(self) -> None:
        for category in self.categories:
            self.withdraw(category)

    def _check_cancelled(self) -> None:
        if self.cancellation is not None and self.cancellation.is_cancelled():
            raise CancellationError('Merge interrupted by cancellation.')

    def calculate(self, report: BatchReport | None = None, **kwargs) -> list[MergeOutcome]:
        if report is None:
            raise ValueError('A batch report is required for merging.')
        makedirs(self.output_base, exist_ok=True)
        staging = mkdtemp(prefix=STAGING_PREFIX, dir=self.output_base)
        if self.cancellation is not None:
            self.cancellation.register_temporary(staging)
        outcomes = []
        staged: list[tuple[str, str]] = []
        try:
            for category in self.categories:
                self._check_cancelled()
                try:
                    staged_path, outcome = self.merge_category(category, report, staging)
                    staged.append((staged_path, outcome.final_path))
                except MergeError as error:
                    logger.error('Merge of %s failed: %s', category, error.message)
                    self.withdraw(category)
                    outcome = MergeOutcome(
                        category=category,
                        final_path=None,
                        excluded=self._excluded(report),
                        error=error.message,
                    )
                outcomes.append(outcome)
            self._check_cancelled()
            for staged_path, final_path in staged:
                os.replace(staged_path, final_path)
        finally:
            rmtree(staging, ignore_errors=True)
        for outcome in outcomes:
            if outcome.succeeded:
                logger.info('Merged %s records from %s units into %s', outcome.record_count,
                            len(outcome.contributors), outcome.final_path)
                if outcome.excluded:
                    logger.info('Excluded from %s: %s', outcome.category,
                                ', '.join(outcome.excluded))
        return outcomes

    @staticmethod
    def _excluded(report: BatchReport) -> tuple[str, ...]:
        return tuple(entry.sample_id for entry, _ in report.unsuccessful())

    def _locate(self, entries: list[ManifestEntry], category: str) -> list[tuple[ManifestEntry, str]]:
        located = []
        for entry in entries:
            path = entry.intermediate_path(category, self.record_suffix)
            if not exists(path):
                raise MergeError(
                    f'Expected intermediate {path} for successful unit {entry.sample_id} is missing.',
                    category=category,
                )
            located.append((entry, path))
        return located

    def merge_category(
        self,
        category: str,
        report: BatchReport,
        staging: str,
    ) -> tuple[str, MergeOutcome]:
        """Writes the merged artifact of one category into the staging directory. Returns the
        staged path and the outcome the artifact will have once promoted."""
        contributors = report.successful_entries()
        excluded = self._excluded(report)
        if len(contributors) == 0:
            raise MergeError('No successful units to merge.', category=category)
        meta_lines: list[bytes] = []
        seen_meta: set[bytes] = set()
        column_header = None
        records: list[tuple[tuple, bytes]] = []
        for _, path in self._locate(contributors, category):
            intermediate = _Intermediate(path)
            for line in intermediate.meta_lines:
                if line not in seen_meta:
                    seen_meta.add(line)
                    meta_lines.append(line)
            if column_header is None:
                column_header = intermediate.column_header
            for line in intermediate.records:
                records.append((record_sort_key(line, path), line))
        records.sort(key=lambda pair: pair[0])

        staged = join(staging, merged_filename(category, self.record_suffix))
        with open(staged, 'wb') as file:
            file.writelines(meta_lines)
            if column_header is not None:
                file.write(column_header)
            file.writelines(line for _, line in records)
        return staged, MergeOutcome(
            category=category,
            final_path=self.final_path(category),
            contributors=tuple(entry.sample_id for entry in contributors),
            excluded=excluded,
            record_count=len(records),
        )
