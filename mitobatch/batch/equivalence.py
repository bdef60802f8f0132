"""
Equivalence check between the merged artifacts of two output directories, e.g. a sequential run
and a concurrent run of the same batch.
"""
from glob import glob
from os.path import basename
from os.path import isdir
from os.path import isfile
from os.path import join

from attrs import define

from mitobatch.batch.common.file_io import compute_sha256
from mitobatch.batch.common.file_io import count_lines
from mitobatch.batch.common.natural_sort import natural_sorted
from mitobatch.batch.merger import merged_filename
from mitobatch.batch.errors import ConfigurationError
from mitobatch.standalone_utilities.log_formats import colorized_logger

logger = colorized_logger(__name__)


@define(frozen=True)
class ArtifactComparison:
    filename: str
    first_digest: str | None
    second_digest: str | None
    first_records: int | None = None
    second_records: int | None = None

    @property
    def identical(self) -> bool:
        return self.first_digest is not None and self.first_digest == self.second_digest


def _describe(path: str) -> tuple[str | None, int | None]:
    if not isfile(path):
        return None, None
    _, records = count_lines(path)
    return compute_sha256(path), records


def compare_outputs(
    first: str,
    second: str,
    categories: tuple[str, ...] | None = None,
    record_suffix: str = 'vcf',
) -> list[ArtifactComparison]:
    """Compares the merged artifacts of two output directories. Without explicit categories,
    every merged artifact found in either directory is compared."""
    for directory in (first, second):
        if not isdir(directory):
            raise ConfigurationError(f'Output directory does not exist: {directory}')
    if categories is None:
        pattern = merged_filename('*', record_suffix)
        names = {basename(path) for directory in (first, second)
                 for path in glob(join(directory, pattern))}
        filenames = natural_sorted(names)
    else:
        filenames = [merged_filename(category, record_suffix) for category in categories]
    if len(filenames) == 0:
        raise ConfigurationError(f'No merged artifacts found in {first} or {second}.')
    comparisons = []
    for filename in filenames:
        first_digest, first_records = _describe(join(first, filename))
        second_digest, second_records = _describe(join(second, filename))
        comparisons.append(ArtifactComparison(
            filename, first_digest, second_digest, first_records, second_records,
        ))
    return comparisons


def log_comparisons(comparisons: list[ArtifactComparison]) -> bool:
    for comparison in comparisons:
        if comparison.identical:
            logger.info('%s: identical (%s records).', comparison.filename,
                        comparison.first_records)
        elif comparison.first_digest is None or comparison.second_digest is None:
            logger.error('%s: present in only one output directory.', comparison.filename)
        else:
            logger.error('%s: differs (%s vs %s records).', comparison.filename,
                         comparison.first_records, comparison.second_records)
    identical = all(comparison.identical for comparison in comparisons)
    if identical:
        logger.info('All %s merged artifacts are identical.', len(comparisons))
    return identical
