"""
Discovery of the units of work under a root directory, and the canonically ordered manifest that
every later aggregation step follows.
"""
import os
from os.path import join
from os.path import isdir
from os.path import abspath
from os.path import normpath
from os.path import relpath
from os.path import realpath
from os.path import basename
from os.path import dirname
from json import dumps
from json import loads
from shutil import which
import subprocess
from typing import Callable
from typing import Iterator

from attrs import define
from attrs import field
from pandas import DataFrame
from pandas import read_csv

from mitobatch.batch.component_interfaces.job_generator import JobGenerator
from mitobatch.batch.common.natural_sort import natural_key
from mitobatch.batch.common.natural_sort import natural_sorted
from mitobatch.batch.errors import ConfigurationError
from mitobatch.batch.errors import DiscoveryError
from mitobatch.batch.errors import ManifestConflictError
from mitobatch.batch.errors import NoWorkFoundError
from mitobatch.standalone_utilities.log_formats import colorized_logger

logger = colorized_logger(__name__)

IDENTIFIER_POLICIES = ('metadata-first', 'filename', 'strict')
MANIFEST_COLUMNS = [
    'sample_id',
    'input_path',
    'output_stem',
    'input_kind',
    'identifier_source',
    'working_directory',
    'input_files',
]


@define(frozen=True)
class ManifestEntry:
    """One unit of work: a sample directory and where its outputs go."""
    sample_id: str
    input_path: str
    output_stem: str
    input_kind: str
    input_files: tuple[str, ...] = field(converter=tuple)
    working_directory: str
    identifier_source: str = 'filename'

    @property
    def input_directory(self) -> str:
        return join(self.input_path, self.input_kind)

    @property
    def output_directory(self) -> str:
        return join(self.working_directory, 'out')

    @property
    def unit_manifest_file(self) -> str:
        return join(self.working_directory, 'in.txt')

    @property
    def log_file(self) -> str:
        return join(self.working_directory, 'pipeline.log')

    def intermediate_path(self, category: str, suffix: str = 'vcf') -> str:
        return f'{self.output_stem}.{category}.{suffix}'


def _check_disjoint(entries: tuple[ManifestEntry, ...]) -> None:
    directories = {normpath(entry.working_directory): entry for entry in entries}
    if len(directories) < len(entries):
        seen: dict[str, ManifestEntry] = {}
        for entry in entries:
            key = normpath(entry.working_directory)
            if key in seen:
                raise ManifestConflictError(
                    f'Units {seen[key].input_path} and {entry.input_path} share the working '
                    f'directory {key}.'
                )
            seen[key] = entry
    for directory, entry in directories.items():
        parent = dirname(directory)
        while parent not in ('', directory):
            if parent in directories:
                raise ManifestConflictError(
                    f'Working directory of {entry.input_path} is nested inside that of '
                    f'{directories[parent].input_path}.'
                )
            directory, parent = parent, dirname(parent)


@define(frozen=True)
class Manifest:
    """The canonically ordered, immutable list of units for a batch run."""
    entries: tuple[ManifestEntry, ...] = field(converter=tuple)

    def __attrs_post_init__(self):
        _check_disjoint(self.entries)

    def __iter__(self) -> Iterator[ManifestEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __getitem__(self, index: int) -> ManifestEntry:
        return self.entries[index]

    def index_of(self, entry: ManifestEntry) -> int:
        return self.entries.index(entry)

    def entries_for_sample(self, sample_id: str) -> list[ManifestEntry]:
        return [entry for entry in self.entries if entry.sample_id == sample_id]

    def sample_ids(self) -> list[str]:
        return [entry.sample_id for entry in self.entries]


class ManifestSerialization:
    """Manifest to and from the tab-separated manifest file."""
    @classmethod
    def to_dataframe(cls, manifest: Manifest) -> DataFrame:
        rows = [
            {
                'sample_id': entry.sample_id,
                'input_path': entry.input_path,
                'output_stem': entry.output_stem,
                'input_kind': entry.input_kind,
                'identifier_source': entry.identifier_source,
                'working_directory': entry.working_directory,
                'input_files': dumps(list(entry.input_files)),
            }
            for entry in manifest
        ]
        return DataFrame(rows, columns=MANIFEST_COLUMNS)

    @classmethod
    def write(cls, manifest: Manifest, filename: str) -> None:
        df = cls.to_dataframe(manifest)
        df.to_csv(filename, sep='\t', index=False, header=True)

    @classmethod
    def read(cls, filename: str) -> Manifest:
        df = read_csv(filename, sep='\t', dtype=str, keep_default_na=False)
        missing = set(MANIFEST_COLUMNS).difference(df.columns)
        if missing:
            raise ConfigurationError(
                f'Manifest file {filename} lacks columns: {", ".join(sorted(missing))}'
            )
        entries = [
            ManifestEntry(
                sample_id=row['sample_id'],
                input_path=row['input_path'],
                output_stem=row['output_stem'],
                input_kind=row['input_kind'],
                input_files=tuple(loads(row['input_files'])),
                working_directory=row['working_directory'],
                identifier_source=row['identifier_source'],
            )
            for _, row in df.iterrows()
        ]
        return Manifest(entries)


def write_unit_manifest_lines(entry: ManifestEntry, filename: str | None = None) -> str:
    """Writes the per-unit manifest-line file consumed by the pipeline, one line per input file:
    identifier, input path, output stem.
    """
    if filename is None:
        filename = entry.unit_manifest_file
    with open(filename, 'wt', encoding='utf-8') as file:
        for input_file in entry.input_files:
            file.write(f'{entry.sample_id}\t{input_file}\t{entry.output_stem}\n')
    return filename


def read_samtools_sample(path: str) -> str | None:
    """Sample name from the read-group header, via `samtools samples`."""
    executable = which('samtools')
    if executable is None:
        return None
    try:
        completed = subprocess.run(
            [executable, 'samples', path],
            capture_output=True,
            text=True,
            check=False,
            timeout=120,
        )
    except (OSError, subprocess.SubprocessError) as exception:
        logger.debug('samtools could not read %s: %s', path, exception)
        return None
    if completed.returncode != 0:
        return None
    lines = completed.stdout.splitlines()
    if len(lines) == 0:
        return None
    name = lines[0].split('\t')[0].strip()
    if name in ('', '.'):
        return None
    return name


class SampleIdentifierExtractor:
    """Derives a sample identifier from an input file: embedded metadata first, the file name
    otherwise. What happens when both are available and disagree depends on the policy:

    - ``metadata-first``: the metadata identifier wins, and the disagreement is logged.
    - ``filename``: metadata is never consulted.
    - ``strict``: disagreement is a discovery failure for the unit.
    """

    def __init__(
        self,
        policy: str = 'metadata-first',
        extensions: tuple[str, ...] = ('.bam', '.cram'),
        metadata_reader: Callable[[str], str | None] = read_samtools_sample,
    ):
        if policy not in IDENTIFIER_POLICIES:
            raise ConfigurationError(
                f'Identifier policy must be one of {", ".join(IDENTIFIER_POLICIES)}. Got "{policy}".'
            )
        self.policy = policy
        self.extensions = extensions
        self.metadata_reader = metadata_reader

    def filename_identifier(self, path: str) -> str | None:
        name = basename(path)
        for extension in self.extensions:
            if name.endswith(extension):
                name = name[:-len(extension)]
                break
        token = name.split('.')[0]
        if token == '':
            return None
        return token

    def identify(self, path: str) -> tuple[str, str]:
        from_filename = self.filename_identifier(path)
        from_metadata = None
        if self.policy != 'filename':
            from_metadata = self.metadata_reader(path)
        if from_metadata is not None and from_filename is not None and from_metadata != from_filename:
            if self.policy == 'strict':
                raise DiscoveryError(
                    f'Sample identifier from metadata ("{from_metadata}") disagrees with the file '
                    f'name ("{from_filename}") for {path}.'
                )
            logger.warning(
                'Metadata identifier "%s" differs from file name identifier "%s" for %s; using "%s".',
                from_metadata, from_filename, path, from_metadata,
            )
        if from_metadata is not None:
            return from_metadata, 'metadata'
        if from_filename is not None:
            return from_filename, 'filename'
        raise DiscoveryError(f'Could not derive a sample identifier for {path}.')


class ManifestBuilder(JobGenerator):
    """Scan a root directory for unit directories and produce the ordered manifest."""

    def __init__(
        self,
        root: str,
        output_base: str,
        input_kinds: tuple[str, ...] = ('bams', 'crams'),
        input_extensions: tuple[str, ...] = ('.bam', '.cram'),
        extractor: SampleIdentifierExtractor | None = None,
    ):
        if not isdir(root):
            raise ConfigurationError(f'Root directory does not exist: {root}')
        self.root = abspath(root)
        self.output_base = abspath(output_base)
        self.input_kinds = input_kinds
        self.input_extensions = input_extensions
        if extractor is None:
            extractor = SampleIdentifierExtractor(extensions=input_extensions)
        self.extractor = extractor

    def _matches(self, filename: str) -> bool:
        return any(filename.endswith(extension) for extension in self.input_extensions)

    def _list_inputs(self, kind_directory: str) -> list[str]:
        def raise_error(error: OSError):
            raise error

        found = []
        for dirpath, _, filenames in os.walk(kind_directory, onerror=raise_error):
            found.extend(join(dirpath, name) for name in filenames if self._matches(name))
        return natural_sorted(found)

    def locate_inputs(self, directory: str) -> tuple[str, list[str]] | None:
        """The first recognized input kind with matching files, and those files. None if the
        directory holds no inputs. Raises OSError if the inputs cannot be listed or read.
        """
        for kind in self.input_kinds:
            kind_directory = join(directory, kind)
            if not isdir(kind_directory):
                continue
            inputs = self._list_inputs(kind_directory)
            if len(inputs) == 0:
                continue
            unreadable = [path for path in inputs if not os.access(path, os.R_OK)]
            if unreadable:
                raise PermissionError(f'Unreadable input files: {", ".join(unreadable)}')
            return kind, inputs
        return None

    def discover_unit_directories(self) -> list[str]:
        output_base = realpath(self.output_base)
        candidates = []

        def warn(error: OSError):
            logger.warning('Skipping unlistable directory: %s', error)

        for dirpath, dirnames, _ in os.walk(self.root, onerror=warn):
            dirnames[:] = sorted(
                name for name in dirnames
                if name not in self.input_kinds and realpath(join(dirpath, name)) != output_base
            )
            if any(isdir(join(dirpath, kind)) for kind in self.input_kinds):
                candidates.append(dirpath)
        return natural_sorted(candidates)

    def _create_entry(self, directory: str) -> ManifestEntry | None:
        try:
            located = self.locate_inputs(directory)
        except OSError as error:
            logger.warning('Skipping %s: %s', directory, error)
            return None
        if located is None:
            logger.debug('No recognized input files in %s.', directory)
            return None
        kind, inputs = located
        try:
            sample_id, source = self.extractor.identify(inputs[0])
        except DiscoveryError as error:
            logger.warning('Skipping %s: %s', directory, error.message)
            return None
        working_directory = normpath(join(self.output_base, relpath(directory, self.root)))
        return ManifestEntry(
            sample_id=sample_id,
            input_path=directory,
            output_stem=join(working_directory, 'out', sample_id, sample_id),
            input_kind=kind,
            input_files=tuple(inputs),
            working_directory=working_directory,
            identifier_source=source,
        )

    def build_manifest(self) -> Manifest:
        entries = []
        for directory in self.discover_unit_directories():
            entry = self._create_entry(directory)
            if entry is not None:
                entries.append(entry)
        entries = self._drop_enclosing(entries)
        if len(entries) == 0:
            raise NoWorkFoundError(
                f'No sample directories with {"/".join(self.input_extensions)} files found in '
                f'{self.root}.'
            )
        entries = sorted(entries, key=lambda entry: natural_key(entry.input_path))
        self._warn_duplicates(entries)
        manifest = Manifest(entries)
        logger.info('Found %s sample directories to process.', len(manifest))
        for entry in manifest:
            logger.debug('  %s (%s)', entry.sample_id, entry.input_path)
        return manifest

    @staticmethod
    def _drop_enclosing(entries: list[ManifestEntry]) -> list[ManifestEntry]:
        """Skips unit directories that contain other unit directories, such as a root holding
        its own bams/ next to sample subdirectories. Their working directories would enclose
        those of the inner units."""
        paths = [normpath(entry.input_path) for entry in entries]
        kept = []
        for entry, path in zip(entries, paths):
            prefix = path.rstrip(os.sep) + os.sep
            inner = [other for other in paths if other.startswith(prefix)]
            if inner:
                logger.warning(
                    'Skipping %s: it contains %s other sample directories.', entry.input_path,
                    len(inner),
                )
                continue
            kept.append(entry)
        return kept

    @staticmethod
    def _warn_duplicates(entries: list[ManifestEntry]) -> None:
        counts: dict[str, int] = {}
        for entry in entries:
            counts[entry.sample_id] = counts.get(entry.sample_id, 0) + 1
        for sample_id, count in counts.items():
            if count > 1:
                logger.warning(
                    'Sample identifier "%s" occurs in %s directories; all are retained.',
                    sample_id, count,
                )

    def write_job_specification_table(self, job_specification_table_filename):
        """Builds the manifest and writes it to the given file."""
        manifest = self.build_manifest()
        ManifestSerialization.write(manifest, job_specification_table_filename)
        return manifest
