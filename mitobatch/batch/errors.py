"""Error taxonomy for batch runs, and the process exit codes they map to."""
from enum import Enum
from enum import IntEnum


class ExitCode(IntEnum):
    """Process exit codes reported by the batch commands."""
    SUCCESS = 0
    FAILURE = 1
    COMPLETED_WITH_ERRORS = 2
    MERGE_FAILED = 3
    CANCELLED = 130


class ErrorKind(Enum):
    """Classification of the errors a batch run may encounter."""
    CONFIGURATION = 'configuration'
    NO_WORK_FOUND = 'no work found'
    MANIFEST_CONFLICT = 'manifest conflict'
    UNIT_FAILURE = 'unit failure'
    MERGE = 'merge'
    CANCELLATION = 'cancellation'
    DUPLICATE_RESULT = 'duplicate result'


class BatchError(Exception):
    """Base class for errors raised by the batch machinery."""
    kind: ErrorKind = ErrorKind.CONFIGURATION
    exit_code: ExitCode = ExitCode.FAILURE

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self):
        return self.message


class ConfigurationError(BatchError):
    """Invalid concurrency value, missing root directory, unavailable executor, and so on.
    Raised before any unit starts."""
    kind = ErrorKind.CONFIGURATION


class DiscoveryError(BatchError):
    """The unit-of-work set could not be established."""
    kind = ErrorKind.NO_WORK_FOUND


class NoWorkFoundError(DiscoveryError):
    """Scanning produced an empty manifest."""
    kind = ErrorKind.NO_WORK_FOUND


class ManifestConflictError(DiscoveryError):
    """Two units would share (or nest) working directories."""
    kind = ErrorKind.MANIFEST_CONFLICT


class UnitFailure(BatchError):
    """One unit's invocation failed. Contained at the worker boundary; never reaches the
    coordinator as an exception."""
    kind = ErrorKind.UNIT_FAILURE
    exit_code = ExitCode.COMPLETED_WITH_ERRORS

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.code = code


class MergeError(BatchError):
    """An expected intermediate is missing for a successful unit. Fatal to one category."""
    kind = ErrorKind.MERGE
    exit_code = ExitCode.MERGE_FAILED

    def __init__(self, message: str, category: str = ''):
        super().__init__(message)
        self.category = category


class CancellationError(BatchError):
    """The run was interrupted. A terminal state, not a failure."""
    kind = ErrorKind.CANCELLATION
    exit_code = ExitCode.CANCELLED


class DuplicateResultError(BatchError):
    """A second result, or a result for an unknown unit, was submitted to the tracker."""
    kind = ErrorKind.DUPLICATE_RESULT
