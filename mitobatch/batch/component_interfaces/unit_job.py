"""Interface for the parallelizable per-unit jobs of a batch."""

from abc import ABC
from abc import abstractmethod

from mitobatch.standalone_utilities.log_formats import colorized_logger

logger = colorized_logger(__name__)


class UnitJob(ABC):
    """Interface for the parallelizable per-unit jobs of a batch."""
    sample_id: str

    @abstractmethod
    def _run(self) -> int:
        pass

    def run(self) -> int:
        """Run this unit to completion and return the exit code. Called by the dispatcher."""
        logger.debug('Started unit job for %s.', self.sample_id)
        code = self._run()
        logger.debug('Completed unit job for %s (exit code %s).', self.sample_id, code)
        return code
