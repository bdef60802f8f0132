"""Interface for generation of the manifest of parallelizable units."""
from abc import ABC
from abc import abstractmethod


class JobGenerator(ABC):
    """Interface for generation of the manifest of parallelizable units."""

    @abstractmethod
    def build_manifest(self):
        pass

    @abstractmethod
    def write_job_specification_table(self, job_specification_table_filename):
        pass
