"""Interface for the wrap-up phase, run after all parallel units are terminal."""
from abc import ABC
from abc import abstractmethod


class Integrator(ABC):
    """Interface for the wrap-up phase, run after all parallel units are terminal."""

    @abstractmethod
    def calculate(self, **kwargs):
        pass
