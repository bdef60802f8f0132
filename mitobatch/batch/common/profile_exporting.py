"""Wrapper class for describing an external pipeline that can be batched."""

from typing import NamedTuple, Type

from mitobatch.batch.component_interfaces import (
    JobGenerator,
    UnitJob,
    Integrator,
)


class PipelineProfile(NamedTuple):
    """A wrapper object listing the implementation classes and constants that describe one
    batchable external pipeline.

    Parameters
    ----------
    name: str
        Registry name of the pipeline.
    image: str
        Default container image reference.
    executable: str
        The command run inside the container for each unit.
    input_kinds: tuple[str, ...]
        Names of the unit subdirectories that hold inputs, in order of precedence.
    input_extensions: tuple[str, ...]
        Recognized input file extensions.
    categories: tuple[str, ...]
        Merge categories. The per-unit intermediate of a category is
        ``<output_stem>.<category>.<record_suffix>``.
    record_suffix: str
        File extension of per-unit intermediates and merged artifacts.
    generator: Type[JobGenerator] | None = None
    unit_job: Type[UnitJob] | None = None
    integrator: Type[Integrator] | None = None
    """
    name: str
    image: str
    executable: str
    input_kinds: tuple[str, ...]
    input_extensions: tuple[str, ...]
    categories: tuple[str, ...]
    record_suffix: str = 'vcf'
    generator: Type[JobGenerator] | None = None
    unit_job: Type[UnitJob] | None = None
    integrator: Type[Integrator] | None = None
