"""
Each of the pipeline profile subpackages describes one external per-sample pipeline that can be
batched. A profile lists:

1. A **manifest builder**. This discovers the units of work under a root directory and fixes
   their canonical order.
2. The **unit job**. This runs one unit's pipeline invocation, isolated in its own working
   directory.
3. An **integrator**. This runs after every unit has reached a terminal state, and merges the
   per-unit intermediates of the successful units.
4. The **constants** of the pipeline: container image, executable, input kinds and extensions,
   and merge categories.
"""

from importlib import import_module

from mitobatch.batch.common.profile_exporting import PipelineProfile
from mitobatch.batch.errors import ConfigurationError

profile_names_and_subpackages = {
    'mitohpc': 'mitohpc',
}

DEFAULT_PROFILE = 'mitohpc'


def get_profile_names() -> list[str]:
    return list(profile_names_and_subpackages.keys())


def get_profile(profile_name: str = DEFAULT_PROFILE) -> PipelineProfile:
    if profile_name not in profile_names_and_subpackages:
        raise ConfigurationError(
            f'Unknown pipeline profile "{profile_name}". Choose from: '
            f'{", ".join(get_profile_names())}.'
        )
    subpackage_name = profile_names_and_subpackages[profile_name]
    subpackage = import_module(f'.{subpackage_name}', __name__)
    return subpackage.components
