"""Batch orchestration of per-sample MitoHPC analyses."""
from mitobatch.standalone_utilities.configuration_settings import get_version
from mitobatch.batch import get_profile
from mitobatch.batch import get_profile_names as get_profile_names  # pylint: disable=useless-import-alias

submodule_names = ['batch']

__version__ = get_version()
