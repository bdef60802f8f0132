"""Configuration settings."""
from importlib.metadata import version
from importlib.metadata import PackageNotFoundError
from importlib.resources import files
from warnings import warn


def get_version():
    _version = 'unknown'
    try:
        _version = version('mitobatch')
    except PackageNotFoundError:
        warn('mitobatch package is used but not installed.')
        _version = files('mitobatch').joinpath('version.txt').read_text(encoding='utf-8').rstrip()
    return _version
