from os.path import join

import pytest

from mitobatch.batch.configuration import load_settings
from mitobatch.batch.errors import ConfigurationError


def write_config(tmp_path, contents):
    path = tmp_path / 'batch.ini'
    path.write_text(contents, encoding='utf-8')
    return str(path)


def test_profile_defaults(tmp_path):
    settings = load_settings(str(tmp_path), environment={}, total_cores=8)
    assert settings.jobs == 1
    assert settings.container_platform == 'apptainer'
    assert settings.container_image == 'docker://ghcr.io/jlanej/mitohpc:main'
    assert settings.executable == 'mitohpc.sh'
    assert settings.output_base == join(str(tmp_path), 'batch_output')
    assert settings.categories == (
        'mutect2.mutect2.03', 'mutect2.mutect2.05', 'mutect2.mutect2.10',
    )
    assert settings.per_job_core_override is None
    assert settings.grace_period == 30


def test_precedence(tmp_path):
    config_file = write_config(tmp_path, '\n'.join([
        '[general]',
        'jobs = 3',
        'container_platform = docker',
        'scheduler = slurm',
        'unexpected = 1',
        '[merge]',
        'categories = mutect2.mutect2.03, mutect2.mutect2.10',
    ]))
    settings = load_settings(
        str(tmp_path),
        config_file=config_file,
        overrides={'jobs': '4', 'container_platform': None},
        environment={'HP_P': '2'},
        total_cores=16,
    )
    assert settings.jobs == 4
    assert settings.container_platform == 'docker'
    assert settings.scheduler == 'slurm'
    assert settings.categories == ('mutect2.mutect2.03', 'mutect2.mutect2.10')
    assert settings.per_job_core_override == 2
    assert settings.total_cores == 16


@pytest.mark.parametrize('overrides', [
    {'jobs': '0'},
    {'jobs': 'two'},
    {'container_platform': 'podman'},
    {'identifier_policy': 'guess'},
    {'grace_period': '-1'},
    {'scheduler': 'pbs'},
])
def test_invalid_values(tmp_path, overrides):
    with pytest.raises(ConfigurationError):
        load_settings(str(tmp_path), overrides=overrides, environment={}, total_cores=4)


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigurationError):
        load_settings(str(tmp_path), config_file=str(tmp_path / 'absent.ini'), environment={},
                      total_cores=4)
