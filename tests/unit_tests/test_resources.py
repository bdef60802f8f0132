import pytest

from mitobatch.batch.resources import partition_resources
from mitobatch.batch.resources import parse_positive_integer
from mitobatch.batch.resources import read_core_override
from mitobatch.batch.resources import render_scheduler_config
from mitobatch.batch.resources import memory_breakdown
from mitobatch.batch.errors import ConfigurationError


def test_per_job_cores_without_override():
    for total_cores in range(1, 33):
        for concurrency in range(1, 40):
            budget = partition_resources(total_cores, concurrency)
            assert budget.per_job_cores == max(1, total_cores // concurrency)
            assert budget.per_job_cores >= 1
            assert budget.per_job_memory_gb == 2 * budget.per_job_cores
            if concurrency <= total_cores:
                assert budget.effective_total <= total_cores
                assert budget.warnings == ()


def test_eight_cores_two_jobs():
    budget = partition_resources(8, 2)
    assert budget.per_job_cores == 4
    assert budget.memory_string == '8G'
    assert budget.java_options == '-Xms8G -Xmx8G -XX:ParallelGCThreads=4'
    assert not budget.override_applied


def test_concurrency_above_cores_warns():
    budget = partition_resources(4, 8)
    assert budget.per_job_cores == 1
    assert len(budget.warnings) == 1


def test_override_used_verbatim():
    budget = partition_resources(8, 2, override_per_job_cores=3)
    assert budget.per_job_cores == 3
    assert budget.override_applied
    assert budget.warnings == ()


def test_override_oversubscription_warning():
    budget = partition_resources(4, 4, override_per_job_cores=4)
    assert budget.effective_total == 16
    assert len(budget.warnings) == 1
    assert 'oversubscription' in budget.warnings[0]
    assert partition_resources(4, 2, override_per_job_cores=4).warnings == ()


def test_partition_is_deterministic():
    assert partition_resources(16, 3) == partition_resources(16, 3)


@pytest.mark.parametrize('value', [0, -1, '0', '-2', 'abc', '1.5', '', '01', True, None, 2.0])
def test_invalid_concurrency(value):
    with pytest.raises(ConfigurationError):
        partition_resources(8, value)


def test_textual_concurrency():
    assert parse_positive_integer('12', 'jobs') == 12
    assert partition_resources('8', '2').per_job_cores == 4


def test_core_override_from_environment():
    assert read_core_override({}) is None
    assert read_core_override({'HP_P': ''}) is None
    assert read_core_override({'HP_P': '6'}) == 6
    with pytest.raises(ConfigurationError):
        read_core_override({'HP_P': 'many'})


def test_scheduler_config_lines():
    budget = partition_resources(8, 2)
    slurm = render_scheduler_config(budget, scheduler='slurm')
    assert 'export HP_P=4' in slurm
    assert 'export HP_MM="8G"' in slurm
    assert '--cpus-per-task=4' in slurm
    assert '--mem=8G' in slurm
    assert 'HP_SHS="$HP_SH -d singleton"' in slurm
    sge = render_scheduler_config(budget, scheduler='sge')
    assert 'mem_free=8G,h_vmem=8G' in sge
    assert '-pe local 4' in sge
    bash = render_scheduler_config(budget)
    assert 'export HP_SH="bash"' in bash
    assert '\n\n' not in bash


def test_unknown_scheduler():
    with pytest.raises(ConfigurationError):
        render_scheduler_config(partition_resources(8, 2), scheduler='pbs')


def test_memory_breakdown_is_safe():
    rows = dict(memory_breakdown(partition_resources(8, 2)))
    assert rows['Memory safety check'] == 'SAFE'
    assert rows['Total memory (HP_MM)'] == '8G'
    assert rows['samtools sort total usage'] == '4 x 2G = 8G'
