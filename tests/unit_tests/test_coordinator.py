import os
import threading
import time
from os.path import exists
from os.path import join

from mitobatch.batch.configuration import load_settings
from mitobatch.batch.coordinator import BatchCoordinator
from mitobatch.batch.cancellation import CancellationManager
from mitobatch.batch.equivalence import compare_outputs
from mitobatch.batch.manifest import ManifestSerialization
from mitobatch.batch.tracker import BatchReportSerialization
from mitobatch.batch.errors import ExitCode

from sample_trees import CATEGORIES
from sample_trees import make_sample
from sample_trees import no_metadata


def settings_for(root, output_base, fake_pipeline, jobs, **overrides):
    values = {
        'jobs': jobs,
        'output_base': str(output_base),
        'container_platform': 'none',
        'executable': fake_pipeline,
        'identifier_policy': 'filename',
        'grace_period': 2,
    }
    values.update(overrides)
    return load_settings(str(root), overrides=values, environment={}, total_cores=8)


def run_batch(settings, cancellation=None):
    coordinator = BatchCoordinator(settings, cancellation=cancellation,
                                   metadata_reader=no_metadata, install_signal_handlers=False)
    return coordinator, coordinator.run()


def test_example_batch_with_one_failure(abc_root, tmp_path, fake_pipeline):
    output_base = tmp_path / 'run'
    settings = settings_for(abc_root, output_base, fake_pipeline, 2)
    coordinator, code = run_batch(settings)
    assert code == ExitCode.COMPLETED_WITH_ERRORS
    report = coordinator.report
    assert (report.total_units, report.succeeded, report.failed) == (3, 2, 1)
    assert report.results[1].exit_status.code == 7
    merged = join(str(output_base), f'{CATEGORIES[0]}.merge.vcf')
    with open(merged, 'rt', encoding='utf-8') as file:
        records = [line.split('\t') for line in file if not line.startswith('#')]
    assert [(fields[1], fields[7]) for fields in records] == [
        ('73', 'SM=a'), ('100', 'SM=a'), ('100', 'SM=c'), ('200', 'SM=c'), ('300', 'SM=a'),
    ]
    assert all(outcome.excluded == ('b',) for outcome in coordinator.outcomes)
    manifest = ManifestSerialization.read(join(str(output_base), 'manifest.tsv'))
    assert manifest.sample_ids() == ['a', 'b', 'c']
    restored = BatchReportSerialization.read(join(str(output_base), 'run_report.tsv'), manifest)
    assert restored.failed == 1
    with open(join(str(output_base), 'scheduler.config'), 'rt', encoding='utf-8') as file:
        assert 'export HP_P=4' in file.read()
    assert [name for name in os.listdir(output_base) if name.startswith('.mitobatch')] == []


def test_merged_output_identical_across_concurrency(tmp_path, fake_pipeline):
    root = tmp_path / 'data'
    for index in range(1, 8):
        positions = ((index * 37) % 50 + 1, (index * 11) % 50 + 1, 16519 - index)
        make_sample(root, f'sample{index}', f's{index}', positions=positions)
    sequential = tmp_path / 'sequential'
    parallel = tmp_path / 'parallel'
    _, first = run_batch(settings_for(root, sequential, fake_pipeline, 1))
    _, second = run_batch(settings_for(root, parallel, fake_pipeline, 3))
    assert first == second == ExitCode.SUCCESS
    comparisons = compare_outputs(str(sequential), str(parallel))
    assert [comparison.filename for comparison in comparisons] == [
        f'{category}.merge.vcf' for category in CATEGORIES
    ]
    assert all(comparison.identical for comparison in comparisons)
    assert comparisons[0].first_records == 21


def test_total_failure_skips_merge(tmp_path, fake_pipeline):
    root = tmp_path / 'data'
    make_sample(root, 'x', 'x', fail=True)
    make_sample(root, 'y', 'y', fail=True)
    output_base = tmp_path / 'run'
    _, code = run_batch(settings_for(root, output_base, fake_pipeline, 2))
    assert code == ExitCode.FAILURE
    assert not any(name.endswith('.merge.vcf') for name in os.listdir(output_base))


def test_missing_intermediate_is_merge_failure(tmp_path, fake_pipeline):
    root = tmp_path / 'data'
    make_sample(root, 'x', 'x', positions=(1,))
    directory = make_sample(root, 'y', 'y', positions=(2,))
    with open(join(directory, 'bams', 'SKIP_OUTPUT'), 'wt', encoding='utf-8') as file:
        file.write('1\n')
    _, code = run_batch(settings_for(root, tmp_path / 'run', fake_pipeline, 2))
    assert code == ExitCode.MERGE_FAILED


def test_dry_run_executes_nothing(abc_root, tmp_path, fake_pipeline):
    output_base = tmp_path / 'run'
    settings = settings_for(abc_root, output_base, fake_pipeline, 2, dry_run=True)
    coordinator, code = run_batch(settings)
    assert code == ExitCode.SUCCESS
    assert coordinator.report is None
    assert exists(join(str(output_base), 'manifest.tsv'))
    assert not exists(join(str(output_base), 'a', 'pipeline.log'))


def merged_artifacts(output_base):
    return sorted(name for name in os.listdir(output_base) if name.endswith('.merge.vcf'))


def set_marker(root, names, marker, present):
    for name in names:
        path = join(str(root), name, 'bams', marker)
        if present:
            with open(path, 'wt', encoding='utf-8') as file:
                file.write('30\n')
        elif exists(path):
            os.remove(path)


def test_cancellation_then_rerun_matches_uninterrupted_run(tmp_path, fake_pipeline):
    names = ('a', 'b', 'c', 'd')
    root = tmp_path / 'data'
    for index, name in enumerate(names):
        make_sample(root, name, name, positions=(index + 1, 40 - index))
    output_base = tmp_path / 'run'
    _, code = run_batch(settings_for(root, output_base, fake_pipeline, 2))
    assert code == ExitCode.SUCCESS
    assert merged_artifacts(output_base) == sorted(f'{category}.merge.vcf' for category in CATEGORIES)
    logs = [join(str(output_base), name, 'pipeline.log') for name in names]
    for log in logs:
        os.remove(log)

    set_marker(root, names, 'SLEEP', True)
    cancellation = CancellationManager(grace_period=2)
    settings = settings_for(root, output_base, fake_pipeline, 2)
    outcome = {}

    def target():
        outcome['coordinator'], outcome['code'] = run_batch(settings, cancellation=cancellation)

    thread = threading.Thread(target=target)
    thread.start()
    deadline = time.monotonic() + 20
    while not all(exists(log) for log in logs[:2]) and time.monotonic() < deadline:
        time.sleep(0.1)
    cancellation.cancel('Stopped by test.')
    thread.join(timeout=60)
    assert not thread.is_alive()
    assert outcome['code'] == ExitCode.CANCELLED
    report = outcome['coordinator'].report
    assert report.cancelled
    assert report.cancelled_units == 2
    assert report.not_run == 2
    assert merged_artifacts(output_base) == []
    assert [name for name in os.listdir(output_base) if name.startswith('.mitobatch')] == []
    with open(join(str(output_base), 'manifest.tsv'), 'rt', encoding='utf-8') as file:
        cancelled_manifest = file.read()

    set_marker(root, names, 'SLEEP', False)
    _, code = run_batch(settings_for(root, output_base, fake_pipeline, 2))
    assert code == ExitCode.SUCCESS
    with open(join(str(output_base), 'manifest.tsv'), 'rt', encoding='utf-8') as file:
        assert file.read() == cancelled_manifest
    reference = tmp_path / 'reference'
    _, code = run_batch(settings_for(root, reference, fake_pipeline, 1))
    assert code == ExitCode.SUCCESS
    comparisons = compare_outputs(str(reference), str(output_base))
    assert len(comparisons) == len(CATEGORIES)
    assert all(comparison.identical for comparison in comparisons)


def test_total_failure_removes_previous_merged_artifacts(abc_root, tmp_path, fake_pipeline):
    output_base = tmp_path / 'run'
    _, code = run_batch(settings_for(abc_root, output_base, fake_pipeline, 2))
    assert code == ExitCode.COMPLETED_WITH_ERRORS
    assert len(merged_artifacts(output_base)) == len(CATEGORIES)
    set_marker(abc_root, ('a', 'c'), 'FAIL', True)
    _, code = run_batch(settings_for(abc_root, output_base, fake_pipeline, 2))
    assert code == ExitCode.FAILURE
    assert merged_artifacts(output_base) == []
