from mitobatch.batch.dispatcher import JobDispatcher
from mitobatch.batch.invocation import InvocationBuilder
from mitobatch.batch.invocation import PipelineInvocation
from mitobatch.batch.resources import partition_resources
from mitobatch.batch.tracker import CompletionTracker
from mitobatch.batch.tracker import ExitKind
from mitobatch.batch.cancellation import CancellationManager

from sample_trees import CATEGORIES
from sample_trees import build_manifest
from sample_trees import make_sample


def dispatch(manifest, fake_pipeline, concurrency, cancellation=None, unit_job=PipelineInvocation):
    budget = partition_resources(8, concurrency)
    tracker = CompletionTracker(manifest)
    if cancellation is None:
        cancellation = CancellationManager(grace_period=2)
    dispatcher = JobDispatcher(
        manifest,
        budget,
        InvocationBuilder('none', '', fake_pipeline),
        tracker,
        cancellation,
        categories=CATEGORIES,
        unit_job=unit_job,
    )
    dispatcher.dispatch()
    assert dispatcher.wait(timeout=60)
    dispatcher.shutdown()
    return dispatcher, tracker


def test_failure_is_contained(abc_root, tmp_path, fake_pipeline):
    manifest = build_manifest(abc_root, tmp_path / 'out')
    _, tracker = dispatch(manifest, fake_pipeline, 2)
    report = tracker.build_report()
    assert (report.succeeded, report.failed) == (2, 1)
    failed = report.results[1]
    assert failed.sample_id == 'b'
    assert failed.exit_status.kind == ExitKind.FAILURE
    assert failed.exit_status.code == 7
    assert 'simulated failure' in failed.diagnostic
    assert failed.output_paths == ()
    assert report.results[0].output_paths == tuple(
        manifest[0].intermediate_path(category) for category in CATEGORIES
    )


def test_in_flight_bound(tmp_path, fake_pipeline):
    root = tmp_path / 'data'
    for index in range(6):
        make_sample(root, f'u{index}', f'u{index}', positions=(index + 1,), sleep=1)
    manifest = build_manifest(root, tmp_path / 'out')
    dispatcher, tracker = dispatch(manifest, fake_pipeline, 2)
    assert 1 <= dispatcher.peak_in_flight <= 2
    assert tracker.build_report().succeeded == 6


def test_unexpected_worker_error_becomes_failure(abc_root, tmp_path, fake_pipeline):
    class Exploding(PipelineInvocation):
        def _run(self):
            if self.sample_id == 'a':
                raise RuntimeError('boom')
            return super()._run()

    manifest = build_manifest(abc_root, tmp_path / 'out')
    _, tracker = dispatch(manifest, fake_pipeline, 3, unit_job=Exploding)
    report = tracker.build_report()
    assert report.results[0].exit_status.kind == ExitKind.FAILURE
    assert 'boom' in report.results[0].diagnostic
    assert report.results[2].exit_status.succeeded


def test_no_admission_after_cancellation(abc_root, tmp_path, fake_pipeline):
    manifest = build_manifest(abc_root, tmp_path / 'out')
    cancellation = CancellationManager(grace_period=2)
    cancellation.cancel('Stopped by test.')
    dispatcher, tracker = dispatch(manifest, fake_pipeline, 2, cancellation=cancellation)
    assert dispatcher.peak_in_flight == 0
    assert tracker.build_report().not_run == 3


def test_plan_follows_manifest_order(abc_root, tmp_path, fake_pipeline):
    manifest = build_manifest(abc_root, tmp_path / 'out')
    dispatcher = JobDispatcher(
        manifest, partition_resources(8, 2), InvocationBuilder('none', '', fake_pipeline),
        CompletionTracker(manifest), CancellationManager(),
    )
    assert [invocation.sample_id for invocation in dispatcher.plan()] == ['a', 'b', 'c']
