"""
One batch run end to end: resources, manifest, dispatch, completion, report and merge.
"""
import time
from os import makedirs
from os.path import join
from tempfile import mkdtemp

from mitobatch.batch import get_profile
from mitobatch.batch.configuration import BatchSettings
from mitobatch.batch.manifest import ManifestSerialization
from mitobatch.batch.manifest import SampleIdentifierExtractor
from mitobatch.batch.manifest import read_samtools_sample
from mitobatch.batch.resources import ResourceBudget
from mitobatch.batch.resources import log_budget
from mitobatch.batch.resources import partition_resources
from mitobatch.batch.resources import render_scheduler_config
from mitobatch.batch.invocation import InvocationBuilder
from mitobatch.batch.invocation import render_planned_invocations
from mitobatch.batch.dispatcher import JobDispatcher
from mitobatch.batch.tracker import BatchReport
from mitobatch.batch.tracker import BatchReportSerialization
from mitobatch.batch.tracker import CompletionTracker
from mitobatch.batch.merger import MergeOutcome
from mitobatch.batch.cancellation import CancellationManager
from mitobatch.batch.common.logging.run_configuration_reporter import RunConfigurationReporter
from mitobatch.batch.errors import CancellationError
from mitobatch.batch.errors import ExitCode
from mitobatch.standalone_utilities.log_formats import colorized_logger

logger = colorized_logger(__name__)

MANIFEST_FILE = 'manifest.tsv'
RUN_REPORT_FILE = 'run_report.tsv'
SCHEDULER_CONFIG_FILE = 'scheduler.config'
PLANNED_INVOCATIONS_FILE = 'planned_invocations.sh'
POLL_INTERVAL = 0.5


class BatchCoordinator:
    """Wires the batch components together for one run. Fatal errors (configuration, discovery)
    are raised as BatchError before any unit starts; everything after dispatch ends in an exit
    code.
    """

    def __init__(
        self,
        settings: BatchSettings,
        cancellation: CancellationManager | None = None,
        metadata_reader=read_samtools_sample,
        install_signal_handlers: bool = True,
    ):
        self.settings = settings
        self.profile = get_profile(settings.profile)
        if cancellation is None:
            cancellation = CancellationManager(grace_period=settings.grace_period)
        self.cancellation = cancellation
        self.metadata_reader = metadata_reader
        self.install_signal_handlers = install_signal_handlers
        self.report: BatchReport | None = None
        self.outcomes: list[MergeOutcome] = []
        self.peak_in_flight = 0

    def run(self) -> ExitCode:
        if self.install_signal_handlers:
            self.cancellation.install_signal_handlers()
        try:
            return self._run()
        except CancellationError as error:
            logger.warning(error.message)
            self._integrator().withdraw_all()
            return ExitCode.CANCELLED
        finally:
            self.cancellation.restore_signal_handlers()
            self.cancellation.cleanup()

    def _partition(self) -> ResourceBudget:
        budget = partition_resources(
            self.settings.total_cores,
            self.settings.jobs,
            override_per_job_cores=self.settings.per_job_core_override,
            oversubscription_factor=self.settings.oversubscription_factor,
        )
        log_budget(budget)
        return budget

    def _check_cancelled(self, stage: str) -> None:
        if self.cancellation.is_cancelled():
            raise CancellationError(f'Batch cancelled during {stage}.')

    def _run(self) -> ExitCode:
        start_time = time.time()
        settings = self.settings
        budget = self._partition()
        builder = InvocationBuilder(
            settings.container_platform, settings.container_image, settings.executable,
        )
        if not settings.dry_run:
            builder.check_available()

        generator = self.profile.generator(
            settings.root,
            settings.output_base,
            input_kinds=self.profile.input_kinds,
            input_extensions=self.profile.input_extensions,
            extractor=SampleIdentifierExtractor(
                policy=settings.identifier_policy,
                extensions=self.profile.input_extensions,
                metadata_reader=self.metadata_reader,
            ),
        )
        manifest = generator.build_manifest()
        self._check_cancelled('discovery')

        makedirs(settings.output_base, exist_ok=True)
        ManifestSerialization.write(manifest, join(settings.output_base, MANIFEST_FILE))
        with open(join(settings.output_base, SCHEDULER_CONFIG_FILE), 'wt', encoding='utf-8') as file:
            file.write(render_scheduler_config(budget, scheduler=settings.scheduler))
        RunConfigurationReporter(settings, manifest, budget)

        tracker = CompletionTracker(manifest)
        self.cancellation.add_listener(tracker.signal_cancelled)
        dispatcher = JobDispatcher(
            manifest,
            budget,
            builder,
            tracker,
            self.cancellation,
            categories=settings.categories,
            record_suffix=self.profile.record_suffix,
            unit_job=self.profile.unit_job,
        )
        scratch = self.cancellation.register_temporary(
            mkdtemp(prefix='.mitobatch-', dir=settings.output_base)
        )
        planned = render_planned_invocations(dispatcher.plan(), budget)
        with open(join(scratch, PLANNED_INVOCATIONS_FILE), 'wt', encoding='utf-8') as file:
            file.write(planned)

        if settings.dry_run:
            logger.info('Dry run; the following commands would be executed:')
            dispatcher.log_plan()
            return ExitCode.SUCCESS

        dispatcher.dispatch()
        while not tracker.await_all(timeout=POLL_INTERVAL):
            if self.cancellation.is_cancelled():
                break
        if self.cancellation.is_cancelled():
            self.cancellation.finish_termination()
            dispatcher.shutdown(cancel_pending=True)
        else:
            dispatcher.shutdown()
        self.peak_in_flight = dispatcher.peak_in_flight

        report = tracker.build_report(elapsed_seconds=time.time() - start_time)
        self.report = report
        BatchReportSerialization.write(report, join(settings.output_base, RUN_REPORT_FILE))
        report.log_statistics()
        if report.cancelled:
            self._integrator().withdraw_all()
            return ExitCode.CANCELLED
        if report.succeeded == 0:
            logger.error('No unit succeeded; skipping the merge.')
            self._integrator().withdraw_all()
            return report.exit_code
        return self._merge(report)

    def _integrator(self):
        return self.profile.integrator(
            self.settings.output_base,
            self.settings.categories,
            record_suffix=self.profile.record_suffix,
            cancellation=self.cancellation,
        )

    def _merge(self, report: BatchReport) -> ExitCode:
        self.outcomes = self._integrator().calculate(report=report)
        if any(not outcome.succeeded for outcome in self.outcomes):
            failed = [outcome.category for outcome in self.outcomes if not outcome.succeeded]
            logger.error('Merge failed for: %s', ', '.join(failed))
            return ExitCode.MERGE_FAILED
        return report.exit_code
