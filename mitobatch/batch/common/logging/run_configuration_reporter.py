"""Convenience reporter of the run configuration for a given batch, before it actually runs. For
debugging and archival purposes.
"""

from os.path import getsize
import socket

import pandas as pd

from mitobatch.batch.manifest import Manifest
from mitobatch.batch.manifest import ManifestSerialization
from mitobatch.batch.resources import ResourceBudget
from mitobatch.standalone_utilities.configuration_settings import get_version
from mitobatch.standalone_utilities.log_formats import colorized_logger

logger = colorized_logger(__name__)


class RunConfigurationReporter:
    """Convenience reporter of run configuration."""

    def __init__(self, settings, manifest: Manifest, budget: ResourceBudget):
        logger.info('Machine host: %s', socket.gethostname())
        logger.info('Version: mitobatch v%s', get_version())
        logger.info('Pipeline profile: "%s"', settings.profile)
        logger.info('Root directory: %s', settings.root)
        logger.info('Output base: %s', settings.output_base)
        logger.info('Container: %s (%s)', settings.container_image, settings.container_platform)

        table = ManifestSerialization.to_dataframe(manifest)
        sizes = self.retrieve_input_sizes(manifest)
        logger.info('Number of units: %s', table.shape[0])
        logger.info('Input kinds: %s', self.get_frequencies(table['input_kind']))
        logger.info('Identifier sources: %s', self.get_frequencies(table['identifier_source']))
        logger.info('Total input size: %s MB', self.format_mb(sum(sizes)))
        logger.info('Smallest unit input: %s MB', self.format_mb(min(sizes)))
        logger.info('Largest unit input: %s MB', self.format_mb(max(sizes)))
        logger.info('Concurrent jobs: %s. Cores per job: %s. Memory per job: %s.',
                    budget.concurrency, budget.per_job_cores, budget.memory_string)
        logger.info('Merge categories: %s', ', '.join(settings.categories))

    def get_frequencies(self, column: pd.Series) -> str:
        counts = column.value_counts().sort_index()
        return '; '.join(f'{label} ({count})' for label, count in counts.items())

    def format_mb(self, number_bytes):
        return int(10 * number_bytes / 1000000) / 10

    def retrieve_input_sizes(self, manifest: Manifest) -> list[int]:
        return [
            sum(getsize(path) for path in entry.input_files)
            for entry in manifest
        ]
