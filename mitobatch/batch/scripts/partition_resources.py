"""CLI utility to show how cores and memory are split across concurrently running samples."""
import argparse
import sys

from mitobatch.batch.common.cli_arguments import add_argument
from mitobatch.batch.resources import memory_breakdown
from mitobatch.batch.resources import partition_resources
from mitobatch.batch.resources import probe_total_cores
from mitobatch.batch.resources import read_core_override
from mitobatch.batch.resources import DEFAULT_OVERSUBSCRIPTION_FACTOR
from mitobatch.batch.errors import BatchError
from mitobatch.standalone_utilities.log_formats import colorized_logger

logger = colorized_logger('mitobatch batch partition-resources')


def parse_args():
    parser = argparse.ArgumentParser(
        prog='mitobatch batch partition-resources',
        description='Print the per-sample thread and memory allocation, and check it for safety.',
    )
    add_argument(parser, 'jobs')
    add_argument(parser, 'total cores')
    return parser.parse_args()


def main():
    args = parse_args()
    try:
        total_cores = args.total_cores if args.total_cores is not None else probe_total_cores()
        jobs = args.jobs if args.jobs is not None else 1
        budget = partition_resources(
            total_cores,
            jobs,
            override_per_job_cores=read_core_override(),
            oversubscription_factor=DEFAULT_OVERSUBSCRIPTION_FACTOR,
        )
    except BatchError as error:
        logger.error(error.message)
        sys.exit(int(error.exit_code))
    print('=== Memory Allocation Analysis ===')
    print(f'Total cores: {budget.total_cores}')
    print(f'Parallel samples: {budget.concurrency}')
    width = max(len(label) for label, _ in memory_breakdown(budget))
    for label, value in memory_breakdown(budget):
        print(f'{label:<{width}}  {value}')
    for warning in budget.warnings:
        logger.warning(warning)


if __name__ == '__main__':
    main()
