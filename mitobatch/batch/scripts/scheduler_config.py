"""CLI utility to print the job-scheduler submission lines for the per-sample allocation."""
import argparse
import sys

from mitobatch.batch.common.cli_arguments import add_argument
from mitobatch.batch.resources import partition_resources
from mitobatch.batch.resources import probe_total_cores
from mitobatch.batch.resources import read_core_override
from mitobatch.batch.resources import render_scheduler_config
from mitobatch.batch.errors import BatchError
from mitobatch.standalone_utilities.log_formats import colorized_logger

logger = colorized_logger('mitobatch batch scheduler-config')


def parse_args():
    parser = argparse.ArgumentParser(
        prog='mitobatch batch scheduler-config',
        description='Render HP_SH/HP_SHS lines requesting the per-sample cores and memory.',
    )
    add_argument(parser, 'scheduler')
    add_argument(parser, 'jobs')
    add_argument(parser, 'total cores')
    return parser.parse_args()


def main():
    args = parse_args()
    try:
        budget = partition_resources(
            args.total_cores if args.total_cores is not None else probe_total_cores(),
            args.jobs if args.jobs is not None else 1,
            override_per_job_cores=read_core_override(),
        )
        contents = render_scheduler_config(budget, scheduler=args.scheduler or 'bash')
    except BatchError as error:
        logger.error(error.message)
        sys.exit(int(error.exit_code))
    print(contents, end='')


if __name__ == '__main__':
    main()
