"""CLI utility to check that two batch runs produced identical merged artifacts."""
import argparse
import sys

from mitobatch.batch.common.cli_arguments import add_argument
from mitobatch.batch.equivalence import compare_outputs
from mitobatch.batch.equivalence import log_comparisons
from mitobatch.batch.errors import BatchError
from mitobatch.batch.errors import ExitCode
from mitobatch.standalone_utilities.log_formats import colorized_logger

logger = colorized_logger('mitobatch batch compare-outputs')


def parse_args():
    parser = argparse.ArgumentParser(
        prog='mitobatch batch compare-outputs',
        description='Compare the merged artifacts of two output directories by SHA-256 digest.',
    )
    parser.add_argument('first', help='Output base of the first run, e.g. a sequential run.')
    parser.add_argument('second', help='Output base of the second run.')
    add_argument(parser, 'categories')
    return parser.parse_args()


def main():
    args = parse_args()
    categories = tuple(args.categories) if args.categories else None
    try:
        comparisons = compare_outputs(args.first, args.second, categories=categories)
    except BatchError as error:
        logger.error(error.message)
        sys.exit(int(error.exit_code))
    if not log_comparisons(comparisons):
        sys.exit(int(ExitCode.FAILURE))


if __name__ == '__main__':
    main()
