"""CLI entry point into the merge phase alone, from the manifest and run report of a finished
batch.
"""
import argparse
import sys
from os.path import join

from mitobatch.batch import get_profile
from mitobatch.batch.common.cli_arguments import add_argument
from mitobatch.batch.coordinator import MANIFEST_FILE
from mitobatch.batch.coordinator import RUN_REPORT_FILE
from mitobatch.batch.manifest import ManifestSerialization
from mitobatch.batch.tracker import BatchReportSerialization
from mitobatch.batch.errors import BatchError
from mitobatch.batch.errors import ConfigurationError
from mitobatch.batch.errors import ExitCode
from mitobatch.standalone_utilities.log_formats import colorized_logger
from mitobatch.standalone_utilities.log_formats import set_verbosity

logger = colorized_logger('mitobatch batch merge-results')


def parse_args():
    parser = argparse.ArgumentParser(
        prog='mitobatch batch merge-results',
        description='Merge the per-sample intermediates of the successful samples of a finished '
        'batch.',
    )
    parser.add_argument('-o', '--output-base', dest='output_base', type=str, required=True,
                        help='Output base of the finished batch.')
    add_argument(parser, 'manifest file')
    add_argument(parser, 'run report file')
    add_argument(parser, 'categories')
    add_argument(parser, 'profile')
    add_argument(parser, 'verbose')
    return parser.parse_args()


def main():
    args = parse_args()
    set_verbosity(args.verbose)
    try:
        profile = get_profile(args.profile)
        manifest_file = args.manifest_file or join(args.output_base, MANIFEST_FILE)
        report_file = args.run_report_file or join(args.output_base, RUN_REPORT_FILE)
        manifest = ManifestSerialization.read(manifest_file)
        report = BatchReportSerialization.read(report_file, manifest)
        if report.succeeded == 0:
            raise ConfigurationError(f'No successful samples recorded in {report_file}.')
        categories = tuple(args.categories) if args.categories else profile.categories
        merger = profile.integrator(args.output_base, categories,
                                    record_suffix=profile.record_suffix)
        outcomes = merger.calculate(report=report)
    except BatchError as error:
        logger.error(error.message)
        sys.exit(int(error.exit_code))
    if any(not outcome.succeeded for outcome in outcomes):
        sys.exit(int(ExitCode.MERGE_FAILED))


if __name__ == '__main__':
    main()
