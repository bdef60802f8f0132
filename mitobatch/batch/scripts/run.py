"""CLI entry point into a full batch run: discover, dispatch, track and merge."""
import argparse
import sys

from mitobatch.batch.common.cli_arguments import add_argument
from mitobatch.batch.configuration import load_settings
from mitobatch.batch.coordinator import BatchCoordinator
from mitobatch.batch.errors import BatchError
from mitobatch.standalone_utilities.log_formats import colorized_logger
from mitobatch.standalone_utilities.log_formats import set_verbosity

logger = colorized_logger('mitobatch batch run')


def parse_args(arguments=None):
    parser = argparse.ArgumentParser(
        prog='mitobatch batch run',
        description='Run the pipeline on every sample directory under a root directory, in '
        'parallel, and merge the per-sample results.',
    )
    add_argument(parser, 'root')
    add_argument(parser, 'jobs')
    add_argument(parser, 'container image')
    add_argument(parser, 'output base')
    add_argument(parser, 'verbose')
    add_argument(parser, 'dry run')
    add_argument(parser, 'config file')
    add_argument(parser, 'container platform')
    add_argument(parser, 'executable')
    add_argument(parser, 'grace period')
    add_argument(parser, 'identifier policy')
    add_argument(parser, 'scheduler')
    add_argument(parser, 'profile')
    return parser.parse_args(arguments)


def main(arguments=None):
    args = parse_args(arguments)
    set_verbosity(args.verbose)
    try:
        settings = load_settings(
            args.root,
            config_file=args.config_file,
            overrides={
                'jobs': args.jobs,
                'container_image': args.container_image,
                'container_platform': args.container_platform,
                'executable': args.executable,
                'output_base': args.output_base,
                'grace_period': args.grace_period,
                'identifier_policy': args.identifier_policy,
                'scheduler': args.scheduler,
                'dry_run': args.dry_run,
                'verbose': args.verbose,
            },
            profile_name=args.profile,
        )
        exit_code = BatchCoordinator(settings).run()
    except BatchError as error:
        logger.error(error.message)
        sys.exit(int(error.exit_code))
    sys.exit(int(exit_code))


if __name__ == '__main__':
    main()
