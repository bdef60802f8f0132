"""CLI utility to discover the sample directories under a root and write the ordered manifest."""
import argparse
import sys
from os import makedirs
from os.path import join

from mitobatch.batch import get_profile
from mitobatch.batch.common.cli_arguments import add_argument
from mitobatch.batch.configuration import load_settings
from mitobatch.batch.coordinator import MANIFEST_FILE
from mitobatch.batch.manifest import SampleIdentifierExtractor
from mitobatch.batch.errors import BatchError
from mitobatch.standalone_utilities.log_formats import colorized_logger
from mitobatch.standalone_utilities.log_formats import set_verbosity

logger = colorized_logger('mitobatch batch build-manifest')


def parse_args():
    parser = argparse.ArgumentParser(
        prog='mitobatch batch build-manifest',
        description='Write the ordered manifest of sample directories without running anything.',
    )
    add_argument(parser, 'root')
    add_argument(parser, 'output base')
    add_argument(parser, 'identifier policy')
    add_argument(parser, 'config file')
    add_argument(parser, 'profile')
    add_argument(parser, 'manifest file')
    add_argument(parser, 'verbose')
    return parser.parse_args()


def main():
    args = parse_args()
    set_verbosity(args.verbose)
    try:
        settings = load_settings(
            args.root,
            config_file=args.config_file,
            overrides={
                'output_base': args.output_base,
                'identifier_policy': args.identifier_policy,
            },
            profile_name=args.profile,
        )
        profile = get_profile(settings.profile)
        generator = profile.generator(
            settings.root,
            settings.output_base,
            input_kinds=profile.input_kinds,
            input_extensions=profile.input_extensions,
            extractor=SampleIdentifierExtractor(
                policy=settings.identifier_policy,
                extensions=profile.input_extensions,
            ),
        )
        manifest_file = args.manifest_file
        if manifest_file is None:
            makedirs(settings.output_base, exist_ok=True)
            manifest_file = join(settings.output_base, MANIFEST_FILE)
        manifest = generator.write_job_specification_table(manifest_file)
    except BatchError as error:
        logger.error(error.message)
        sys.exit(int(error.exit_code))
    logger.info('Wrote %s entries to %s', len(manifest), manifest_file)


if __name__ == '__main__':
    main()
