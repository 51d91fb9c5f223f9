#!/usr/bin/env python3
"""
pathogentrees Command-Line Interface

Downloads the SNP trees of one NCBI Pathogen Detection run, keeps the trees
that pass the date and new-isolate filters, and optionally renders them into
a PDF report.

Configuration is resolved in order: defaults, ``--config`` file,
``PATHOGENTREES_*`` environment variables, command-line flags.
"""

import argparse
import logging
import shutil
import sys
import tempfile
from pathlib import Path
from typing import List, Optional

from . import __version__, config, core, remote, utils
from .dates import parse_date
from .layout import ReportError

logger = logging.getLogger(__name__)


def date_argument(value: str):
    """argparse type for ``MM/DD/YYYY`` and ``YYYY-MM-DD`` dates."""
    parsed = parse_date(value)
    if not parsed.ok:
        raise argparse.ArgumentTypeError(f"invalid date {value!r}: {parsed.reason}")
    return parsed.value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='pathogentrees',
        description='Download and filter SNP trees from the NCBI Pathogen Detection pipeline',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # List the available result sets
  pathogentrees --list

  # Latest Listeria run, trees with an isolate collected in 2024
  pathogentrees latest --from 01/01/2024 --to 12/31/2024

  # Only trees with new isolates, with a PDF report
  pathogentrees latest --set Salmonella --new-isolates --report --outdir salmonella

  # Quick look at the 50 newest trees
  pathogentrees latest --maxTrees 50 --report
        """
    )

    parser.add_argument(
        'run',
        nargs='?',
        default=None,
        help="Run identifier inside the result set, e.g. 'latest' or 'PDG000000001.1234'"
    )

    parser.add_argument(
        '--resultsSet', '--results', '--set',
        dest='result_set',
        default=None,
        help='Result set (organism group) to download (default: Listeria)'
    )

    parser.add_argument(
        '--from',
        dest='date_from',
        type=date_argument,
        default=None,
        help='Keep trees with an isolate dated on or after this day (MM/DD/YYYY or YYYY-MM-DD)'
    )

    parser.add_argument(
        '--to',
        dest='date_to',
        type=date_argument,
        default=None,
        help='Keep trees with an isolate dated on or before this day (default: today)'
    )

    parser.add_argument(
        '--new-isolates',
        action='store_true',
        default=None,
        help='Keep only trees listed in the run\'s new-isolates file'
    )

    parser.add_argument(
        '--report',
        action='store_true',
        default=None,
        help='Write a PDF report of the passing trees to <outdir>/report.pdf'
    )

    parser.add_argument(
        '--maxTrees',
        dest='max_trees',
        type=int,
        default=None,
        help='Consider at most this many of the newest trees; 0 means all (default: 0)'
    )

    parser.add_argument(
        '--tempdir',
        type=Path,
        default=None,
        help='Download directory, kept after the run (default: a temporary directory)'
    )

    parser.add_argument(
        '--outdir',
        type=Path,
        default=None,
        help='Output directory (default: out)'
    )

    parser.add_argument(
        '--list',
        action='store_true',
        help='Print the available result sets and exit'
    )

    parser.add_argument(
        '--domain',
        default=None,
        help='FTP host of the results repository (default: ftp.ncbi.nlm.nih.gov)'
    )

    parser.add_argument(
        '--config',
        type=Path,
        default=None,
        help='YAML or JSON configuration file'
    )

    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default=None,
        help='Logging verbosity (default: INFO)'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'pathogentrees {__version__}'
    )

    return parser


def resolve_config(args: argparse.Namespace) -> config.PipelineConfig:
    """Merge defaults, config file, environment and command-line flags."""
    if args.config:
        cfg = config.load_config_from_file(args.config)
    else:
        cfg = config.get_default_config()

    cfg = cfg.update(**config.load_config_from_env())

    flags = {
        'run_id': args.run,
        'result_set': args.result_set,
        'max_trees': args.max_trees,
        'temp_dir': args.tempdir,
        'output_dir': args.outdir,
        'log_level': args.log_level,
        'remote__domain': args.domain,
        'filters__date_from': args.date_from,
        'filters__date_to': args.date_to,
        'filters__new_isolates': args.new_isolates,
        'report__enabled': args.report,
    }
    return cfg.update(**{key: value for key, value in flags.items() if value is not None})


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.list and not args.run:
        parser.error("a run identifier is required (e.g. 'latest')")

    try:
        cfg = resolve_config(args)
    except (OSError, ValueError, TypeError) as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 1

    if args.list:
        utils.setup_logging(log_level=cfg.log_level)
        try:
            for name in remote.list_result_sets(cfg):
                print(name)
        except remote.RemoteError as e:
            logger.error(f"Could not list result sets: {e}")
            return 1
        return 0

    log_file = cfg.output_dir / "pathogentrees.log"
    try:
        cfg.output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        print(f"Error: cannot create output directory {cfg.output_dir}: {e}", file=sys.stderr)
        return 1
    utils.setup_logging(log_level=cfg.log_level, log_file=str(log_file))

    cleanup_temp = cfg.temp_dir is None
    if cleanup_temp:
        cfg = cfg.update(temp_dir=Path(tempfile.mkdtemp(prefix="pathogentrees_")))

    for warning in config.validate_config(cfg):
        logger.warning(warning)

    try:
        results = core.run_pipeline(cfg)
        return 0 if results['success'] else 1

    except KeyboardInterrupt:
        print("\n\nPipeline interrupted by user", file=sys.stderr)
        return 130
    except (remote.RemoteError, ReportError, OSError, ValueError) as e:
        logger.error(f"Pipeline failed with error: {e}", exc_info=True)
        print(f"\nError: Pipeline failed. Check log file: {log_file}", file=sys.stderr)
        return 1
    finally:
        if cleanup_temp:
            shutil.rmtree(cfg.temp_dir, ignore_errors=True)


if __name__ == '__main__':
    sys.exit(main())
