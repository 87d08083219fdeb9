#!/usr/bin/env python3
"""
OneNote to Markdown Export Tool - Main CLI Entry Point

This script provides the command-line interface for exporting OneNote
notebooks, sections and single pages from a OneNote export directory to
Markdown files, mirroring section groups and sections as directories.
"""

import argparse
import logging
import os
import signal
import sys
import threading

from config_loader import ConfigLoader, get_nested
from converters import RenderCancelled, format_outline, parse_page_xml
from exporters import MemorySink, NotebookExporter
from fetchers import ExportFetcher, FetcherError, SourceUnavailable
from logger import LOGGER_NAME, log_config, log_section, setup_logging

# Version
__version__ = "1.0.0"

DEFAULT_CONFIG_PATH = 'config.yaml'


def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for CLI."""
    parser = argparse.ArgumentParser(
        description="Export OneNote notebooks to Markdown files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Export every notebook in an export directory
  onenote2md --source ./onenote-export --output ./markdown

  # Export selected notebooks
  onenote2md --notebook "Work" --notebook "Recipes"

  # Export a single section
  onenote2md --section "Meeting Notes"

  # Print one page as Markdown without writing anything
  onenote2md --page-id "{page-id}" --preview

  # Show the element outline of a page for debugging
  onenote2md --outline "{page-id}"

  # Dry-run mode (render everything, write nothing)
  onenote2md --dry-run -v
        """
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    parser.add_argument(
        '--config',
        type=str,
        default=None,
        help=f'Path to configuration YAML file (default: {DEFAULT_CONFIG_PATH} if present)'
    )

    parser.add_argument(
        '--source',
        type=str,
        help='OneNote export directory (overrides source.export_path)'
    )

    parser.add_argument(
        '--output', '--output-dir',
        dest='output_dir',
        type=str,
        help='Output directory for Markdown files (overrides export.output_directory)'
    )

    parser.add_argument(
        '--notebook',
        dest='notebooks',
        action='append',
        help='Notebook to export (repeatable; default: all notebooks)'
    )

    parser.add_argument(
        '--section',
        type=str,
        help='Export only the section with this name'
    )

    parser.add_argument(
        '--page-id',
        type=str,
        help='Export only the page with this ID'
    )

    parser.add_argument(
        '--preview',
        action='store_true',
        help='Print the page given by --page-id as Markdown instead of writing it'
    )

    parser.add_argument(
        '--outline',
        metavar='PAGE_ID',
        type=str,
        help='Print the element outline of a page and exit'
    )

    parser.add_argument(
        '--dry-run',
        action=argparse.BooleanOptionalAction,
        default=None,
        help='Render pages without writing files'
    )

    parser.add_argument(
        '--workers',
        type=int,
        help='Pages rendered concurrently within a section (overrides export.max_workers)'
    )

    parser.add_argument(
        '--no-progress',
        action='store_true',
        help='Disable progress bars'
    )

    parser.add_argument(
        '--log-file',
        type=str,
        help='Write logs to this file as well'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='count',
        default=0,
        help='Increase verbosity (-v for INFO, -vv for DEBUG)'
    )

    return parser


def load_configuration(args: argparse.Namespace) -> dict:
    """Load the config file (if any), apply CLI overrides and validate."""
    config_path = args.config
    if config_path is None and os.path.exists(DEFAULT_CONFIG_PATH):
        config_path = DEFAULT_CONFIG_PATH

    if config_path is not None:
        config = ConfigLoader.load(config_path)
    else:
        config = ConfigLoader.with_defaults({})

    config = ConfigLoader.merge_with_args(config, args)
    ConfigLoader.validate(config)
    return config


def run_export(config: dict, args: argparse.Namespace, logger: logging.Logger) -> int:
    """Execute the export selected by the CLI arguments."""
    fetcher = ExportFetcher(config, logger)

    if args.outline:
        tree = parse_page_xml(fetcher.fetch_page_xml(args.outline))
        print(format_outline(tree))
        return 0

    page_id = get_nested(config, 'migration.page_id')
    section = get_nested(config, 'migration.section')
    dry_run = get_nested(config, 'migration.dry_run', False)

    if args.preview and not page_id:
        logger.error("--preview requires --page-id")
        return 2

    cancel_event = threading.Event()
    exporter = NotebookExporter(config, fetcher, logger=logger, cancel_event=cancel_event)

    def request_cancel(signum, frame):
        logger.warning("Cancellation requested, stopping after the current element (press Ctrl+C again to abort)")
        cancel_event.set()
        signal.signal(signal.SIGINT, previous_handler)

    previous_handler = signal.signal(signal.SIGINT, request_cancel)

    try:
        if args.preview:
            artifact = exporter.preview_page(page_id)
            print(artifact.content)
            return 0

        if page_id:
            artifact = exporter.export_page(page_id)
            exporter.log_export_summary()
            if artifact is None:
                return 1
        elif section:
            if not exporter.export_section_by_name(section):
                return 1
            exporter.log_export_summary()
        else:
            exporter.export_all()

        if dry_run:
            _print_dry_run_preview(exporter.sink)

        errors = exporter.get_stats()['total_errors']
        if errors > 0:
            logger.warning(f"Export completed with {errors} errors")
            return 1

        logger.info("Export completed successfully")
        return 0

    except (RenderCancelled, KeyboardInterrupt):
        logger.error("Export interrupted by user")
        return 130
    except SourceUnavailable as e:
        logger.error(f"Export source unavailable: {str(e)}")
        return 1
    except FetcherError as e:
        logger.error(f"Export failed: {str(e)}")
        return 1
    finally:
        signal.signal(signal.SIGINT, previous_handler)
        exporter.close()


def _print_dry_run_preview(sink) -> None:
    """Print the pages a dry run would have written."""
    print("\n" + "=" * 60)
    print("EXPORT PREVIEW (DRY RUN)")
    print("=" * 60)

    if not isinstance(sink, MemorySink):
        print("\nNo in-memory sink; nothing to preview")
        return

    media_count = len(sink.files) - len(sink.pages)
    print(f"\nPages: {len(sink.pages)}")
    print(f"Media files: {media_count}")

    print("\nPages to write:")
    print("-" * 60)
    for path in sorted(sink.pages):
        print(f"  {os.path.relpath(path, sink.root_directory)}")

    print("\n" + "=" * 60)


def main() -> int:
    """Main entry point for the CLI."""
    parser = create_argument_parser()
    args = parser.parse_args()

    try:
        setup_logging(verbosity=args.verbose)
        logger = logging.getLogger(LOGGER_NAME)

        log_section("OneNote to Markdown Export Tool")
        logger.info(f"Version: {__version__}")

        config = load_configuration(args)

        # Reconfigure logging with config file settings
        setup_logging(
            verbosity=args.verbose,
            log_file=get_nested(config, 'logging.file'),
            level=get_nested(config, 'logging.level')
        )

        log_config(config)

        return run_export(config, args, logger)

    except FileNotFoundError as e:
        print(f"ERROR: File not found: {e}", file=sys.stderr)
        return 2
    except ValueError as e:
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        return 2
    except SourceUnavailable as e:
        print(f"ERROR: Export source unavailable: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nExport interrupted by user", file=sys.stderr)
        return 130
    except Exception as e:
        print(f"ERROR: Unexpected error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
