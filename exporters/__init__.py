"""Markdown export package for the OneNote to Markdown exporter.

This package writes rendered OneNote pages to local Markdown files, mirroring
the notebook hierarchy as nested directories.

Package Structure:
- notebook_exporter: Walks notebooks, section groups and sections and exports their pages
- sink: Filesystem and in-memory output sinks plus attachment importers

Key Features:
- Section groups and sections become directories named after their titles
- Page files and media are staged and renamed into place
- Media of an abandoned page is removed again
- Pages of a section can be rendered concurrently
- Dry runs render everything into memory

Configuration Referenced:
- export.output_directory: Base output path for exported files
- export.media_directory: Directory next to each page for images and attachments
- export.max_workers: Pages rendered concurrently within a section
- migration.dry_run: Render without writing to disk
"""

from .notebook_exporter import NotebookExporter
from .sink import (
    DryRunFileImporter,
    FileImporter,
    FileSystemSink,
    LocalFileImporter,
    MemorySink,
    Sink
)

__all__ = [
    'DryRunFileImporter',
    'FileImporter',
    'FileSystemSink',
    'LocalFileImporter',
    'MemorySink',
    'NotebookExporter',
    'Sink'
]
