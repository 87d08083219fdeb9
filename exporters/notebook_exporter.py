"""Exports OneNote notebooks, section groups, sections and pages to Markdown files."""

import logging
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

from tqdm import tqdm

from config_loader import get_nested
from converters.errors import ConversionError, RenderCancelled
from converters.markdown_renderer import MarkdownRenderer
from converters.media import MediaResolver
from converters.page_assembler import PageAssembler
from converters.xml_parser import parse_page_xml
from fetchers.base_fetcher import BaseFetcher, FetcherError, SourceUnavailable
from logger import ProgressTracker
from models import HierarchyEntry, HierarchyScope, ObjectKind, PageArtifact, PageExportStatus
from .sink import DryRunFileImporter, FileImporter, FileSystemSink, LocalFileImporter, MemorySink, Sink


class NotebookExporter:
    """
    Walks a notebook hierarchy and writes one Markdown file per page.

    Section groups and sections become nested directories; notebooks only
    get their own directory when several are exported in one run.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        fetcher: BaseFetcher,
        sink: Optional[Sink] = None,
        importer: Optional[FileImporter] = None,
        logger: Optional[logging.Logger] = None,
        cancel_event: Optional[threading.Event] = None
    ):
        """
        Initialize the notebook exporter.

        Args:
            config: Configuration dictionary
            fetcher: Navigator and binary content provider
            sink: Output sink (defaults to the filesystem, or memory for dry runs)
            importer: Attachment importer (defaults to a local copy, or a check for dry runs)
            logger: Logger instance
            cancel_event: Set to stop the export between elements of a page
        """
        self.config = config
        self.fetcher = fetcher
        self.logger = logger or logging.getLogger('onenote_markdown_exporter.exporters.notebook_exporter')
        self.cancel_event = cancel_event or threading.Event()

        self.dry_run = bool(get_nested(config, 'migration.dry_run', False))
        output_directory = get_nested(config, 'export.output_directory', './markdown-export')

        if sink is None:
            sink = MemorySink(output_directory) if self.dry_run else FileSystemSink(output_directory)
        if importer is None:
            importer = DryRunFileImporter() if self.dry_run else LocalFileImporter()
        self.sink = sink

        self.max_workers = get_nested(config, 'export.max_workers', 1)
        self.show_progress = get_nested(config, 'export.progress_bars', True)

        self.media = MediaResolver(
            provider=fetcher,
            sink=sink,
            importer=importer,
            fetch_timeout=get_nested(config, 'media.fetch_timeout', 30),
            fetch_attempts=get_nested(config, 'media.fetch_attempts', 1),
            retry_backoff=get_nested(config, 'media.retry_backoff', 1.0),
            max_workers=max(2, self.max_workers)
        )
        self.assembler = PageAssembler(
            MarkdownRenderer(self.media),
            sink,
            media_directory_name=get_nested(config, 'export.media_directory', 'media'),
            default_image_format=get_nested(config, 'export.default_image_format', 'png')
        )

        self.stats = {
            'notebooks_processed': 0,
            'section_groups_processed': 0,
            'sections_processed': 0,
            'pages_exported': 0,
            'pages_failed': 0,
            'images_written': 0,
            'images_failed': 0,
            'files_copied': 0,
            'total_errors': 0
        }
        self.page_statuses: List[PageExportStatus] = []
        self._stats_lock = threading.Lock()

        self.logger.info(f"NotebookExporter initialized (dry run: {self.dry_run})")

    def export_all(self) -> Dict[str, Any]:
        """
        Export every notebook, or only those listed in migration.notebooks.

        Returns:
            Statistics dictionary with export results
        """
        selected = get_nested(self.config, 'migration.notebooks') or []
        notebooks = [
            entry for entry in self.fetcher.list_children(None, HierarchyScope.CHILDREN)
            if entry.kind is ObjectKind.NOTEBOOK and (not selected or entry.name in selected)
        ]

        missing = set(selected) - {entry.name for entry in notebooks}
        for name in sorted(missing):
            self.logger.error(f"Notebook not found: {name}")
            self.stats['total_errors'] += 1

        for notebook in notebooks:
            if len(notebooks) > 1:
                with self.sink.directory(notebook.name):
                    self._export_notebook_entry(notebook)
            else:
                self._export_notebook_entry(notebook)

        self.log_export_summary()
        return self.get_stats()

    def export_notebook(self, notebook_name: str) -> bool:
        """
        Export a notebook into the sink's current directory.

        Returns:
            False if no notebook has that name
        """
        notebook_id = self.fetcher.resolve_id(HierarchyScope.NOTEBOOKS, notebook_name)
        if not notebook_id:
            self.logger.error(f"Notebook not found: {notebook_name}")
            self.stats['total_errors'] += 1
            return False

        self._export_notebook_entry(HierarchyEntry(notebook_id, notebook_name, ObjectKind.NOTEBOOK))
        return True

    def _export_notebook_entry(self, notebook: HierarchyEntry) -> None:
        self.logger.info(f"Exporting notebook '{notebook.name}'")
        self._export_container_children(notebook.id)
        self.stats['notebooks_processed'] += 1

    def _export_container_children(self, container_id: str) -> None:
        """Export section groups first, then sections, as listed under a container."""
        children = self.fetcher.list_children(container_id, HierarchyScope.CHILDREN)

        for entry in children:
            if entry.kind is ObjectKind.SECTION_GROUP:
                self.export_section_group(entry.id, entry.name)

        for entry in children:
            if entry.kind is ObjectKind.SECTION:
                self.export_section(entry.id, entry.name)

    def export_section_group(self, section_group_id: str, section_group_name: str) -> None:
        """Export a section group into a directory of the same name."""
        if not section_group_id:
            return

        self.logger.info(f"Exporting section group '{section_group_name}'")
        with self.sink.directory(section_group_name):
            self._export_container_children(section_group_id)
        self.stats['section_groups_processed'] += 1

    def export_section_by_name(self, section_name: str) -> bool:
        """
        Export the first section with the given name.

        Returns:
            False if no section has that name
        """
        section_id = self.fetcher.resolve_id(HierarchyScope.SECTIONS, section_name)
        if not section_id:
            self.logger.error(f"Section not found: {section_name}")
            self.stats['total_errors'] += 1
            return False

        self.export_section(section_id, section_name)
        return True

    def export_section(self, section_id: str, section_name: str) -> None:
        """Export every page of a section into a directory of the same name."""
        if not section_id:
            return

        pages = [
            entry for entry in self.fetcher.list_children(section_id, HierarchyScope.CHILDREN)
            if entry.kind is ObjectKind.PAGE
        ]
        self.logger.info(f"Exporting section '{section_name}' ({len(pages)} page(s))")

        with self.sink.directory(section_name) as directory:
            with ProgressTracker(total_items=len(pages), item_type='pages', scope=section_name) as tracker:
                if self.max_workers > 1 and len(pages) > 1:
                    self._export_pages_concurrently(pages, directory, tracker)
                else:
                    pages_iter = pages
                    if self._should_show_progress():
                        pages_iter = tqdm(pages, desc=f"Section: {section_name[:30]}", leave=False)
                    for entry in pages_iter:
                        success = self._export_page_entry(entry, directory)
                        tracker.increment(success=success)

        self.stats['sections_processed'] += 1

    def _export_pages_concurrently(self, pages: List[HierarchyEntry], directory: str,
                                   tracker: ProgressTracker) -> None:
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [
                executor.submit(self._export_page_entry, entry, directory)
                for entry in pages
            ]
            if self._should_show_progress():
                futures = tqdm(futures, desc="Exporting pages", total=len(pages), leave=False)

            first_error: Optional[BaseException] = None
            try:
                for future in futures:
                    try:
                        tracker.increment(success=future.result())
                    except (SourceUnavailable, RenderCancelled) as e:
                        # Stop the remaining pages and re-raise once the pool has drained
                        self.cancel_event.set()
                        tracker.increment(success=False)
                        if first_error is None:
                            first_error = e
            except KeyboardInterrupt:
                self.cancel_event.set()
                raise

        if first_error is not None:
            raise first_error

    def export_page(self, page_id: str) -> Optional[PageArtifact]:
        """
        Export one page into the sink's current directory.

        Returns:
            The written PageArtifact, or None if the page failed
        """
        return self._export_page(page_id, self.sink.current_directory)

    def _export_page_entry(self, entry: HierarchyEntry, directory: str) -> bool:
        return self._export_page(entry.id, directory, entry.name) is not None

    def _export_page(self, page_id: str, directory: str, page_name: str = '') -> Optional[PageArtifact]:
        """
        Fetch, render and write a page.

        Conversion and fetch errors are recorded and the page is skipped.
        SourceUnavailable and RenderCancelled propagate.
        """
        if self.cancel_event.is_set():
            raise RenderCancelled(f"Export cancelled before page '{page_name or page_id}'", page_id=page_id)

        try:
            artifact = self._assemble(page_id, directory)
            try:
                self.sink.write_page_artifact(artifact)
            except OSError:
                self.sink.remove_files(artifact.media_files)
                raise
        except (SourceUnavailable, RenderCancelled):
            raise
        except (FetcherError, ConversionError, OSError) as e:
            self.logger.error(f"Failed to export page '{page_name or page_id}': {str(e)}")
            self._record(PageExportStatus(page_id, page_name, 'failed', error_message=str(e)))
            return None

        self.logger.info(f"Exported page '{artifact.title}' -> {artifact.output_path}")
        self._record(PageExportStatus(page_id, artifact.title, 'exported', output_path=artifact.output_path),
                     artifact)
        return artifact

    def preview_page(self, page_id: str) -> PageArtifact:
        """Render a page into memory without writing anything to the output directory."""
        preview_sink = MemorySink(self.sink.current_directory)
        media = MediaResolver(
            provider=self.fetcher,
            sink=preview_sink,
            importer=DryRunFileImporter(),
            fetch_timeout=self.media.fetch_timeout,
            fetch_attempts=self.media.fetch_attempts,
            retry_backoff=self.media.retry_backoff
        )
        assembler = PageAssembler(
            MarkdownRenderer(media),
            preview_sink,
            media_directory_name=self.assembler.media_directory_name,
            default_image_format=self.assembler.default_image_format
        )
        try:
            tree = parse_page_xml(self.fetcher.fetch_page_xml(page_id))
            artifact = assembler.assemble(page_id, tree, cancel_event=self.cancel_event)
        finally:
            media.close()

        self._record(PageExportStatus(page_id, artifact.title, 'previewed', output_path=artifact.output_path))
        return artifact

    def _assemble(self, page_id: str, directory: str) -> PageArtifact:
        xml_content = self.fetcher.fetch_page_xml(page_id)
        tree = parse_page_xml(xml_content)
        return self.assembler.assemble(page_id, tree, directory, cancel_event=self.cancel_event)

    def _record(self, status: PageExportStatus, artifact: Optional[PageArtifact] = None) -> None:
        with self._stats_lock:
            self.page_statuses.append(status)
            if status.status == 'failed':
                self.stats['pages_failed'] += 1
                self.stats['total_errors'] += 1
            elif status.status == 'exported':
                self.stats['pages_exported'] += 1
            if artifact is not None:
                self.stats['images_written'] += artifact.stats.get('images_written', 0)
                self.stats['images_failed'] += artifact.stats.get('images_failed', 0)
                self.stats['files_copied'] += artifact.stats.get('files_copied', 0)

    def _should_show_progress(self) -> bool:
        """Check if progress bars should be displayed."""
        if not self.show_progress:
            return False
        if not sys.stdout.isatty():
            return False
        return True

    def get_stats(self) -> Dict[str, Any]:
        """Get export statistics including per-page outcomes."""
        with self._stats_lock:
            stats = dict(self.stats)
            stats['pages'] = [status.to_dict() for status in self.page_statuses]
        return stats

    def close(self) -> None:
        """Release the media fetch workers."""
        self.media.close()

    def log_export_summary(self) -> None:
        """Log final export statistics."""
        self.logger.info("=" * 60)
        self.logger.info("MARKDOWN EXPORT SUMMARY")
        self.logger.info("=" * 60)
        self.logger.info(f"Notebooks processed: {self.stats['notebooks_processed']}")
        self.logger.info(f"Section groups processed: {self.stats['section_groups_processed']}")
        self.logger.info(f"Sections processed: {self.stats['sections_processed']}")
        self.logger.info(f"Pages exported: {self.stats['pages_exported']}")
        self.logger.info(f"Pages failed: {self.stats['pages_failed']}")
        self.logger.info(f"Images written: {self.stats['images_written']}")
        if self.stats['images_failed'] > 0:
            self.logger.info(f"Images skipped: {self.stats['images_failed']}")
        self.logger.info(f"Attachments copied: {self.stats['files_copied']}")
        self.logger.info(f"Total errors: {self.stats['total_errors']}")
        self.logger.info(f"Output directory: {self.sink.root_directory}")
        self.logger.info("=" * 60)


__all__ = ['NotebookExporter']
