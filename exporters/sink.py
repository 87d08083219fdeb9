"""Output sinks for rendered pages and their media, and attachment importers."""

import logging
import os
import re
import shutil
import tempfile
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List

from converters.errors import AttachmentCopyFailure
from models import PageArtifact

logger = logging.getLogger('onenote_markdown_exporter.exporters.sink')


class Sink(ABC):
    """
    Destination for page artifacts and media files.

    The sink tracks a stack of output directories that mirrors the notebook
    hierarchy being walked; use ``directory()`` so every push is popped.
    """

    def __init__(self, root_directory: str = '.'):
        self.root_directory = root_directory
        self._directory_stack: List[str] = [root_directory]

    @property
    def current_directory(self) -> str:
        return self._directory_stack[-1]

    def push_directory(self, name: str) -> str:
        """Enter a subdirectory named after a notebook object."""
        path = os.path.join(self.current_directory, self.sanitize_name(name))
        self._prepare_directory(path)
        self._directory_stack.append(path)
        logger.debug(f"Entered directory: {path}")
        return path

    def pop_directory(self) -> str:
        """Leave the current subdirectory."""
        if len(self._directory_stack) == 1:
            raise RuntimeError("Cannot pop the sink's root directory")
        return self._directory_stack.pop()

    @contextmanager
    def directory(self, name: str) -> Iterator[str]:
        """Context manager pairing push_directory with pop_directory."""
        path = self.push_directory(name)
        try:
            yield path
        finally:
            self.pop_directory()

    @staticmethod
    def sanitize_name(name: str) -> str:
        """
        Convert a title to a filesystem-safe name.

        Args:
            name: Notebook, section or page title

        Returns:
            Sanitized name
        """
        if not name:
            return "untitled"

        # Convert to lowercase
        sanitized = name.lower()

        # Replace spaces and special characters with hyphens
        sanitized = re.sub(r'[^\w\-]', '-', sanitized)

        # Remove consecutive hyphens
        sanitized = re.sub(r'-+', '-', sanitized)

        # Remove leading/trailing hyphens
        sanitized = sanitized.strip('-')

        # Truncate to reasonable length
        max_len = 100
        if len(sanitized) > max_len:
            sanitized = sanitized[:max_len]

        # Ensure it's not empty
        return sanitized or "untitled"

    def _prepare_directory(self, path: str) -> None:
        """Hook for sinks that need directories to exist up front."""
        pass

    @abstractmethod
    def write_media_file(self, path: str, data: bytes) -> str:
        """Write a media file and return the path written."""
        pass

    @abstractmethod
    def write_page_artifact(self, artifact: PageArtifact) -> str:
        """Write a page's Markdown to ``artifact.output_path`` and return it."""
        pass

    @abstractmethod
    def remove_files(self, paths: Iterable[str]) -> None:
        """Remove previously written files; missing files are ignored."""
        pass


class FileSystemSink(Sink):
    """Writes pages and media to disk, staging each file before renaming it into place."""

    def __init__(self, root_directory: str):
        super().__init__(os.path.abspath(root_directory))
        os.makedirs(self.root_directory, exist_ok=True)
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, path: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(os.path.abspath(path), threading.Lock())

    def _prepare_directory(self, path: str) -> None:
        os.makedirs(path, exist_ok=True)

    def _write_atomic(self, path: str, data: bytes) -> str:
        directory = os.path.dirname(path) or '.'
        os.makedirs(directory, exist_ok=True)

        with self._lock_for(path):
            fd, staging_path = tempfile.mkstemp(
                dir=directory,
                prefix='.' + os.path.basename(path) + '.',
                suffix='.tmp'
            )
            try:
                with os.fdopen(fd, 'wb') as f:
                    f.write(data)
                os.replace(staging_path, path)
            except BaseException:
                if os.path.exists(staging_path):
                    os.remove(staging_path)
                raise

        return path

    def write_media_file(self, path: str, data: bytes) -> str:
        self._write_atomic(path, data)
        logger.debug(f"Wrote media file: {path} ({len(data)} bytes)")
        return path

    def write_page_artifact(self, artifact: PageArtifact) -> str:
        self._write_atomic(artifact.output_path, artifact.content.encode('utf-8'))
        logger.debug(f"Wrote page: {artifact.output_path}")
        return artifact.output_path

    def remove_files(self, paths: Iterable[str]) -> None:
        for path in paths:
            with self._lock_for(path):
                try:
                    os.remove(path)
                    logger.debug(f"Removed file: {path}")
                except FileNotFoundError:
                    continue
                except OSError as e:
                    logger.warning(f"Failed to remove '{path}': {str(e)}")


class MemorySink(Sink):
    """Keeps written files in memory; used for previews and dry runs."""

    def __init__(self, root_directory: str = '.'):
        super().__init__(root_directory)
        self.files: Dict[str, bytes] = {}
        self.pages: Dict[str, PageArtifact] = {}
        self._lock = threading.Lock()

    def write_media_file(self, path: str, data: bytes) -> str:
        with self._lock:
            self.files[path] = data
        return path

    def write_page_artifact(self, artifact: PageArtifact) -> str:
        with self._lock:
            self.files[artifact.output_path] = artifact.content.encode('utf-8')
            self.pages[artifact.output_path] = artifact
        return artifact.output_path

    def remove_files(self, paths: Iterable[str]) -> None:
        with self._lock:
            for path in paths:
                self.files.pop(path, None)
                self.pages.pop(path, None)


class FileImporter(ABC):
    """Copies files referenced by InsertedFile elements."""

    @abstractmethod
    def copy(self, source_path: str, dest_path: str) -> str:
        """
        Copy ``source_path`` to ``dest_path``.

        Returns:
            Path of the copy

        Raises:
            AttachmentCopyFailure: If the copy fails
        """
        pass


class LocalFileImporter(FileImporter):
    """Copies attachments on the local filesystem."""

    def copy(self, source_path: str, dest_path: str) -> str:
        try:
            os.makedirs(os.path.dirname(dest_path) or '.', exist_ok=True)
            shutil.copy2(source_path, dest_path)
        except OSError as e:
            raise AttachmentCopyFailure(
                f"Failed to copy attachment '{source_path}' to '{dest_path}': {str(e)}"
            ) from e
        logger.debug(f"Copied attachment: {source_path} -> {dest_path}")
        return dest_path


class DryRunFileImporter(FileImporter):
    """Checks that attachments exist without copying them."""

    def copy(self, source_path: str, dest_path: str) -> str:
        if not os.path.isfile(source_path):
            raise AttachmentCopyFailure(f"Attachment source not found: {source_path}")
        logger.info(f"[DRY RUN] Would copy attachment: {source_path} -> {dest_path}")
        return dest_path


__all__ = [
    'DryRunFileImporter',
    'FileImporter',
    'FileSystemSink',
    'LocalFileImporter',
    'MemorySink',
    'Sink'
]
