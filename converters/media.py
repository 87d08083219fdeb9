"""Binary content resolution and attachment import for rendered pages."""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Optional

from converters.errors import AttachmentCopyFailure, MediaResolutionFailure
from fetchers.base_fetcher import BinaryContentProvider, SourceUnavailable

logger = logging.getLogger('onenote_markdown_exporter.converters.media')


class MediaResolver:
    """
    Fetches image payloads and copies inserted files on behalf of the renderer.

    Fetches run on a worker pool so each one can be abandoned after
    ``fetch_timeout`` seconds. The pool needs at least one worker per page
    rendered concurrently, or queued fetches use up their timeout waiting.
    Writes go through the sink, copies through the file importer.
    """

    def __init__(
        self,
        provider: BinaryContentProvider,
        sink,
        importer,
        fetch_timeout: Optional[float] = 30,
        fetch_attempts: int = 1,
        retry_backoff: float = 1.0,
        max_workers: int = 2
    ):
        self.provider = provider
        self.sink = sink
        self.importer = importer
        self.fetch_timeout = fetch_timeout
        self.fetch_attempts = max(1, fetch_attempts)
        self.retry_backoff = retry_backoff
        self.max_workers = max_workers
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.max_workers,
                    thread_name_prefix='media-fetch'
                )
            return self._executor

    def fetch_image(self, page_id: str, reference_id: str) -> bytes:
        """
        Fetch and decode the payload behind a binary reference.

        Args:
            page_id: Page that owns the reference
            reference_id: CallbackID value

        Returns:
            Decoded image bytes

        Raises:
            MediaResolutionFailure: If every attempt failed or timed out
            SourceUnavailable: If the provider reports the source is gone
        """
        last_exception: Optional[Exception] = None

        for attempt in range(self.fetch_attempts):
            try:
                payload = self._fetch_once(page_id, reference_id)
                return BinaryContentProvider.decode_payload(payload)
            except SourceUnavailable:
                raise
            except FutureTimeoutError:
                last_exception = MediaResolutionFailure(
                    f"Fetch of '{reference_id}' timed out after {self.fetch_timeout}s",
                    page_id=page_id
                )
            except Exception as e:
                last_exception = e

            logger.warning(
                f"Fetch attempt {attempt + 1} failed for reference '{reference_id}': {last_exception}"
            )
            if attempt < self.fetch_attempts - 1:
                # Exponential backoff
                time.sleep(self.retry_backoff * (2 ** attempt))

        raise MediaResolutionFailure(
            f"Could not resolve binary reference '{reference_id}': {last_exception}",
            page_id=page_id
        ) from last_exception

    def _fetch_once(self, page_id: str, reference_id: str):
        if self.fetch_timeout is None:
            return self.provider.fetch(page_id, reference_id)
        future = self._get_executor().submit(self.provider.fetch, page_id, reference_id)
        try:
            return future.result(timeout=self.fetch_timeout)
        except FutureTimeoutError:
            future.cancel()
            raise

    def store_image(self, page_id: str, reference_id: str, target_path: str) -> str:
        """Fetch an image and write it to ``target_path`` through the sink."""
        data = self.fetch_image(page_id, reference_id)
        try:
            return self.sink.write_media_file(target_path, data)
        except OSError as e:
            raise MediaResolutionFailure(
                f"Failed to write image '{target_path}': {str(e)}",
                page_id=page_id
            ) from e

    def import_file(self, source_path: str, target_path: str) -> str:
        """
        Copy an inserted file next to the page.

        Raises:
            AttachmentCopyFailure: If the copy fails
        """
        try:
            return self.importer.copy(source_path, target_path)
        except AttachmentCopyFailure:
            raise
        except OSError as e:
            raise AttachmentCopyFailure(
                f"Failed to copy '{source_path}' to '{target_path}': {str(e)}"
            ) from e

    def close(self) -> None:
        """Release the fetch worker pool without waiting for abandoned fetches."""
        with self._executor_lock:
            if self._executor is not None:
                self._executor.shutdown(wait=False)
                self._executor = None


__all__ = ['MediaResolver']
