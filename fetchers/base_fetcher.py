"""Abstract navigator and binary-content interfaces for OneNote sources."""

import base64
import binascii
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Union

from models import HierarchyEntry, HierarchyScope


class FetcherError(Exception):
    """Base exception for fetcher-related errors."""
    pass


class SourceUnavailable(FetcherError):
    """The notebook source can no longer be reached."""
    pass


class SourceParseError(FetcherError):
    """Raw page or hierarchy XML could not be parsed."""
    pass


class HierarchyNavigator(ABC):
    """Lists notebook objects and retrieves raw page XML."""

    @abstractmethod
    def list_children(
        self,
        container_id: Optional[str],
        scope: HierarchyScope = HierarchyScope.CHILDREN
    ) -> List[HierarchyEntry]:
        """
        List objects below a container.

        Args:
            container_id: Notebook, section group or section ID (None for the root)
            scope: How deep the listing reaches

        Returns:
            Entries in source order
        """
        pass

    @abstractmethod
    def resolve_id(self, scope: HierarchyScope, name: str) -> Optional[str]:
        """
        Find the ID of the first object with the given name.

        Args:
            scope: NOTEBOOKS, SECTIONS or PAGES
            name: Display name to look up

        Returns:
            Object ID, or None if nothing matches
        """
        pass

    @abstractmethod
    def fetch_page_xml(self, page_id: str) -> str:
        """Return the raw page content XML for a page ID."""
        pass


class BinaryContentProvider(ABC):
    """Retrieves the binary payload behind an image's callback reference."""

    @abstractmethod
    def fetch(self, page_id: str, reference_id: str) -> Union[bytes, str]:
        """
        Fetch binary content.

        Args:
            page_id: Page that owns the reference
            reference_id: Value of the CallbackID element

        Returns:
            Raw bytes, or a base64 string as OneNote hands it out
        """
        pass

    @staticmethod
    def decode_payload(payload: Union[bytes, str]) -> bytes:
        """Normalize a fetched payload to bytes, decoding base64 text."""
        if isinstance(payload, bytes):
            return payload
        try:
            return base64.b64decode(payload, validate=False)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Invalid base64 payload: {str(e)}") from e


class BaseFetcher(HierarchyNavigator, BinaryContentProvider):
    """Common base for sources that act as both navigator and content provider."""

    def __init__(self, config: Dict[str, Any], logger=None):
        """
        Initialize base fetcher with configuration and logger.

        Args:
            config: Configuration dictionary
            logger: Logger instance (optional, uses module logger if not provided)
        """
        self.config = config
        self.logger = logger or logging.getLogger('onenote_markdown_exporter.fetcher')

    def _log_progress(self, message: str, level: str = 'info') -> None:
        """Log progress message at specified level."""
        log_method = getattr(self.logger, level, self.logger.info)
        log_method(message)


__all__ = [
    'BaseFetcher',
    'BinaryContentProvider',
    'FetcherError',
    'HierarchyNavigator',
    'SourceParseError',
    'SourceUnavailable'
]
