"""Fetchers package for navigating OneNote notebooks and retrieving page content."""

from .base_fetcher import (
    BaseFetcher,
    BinaryContentProvider,
    FetcherError,
    HierarchyNavigator,
    SourceParseError,
    SourceUnavailable
)
from .export_fetcher import ExportFetcher

__all__ = [
    'BaseFetcher',
    'BinaryContentProvider',
    'ExportFetcher',
    'FetcherError',
    'HierarchyNavigator',
    'SourceParseError',
    'SourceUnavailable'
]
