"""Exceptions raised while rendering a OneNote page to Markdown."""

from typing import Optional


class ConversionError(Exception):
    """Base exception for page conversion errors."""

    def __init__(self, message: str, page_id: Optional[str] = None):
        super().__init__(message)
        self.page_id = page_id


class MissingDefinition(ConversionError):
    """A style or tag index does not resolve in the page's catalog."""
    pass


class MalformedAttribute(ConversionError):
    """An attribute is missing or cannot be parsed."""
    pass


class MediaResolutionFailure(ConversionError):
    """Binary content for an image could not be fetched, decoded or written."""
    pass


class AttachmentCopyFailure(ConversionError):
    """An inserted file could not be copied next to the page."""
    pass


class RenderCancelled(ConversionError):
    """Rendering stopped because cancellation was requested."""
    pass


__all__ = [
    'AttachmentCopyFailure',
    'ConversionError',
    'MalformedAttribute',
    'MediaResolutionFailure',
    'MissingDefinition',
    'RenderCancelled'
]
