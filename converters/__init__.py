"""Converters package for rendering OneNote page XML to Markdown."""

import logging
import threading
from typing import Optional, Union

from .errors import (
    AttachmentCopyFailure,
    ConversionError,
    MalformedAttribute,
    MediaResolutionFailure,
    MissingDefinition,
    RenderCancelled
)
from .markdown_renderer import MarkdownRenderer
from .media import MediaResolver
from .page_assembler import PageAssembler
from .style_catalog import StyleCatalog
from .xml_parser import format_outline, parse_page_xml

logger = logging.getLogger('onenote_markdown_exporter.converters')


def convert_page_xml(
    page_id: str,
    xml_content: Union[str, bytes],
    sink,
    media: Optional[MediaResolver] = None,
    cancel_event: Optional[threading.Event] = None
):
    """
    Convenience function to render raw page XML with default settings.

    This runs the whole page pipeline:
    1. XML parsing into a DocumentNode tree
    2. Style and tag catalog construction
    3. Title, outline and image-fallback rendering
    4. Media written through the sink as images are encountered

    Args:
        page_id: OneNote page ID
        xml_content: Raw page XML
        sink: Output sink supplying file naming and the target directory
        media: Optional resolver for images and inserted files
        cancel_event: Optional event checked between sibling elements

    Returns:
        PageArtifact (not yet written)

    Example:
        >>> from converters import convert_page_xml
        >>> from exporters.sink import MemorySink
        >>> artifact = convert_page_xml('{page-id}', xml, MemorySink())
        >>> print(artifact.content)
    """
    assembler = PageAssembler(MarkdownRenderer(media), sink)
    return assembler.assemble(page_id, parse_page_xml(xml_content), cancel_event=cancel_event)


__all__ = [
    'AttachmentCopyFailure',
    'ConversionError',
    'MalformedAttribute',
    'MarkdownRenderer',
    'MediaResolutionFailure',
    'MediaResolver',
    'MissingDefinition',
    'PageAssembler',
    'RenderCancelled',
    'StyleCatalog',
    'convert_page_xml',
    'format_outline',
    'parse_page_xml'
]
