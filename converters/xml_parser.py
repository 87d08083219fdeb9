"""Parse OneNote page XML into DocumentNode trees."""

import logging
import re
from typing import List, Optional, Union

from lxml import etree

from fetchers.base_fetcher import SourceParseError
from models import DocumentNode, NodeKind

logger = logging.getLogger('onenote_markdown_exporter.converters.xml_parser')

ONENOTE_NAMESPACE = 'http://schemas.microsoft.com/office/onenote/2013/onenote'

XML_DECLARATION_PATTERN = re.compile(r'^\s*<\?xml[^>]*\?>')


def parse_page_xml(xml_content: Union[str, bytes]) -> DocumentNode:
    """
    Parse raw page XML into a DocumentNode tree.

    Element names lose their namespace, node kinds are resolved once here,
    and every node gets a reference to its parent.

    Args:
        xml_content: Page XML as text or bytes

    Returns:
        Root DocumentNode (normally the Page element)

    Raises:
        SourceParseError: If the XML is not well formed
    """
    if isinstance(xml_content, str):
        # lxml refuses str input that still carries an encoding declaration
        xml_content = XML_DECLARATION_PATTERN.sub('', xml_content, count=1).encode('utf-8')

    parser = etree.XMLParser(resolve_entities=False, huge_tree=True, no_network=True)
    try:
        root = etree.fromstring(xml_content, parser)
    except etree.XMLSyntaxError as e:
        raise SourceParseError(f"Failed to parse page XML: {str(e)}") from e

    return _build_node(root)


def _build_node(element) -> DocumentNode:
    """Recursively convert an lxml element into a DocumentNode."""
    name = etree.QName(element).localname
    node = DocumentNode(
        name=name,
        kind=NodeKind.from_name(name),
        attributes={etree.QName(key).localname: value for key, value in element.attrib.items()},
        text=element.text or ''
    )

    for child in element:
        # Comments and processing instructions carry no content
        if not isinstance(child.tag, str):
            continue
        node.add_child(_build_node(child))

    return node


def format_outline(node: DocumentNode, depth: int = 0, lines: Optional[List[str]] = None) -> str:
    """
    Produce an indented outline of element names for debugging.

    Text runs are shown with their content after the element name.
    """
    if lines is None:
        lines = []

    label = node.name
    if node.kind is NodeKind.TEXT:
        label = f"{label}: {node.text.strip()}"
    lines.append("  " * depth + label)

    for child in node.children:
        format_outline(child, depth + 1, lines)

    if depth == 0:
        return "\n".join(lines)
    return ""


__all__ = ['ONENOTE_NAMESPACE', 'format_outline', 'parse_page_xml']
