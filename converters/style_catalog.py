"""Per-page lookup of paragraph styles and tag definitions."""

import logging
from typing import Dict, Optional

from converters.errors import MissingDefinition
from models import DocumentNode, MarkdownFragment, NodeKind, StyleDef, TagDef

logger = logging.getLogger('onenote_markdown_exporter.converters.style_catalog')

# Markdown wrapped around paragraphs, keyed by QuickStyleDef name
STYLE_MARKUP: Dict[str, MarkdownFragment] = {
    'PageTitle': MarkdownFragment('# ', ''),
    'h1': MarkdownFragment('# ', ''),
    'h2': MarkdownFragment('## ', ''),
    'h3': MarkdownFragment('### ', ''),
    'h4': MarkdownFragment('#### ', ''),
    'h5': MarkdownFragment('##### ', ''),
    'h6': MarkdownFragment('###### ', ''),
    'p': MarkdownFragment('', ''),
    'cite': MarkdownFragment('*', '*'),
    'code': MarkdownFragment('`', '`'),
    'blockquote': MarkdownFragment('> ', ''),
}

# Styles that stop bullet indentation from counting enclosing groups
HEADING_STYLES = frozenset({'h1', 'h2', 'h3', 'h4', 'h5'})


class StyleCatalog:
    """Resolves style and tag indexes of one page to their definitions."""

    def __init__(self, styles: Optional[Dict[str, StyleDef]] = None,
                 tags: Optional[Dict[str, TagDef]] = None):
        self.styles = styles or {}
        self.tags = tags or {}

    @classmethod
    def from_page(cls, root: DocumentNode) -> 'StyleCatalog':
        """
        Build a catalog from the QuickStyleDef and TagDef elements of a page.

        When two definitions share an index the later one wins.
        """
        styles: Dict[str, StyleDef] = {}
        tags: Dict[str, TagDef] = {}

        for node in root.iter_descendants():
            index = node.get('index')
            if node.kind is NodeKind.QUICK_STYLE_DEF:
                if index is None:
                    logger.debug("QuickStyleDef without index ignored")
                    continue
                styles[index] = StyleDef(index=index, name=node.get('name', ''))
            elif node.kind is NodeKind.TAG_DEF:
                if index is None:
                    logger.debug("TagDef without index ignored")
                    continue
                tags[index] = TagDef(
                    index=index,
                    name=node.get('name', ''),
                    symbol=node.get('symbol', ''),
                    type=node.get('type', '')
                )

        logger.debug(f"Catalog built with {len(styles)} style(s) and {len(tags)} tag definition(s)")
        return cls(styles, tags)

    def get_style(self, index: Optional[str]) -> StyleDef:
        """Return the StyleDef for an index or raise MissingDefinition."""
        if index is None or index not in self.styles:
            raise MissingDefinition(f"Style index {index!r} is not defined")
        return self.styles[index]

    def get_tag(self, index: Optional[str]) -> TagDef:
        """Return the TagDef for an index or raise MissingDefinition."""
        if index is None or index not in self.tags:
            raise MissingDefinition(f"Tag index {index!r} is not defined")
        return self.tags[index]

    def resolve_fragment(self, index: Optional[str]) -> MarkdownFragment:
        """Return the Markdown fragment for a paragraph style index."""
        style = self.get_style(index)
        return STYLE_MARKUP.get(style.name, MarkdownFragment())

    def is_heading(self, index: Optional[str]) -> bool:
        """Check whether a style index refers to a heading style."""
        style = self.styles.get(index) if index is not None else None
        return style is not None and style.name in HEADING_STYLES

    @staticmethod
    def tag_label(tag: TagDef) -> str:
        """Markdown label for a tag that is not a to-do checkbox."""
        if tag.name:
            return f"**{tag.name}** "
        if tag.symbol:
            return f"({tag.symbol}) "
        return ""


__all__ = ['HEADING_STYLES', 'STYLE_MARKUP', 'StyleCatalog']
