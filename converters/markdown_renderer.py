"""Recursive rendering of OneNote page trees to Markdown."""

import logging
import os
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Callable, Dict, List, Optional
from urllib.parse import quote

from converters.errors import (
    AttachmentCopyFailure,
    MalformedAttribute,
    MediaResolutionFailure,
    MissingDefinition
)
from converters.inline_markup import normalize_text
from converters.media import MediaResolver
from converters.render_state import RenderState
from converters.style_catalog import StyleCatalog
from models import DocumentNode, NodeKind

logger = logging.getLogger('onenote_markdown_exporter.converters.markdown_renderer')

INDENT_UNIT = '  '

# A handler returns the text to emit before the node's children are visited,
# or None when it has handled (or deliberately skipped) the children itself.
Handler = Callable[[DocumentNode, RenderState, StyleCatalog, int, List[str]], Optional[str]]


class MarkdownRenderer:
    """
    Walks a DocumentNode tree depth-first and appends Markdown to a list.

    The renderer itself holds no per-page data: styles come from the
    StyleCatalog and everything that changes while walking lives in the
    RenderState, so one renderer can serve pages rendered concurrently.
    """

    def __init__(self, media: Optional[MediaResolver] = None):
        """
        Initialize renderer.

        Args:
            media: Resolver for image payloads and inserted files. Without
                one, images are skipped and inserted files fail the page.
        """
        self.media = media
        self._handlers: Dict[NodeKind, Handler] = {
            NodeKind.PARAGRAPH: self._render_paragraph,
            NodeKind.TEXT: self._render_text,
            NodeKind.BULLET: self._render_bullet,
            NodeKind.NUMBER: self._render_number,
            NodeKind.TAG: self._render_tag,
            NodeKind.TABLE: self._render_table,
            NodeKind.COLUMN: self._render_column,
            NodeKind.ROW: self._render_row,
            NodeKind.CELL: self._render_cell,
            NodeKind.IMAGE: self._render_image,
            NodeKind.SIZE: self._render_size,
            NodeKind.BINARY_REFERENCE: self._render_binary_reference,
            NodeKind.OCR_DATA: self._skip,
            NodeKind.INSERTED_FILE: self._render_inserted_file,
        }

    def render(
        self,
        node: DocumentNode,
        state: RenderState,
        catalog: StyleCatalog,
        level: int,
        output: List[str]
    ) -> None:
        """Render a node and, unless its handler took over, its children."""
        handler = self._handlers.get(node.kind)
        if handler is not None:
            text = handler(node, state, catalog, level, output)
            if text is None:
                return
            if text:
                output.append(text)

        self.render_children(node, state, catalog, level + 1, output)

    def render_children(
        self,
        node: DocumentNode,
        state: RenderState,
        catalog: StyleCatalog,
        level: int,
        output: List[str]
    ) -> None:
        """Render children in order, checking for cancellation between them."""
        for child in node.children:
            state.check_cancelled()
            self.render(child, state, catalog, level, output)

    def render_roots(
        self,
        root: DocumentNode,
        kind: NodeKind,
        state: RenderState,
        catalog: StyleCatalog,
        output: List[str]
    ) -> None:
        """Render the children of every ``kind`` node in the tree, then flush."""
        for container in root.iter_descendants(kind):
            self.render_children(container, state, catalog, 0, output)
        self.flush_pending(state, output)

    @staticmethod
    def flush_pending(state: RenderState, output: List[str]) -> None:
        """Emit the closing half of the pending fragment, if any."""
        fragment = state.take_pending()
        if fragment is not None and fragment.closing:
            output.append(fragment.closing)

    # Handlers

    def _render_paragraph(self, node, state, catalog, level, output):
        self.flush_pending(state, output)
        state.stats['paragraphs'] += 1

        index = node.get('quickStyleIndex')
        if state.table.in_table or index is None:
            return ''

        try:
            fragment = catalog.resolve_fragment(index)
        except MissingDefinition as e:
            state.stats['missing_definitions'] += 1
            logger.debug(f"Paragraph style skipped: {str(e)}")
            return ''

        state.set_pending(fragment)
        prefix = '' if fragment.starts_new_line else '\n'
        return prefix + fragment.opening

    def _render_text(self, node, state, catalog, level, output):
        return normalize_text(node.text)

    def _render_bullet(self, node, state, catalog, level, output):
        indent = ''
        for ancestor in node.ancestors():
            if ancestor.kind is NodeKind.PARAGRAPH and catalog.is_heading(ancestor.get('quickStyleIndex')):
                break
            if ancestor.kind is NodeKind.CHILDREN_GROUP:
                indent += INDENT_UNIT

        # A tag already emitted the list marker for this paragraph
        list_wrapper = node.parent
        preceding = list_wrapper.previous_sibling() if list_wrapper is not None else None
        if preceding is not None and preceding.kind is NodeKind.TAG:
            return indent

        return indent[len(INDENT_UNIT):] + '- '

    def _render_number(self, node, state, catalog, level, output):
        return '1. '

    def _render_tag(self, node, state, catalog, level, output):
        depth = sum(1 for ancestor in node.ancestors() if ancestor.kind is NodeKind.CHILDREN_GROUP)
        indent = INDENT_UNIT * depth

        try:
            tag = catalog.get_tag(node.get('index'))
        except MissingDefinition as e:
            state.stats['missing_definitions'] += 1
            logger.debug(f"Tag marker skipped: {str(e)}")
            return indent

        if tag.is_todo:
            checked = node.get('completed') == 'true'
            return indent + ('- [x] ' if checked else '- [ ] ')

        return indent + '- ' + catalog.tag_label(tag)

    def _render_table(self, node, state, catalog, level, output):
        self.flush_pending(state, output)
        state.table.enter()
        state.stats['tables'] += 1
        try:
            self.render_children(node, state, catalog, level + 1, output)
            output.append('\n')
        finally:
            state.table.reset()
        return None

    def _render_column(self, node, state, catalog, level, output):
        state.table.add_column()
        return ''

    def _render_row(self, node, state, catalog, level, output):
        if not state.table.in_table:
            return ''

        if state.table.on_header_row():
            output.append('\n' + '| - ' * state.table.column_count + '|')
            state.table.header_emitted = True

        output.append('\n')
        state.table.add_row()
        self.render_children(node, state, catalog, level + 1, output)
        output.append(' |')
        return None

    def _render_cell(self, node, state, catalog, level, output):
        return ' | ' if state.table.in_table else ''

    def _render_image(self, node, state, catalog, level, output):
        state.image.arm(node.get('format') or state.default_image_format)
        return ''

    def _render_size(self, node, state, catalog, level, output):
        try:
            width = _parse_decimal(node, 'width')
            height = _parse_decimal(node, 'height')
        except MalformedAttribute as e:
            state.stats['malformed_attributes'] += 1
            logger.debug(f"Image size ignored: {str(e)}")
            return ''
        state.image.set_dimensions(width, height)
        return ''

    def _render_binary_reference(self, node, state, catalog, level, output):
        page_id = state.paths.page_id
        reference = node.get('callbackID')

        try:
            if not reference:
                raise MalformedAttribute("CallbackID without callbackID attribute", page_id=page_id)
            if not state.image.within_image:
                state.image.arm(state.default_image_format)
            if self.media is None:
                raise MediaResolutionFailure("No binary content provider configured", page_id=page_id)

            target, filename, relative = state.paths.next_image_target(state.image.format)
            written = self.media.store_image(page_id, reference, target)
        except (MalformedAttribute, MediaResolutionFailure) as e:
            state.stats['images_failed'] += 1
            logger.warning(f"Image skipped on page '{state.paths.page_title}': {str(e)}")
        else:
            state.written_media.append(written)
            state.stats['images_written'] += 1
            output.append(f"![{filename}](file://{relative})")
        finally:
            state.reset_image()

        return None

    def _render_inserted_file(self, node, state, catalog, level, output):
        source = node.get('pathCache')
        if not source:
            state.stats['malformed_attributes'] += 1
            logger.debug("InsertedFile without pathCache ignored")
            return ''

        name = node.get('preferredName') or os.path.basename(source)
        if self.media is None:
            raise AttachmentCopyFailure(
                f"No file importer configured for '{name}'",
                page_id=state.paths.page_id
            )

        target = state.paths.inserted_file_target(os.path.basename(name))
        copied = self.media.import_file(source, target)
        state.written_media.append(copied)
        state.stats['files_copied'] += 1

        location = quote(Path(os.path.abspath(copied)).as_posix(), safe='/:')
        return f"[{name}](file://{location})"

    def _skip(self, node, state, catalog, level, output):
        return None


def _parse_decimal(node: DocumentNode, attribute: str) -> Optional[Decimal]:
    """Parse a numeric attribute independent of locale."""
    value = node.get(attribute)
    if value is None:
        return None
    try:
        number = Decimal(value.strip())
    except InvalidOperation as e:
        raise MalformedAttribute(f"{node.name}.{attribute} is not a number: {value!r}") from e
    if not number.is_finite():
        raise MalformedAttribute(f"{node.name}.{attribute} is not finite: {value!r}")
    return number


__all__ = ['MarkdownRenderer']
