"""Assembles a complete Markdown page from a parsed OneNote page tree."""

import logging
import re
import threading
from typing import List, Optional

from bs4 import BeautifulSoup

from converters.errors import AttachmentCopyFailure, RenderCancelled
from converters.markdown_renderer import MarkdownRenderer
from converters.render_state import PathContext, RenderState
from converters.style_catalog import StyleCatalog
from models import DocumentNode, NodeKind, PageArtifact

logger = logging.getLogger('onenote_markdown_exporter.converters.page_assembler')


class PageAssembler:
    """
    Turns one page tree into a PageArtifact.

    A fresh StyleCatalog and RenderState are built for every call, so a
    single assembler can be used for many pages, including concurrently.
    """

    def __init__(
        self,
        renderer: MarkdownRenderer,
        sink,
        media_directory_name: str = 'media',
        default_image_format: str = 'png'
    ):
        """
        Initialize assembler.

        Args:
            renderer: Renderer used for every page
            sink: Output sink; provides file naming, the current directory
                and removal of media when a page is abandoned
            media_directory_name: Directory next to the page for media files
            default_image_format: Format used when an image declares none
        """
        self.renderer = renderer
        self.sink = sink
        self.media_directory_name = media_directory_name
        self.default_image_format = default_image_format

    def assemble(
        self,
        page_id: str,
        tree: DocumentNode,
        page_directory: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> PageArtifact:
        """
        Render a page tree to Markdown.

        Args:
            page_id: ID of the page, used for binary content lookups
            tree: Parsed page
            page_directory: Output directory (defaults to the sink's current one)
            cancel_event: Set to stop rendering between sibling elements

        Returns:
            PageArtifact with content and output path

        Raises:
            RenderCancelled: If cancellation was requested
            AttachmentCopyFailure: If an inserted file could not be copied
        """
        catalog = StyleCatalog.from_page(tree)
        title = self.extract_title(tree)
        directory = page_directory if page_directory is not None else self.sink.current_directory

        paths = PathContext(
            page_id=page_id,
            page_title=title,
            page_stem=self.sink.sanitize_name(title),
            page_directory=directory,
            media_directory_name=self.media_directory_name
        )
        state = RenderState(
            paths=paths,
            default_image_format=self.default_image_format,
            cancel_event=cancel_event
        )

        try:
            content = self._render_page(tree, state, catalog)
        except (RenderCancelled, AttachmentCopyFailure):
            if state.written_media:
                logger.info(
                    f"Removing {len(state.written_media)} media file(s) written for abandoned page '{title}'"
                )
                self.sink.remove_files(state.written_media)
            raise

        logger.debug(f"Assembled page '{title}' ({len(content)} characters)")
        return PageArtifact(
            title=title,
            content=content,
            output_path=paths.output_path,
            page_id=page_id,
            media_files=list(state.written_media),
            stats=dict(state.stats)
        )

    def _render_page(self, tree: DocumentNode, state: RenderState, catalog: StyleCatalog) -> str:
        title_output: List[str] = []
        title_node = tree.find_first(NodeKind.TITLE)
        if title_node is not None:
            self.renderer.render(title_node, state, catalog, 0, title_output)

        body_output: List[str] = []
        self.renderer.render_roots(tree, NodeKind.OUTLINE, state, catalog, body_output)
        body_text = ''.join(body_output)

        if not body_text.strip():
            # Pages holding only images keep them outside any outline
            image_output: List[str] = []
            self.renderer.render_roots(tree, NodeKind.IMAGE, state, catalog, image_output)
            image_text = ''.join(image_output)
            body_text = image_text if image_text.strip() else ''

        title_text = ''.join(title_output)
        if title_text and body_text and not body_text.startswith('\n'):
            body_text = '\n' + body_text

        return title_text + body_text

    @staticmethod
    def extract_title(tree: DocumentNode) -> str:
        """Plain-text title: the first paragraph under the Title element."""
        title_node = tree.find_first(NodeKind.TITLE)
        if title_node is None:
            return ''

        paragraph = title_node.find_first(NodeKind.PARAGRAPH)
        if paragraph is None:
            return ''

        raw = paragraph.text_content()
        if '<' in raw or '&' in raw:
            raw = BeautifulSoup(raw, 'lxml').get_text()

        return re.sub(r'\s+', ' ', raw).strip()


__all__ = ['PageAssembler']
