"""Tests for rendering OneNote page elements to Markdown."""

import os
import threading

import pytest

from converters.errors import RenderCancelled
from converters.markdown_renderer import MarkdownRenderer
from converters.render_state import PathContext, RenderState
from converters.style_catalog import StyleCatalog
from converters.xml_parser import parse_page_xml
from fetchers.base_fetcher import SourceUnavailable
from models import NodeKind
from page_builders import (
    PNG_BYTES,
    TODO_TAGS,
    FakeProvider,
    build_page_xml,
    bullet_list,
    image,
    number_list,
    paragraph,
    slow_payload,
    table,
    tag
)


class TestParagraphStyles:
    """Paired style fragments around paragraphs."""

    def test_title_and_plain_paragraph(self, render):
        xml = build_page_xml(paragraph('Hello'))
        assert render(xml) == "\n# Test Page\nHello"

    def test_cite_fragment_closed_by_next_paragraph(self, render):
        xml = build_page_xml(paragraph('quote', style='3') + paragraph('after'))
        assert render(xml) == "\n# Test Page\n*quote*\nafter"

    def test_pending_fragment_flushed_at_end_of_page(self, render):
        xml = build_page_xml(paragraph('last words', style='3'))
        assert render(xml) == "\n# Test Page\n*last words*"

    def test_consecutive_styled_paragraphs_close_in_order(self, render):
        xml = build_page_xml(
            paragraph('a', style='3') + paragraph('b', style='3') + paragraph('c')
        )
        assert render(xml) == "\n# Test Page\n*a*\n*b*\nc"

    def test_headings(self, render):
        xml = build_page_xml(paragraph('Chapter', style='2') + paragraph('Part', style='4'))
        assert render(xml) == "\n# Test Page\n# Chapter\n## Part"

    def test_unknown_style_index_renders_text_only(self, make_assembler, memory_sink):
        xml = build_page_xml(paragraph('plain', style='99'))
        artifact = make_assembler(memory_sink).assemble('{PAGE-1}', parse_page_xml(xml))

        assert artifact.content == "\n# Test Page\nplain"
        assert artifact.stats['missing_definitions'] == 1

    def test_inline_markup_in_text_runs(self, render):
        xml = build_page_xml(paragraph("<span style='font-weight:bold'>Bold</span> text"))
        assert render(xml) == "\n# Test Page\n**Bold** text"


class TestLists:
    """Bullet and number markers with nesting."""

    def test_nested_bullets(self, render):
        nested = paragraph('nested', inner=bullet_list())
        xml = build_page_xml(paragraph('first', inner=bullet_list(), children=nested))
        assert render(xml) == "\n# Test Page\n- first\n  - nested"

    def test_heading_ancestor_resets_bullet_indentation(self, render):
        nested = paragraph('item', inner=bullet_list())
        xml = build_page_xml(paragraph('Heading', style='2', children=nested))
        assert render(xml) == "\n# Test Page\n# Heading\n- item"

    def test_non_heading_ancestor_keeps_indentation(self, render):
        nested = paragraph('item', inner=bullet_list())
        xml = build_page_xml(paragraph('Intro', children=nested))
        assert render(xml) == "\n# Test Page\nIntro\n  - item"

    def test_numbered_item(self, render):
        xml = build_page_xml(paragraph('step', inner=number_list()))
        assert render(xml) == "\n# Test Page\n1. step"


class TestTags:
    """Checkbox and labelled tags."""

    def test_completed_todo(self, render):
        xml = build_page_xml(paragraph('done', inner=tag('0', 'true')), tags=TODO_TAGS)
        assert render(xml) == "\n# Test Page\n  - [x] done"

    def test_open_todo_followed_by_bullet(self, render):
        xml = build_page_xml(
            paragraph('task', inner=tag('0', 'false') + bullet_list()),
            tags=TODO_TAGS
        )
        assert render(xml) == "\n# Test Page\n  - [ ]   task"

    def test_second_todo_type_renders_checkbox(self, render):
        tags = (('5', '26', '94', 'Client request'),)
        xml = build_page_xml(paragraph('call back', inner=tag('5')), tags=tags)
        assert render(xml) == "\n# Test Page\n  - [ ] call back"

    def test_labelled_tag(self, render):
        xml = build_page_xml(paragraph('note', inner=tag('1')), tags=TODO_TAGS)
        assert render(xml) == "\n# Test Page\n  - **Important** note"

    def test_undefined_tag_emits_indentation_only(self, render):
        xml = build_page_xml(paragraph('orphan', inner=tag('42')), tags=TODO_TAGS)
        assert render(xml) == "\n# Test Page\n  orphan"


class TestTables:
    """Table header, rows and cells."""

    def test_single_row_table(self, render):
        xml = build_page_xml(paragraph(style=None, inner=table([('cell1', 'cell2')])))
        assert render(xml) == "\n# Test Page\n| - | - |\n | cell1 | cell2 |\n"

    def test_second_row_is_not_a_header(self, render):
        xml = build_page_xml(paragraph(style=None, inner=table([('a', 'b'), ('c', 'd')])))
        assert render(xml) == "\n# Test Page\n| - | - |\n | a | b |\n | c | d |\n"

    def test_table_closes_pending_fragment_and_resets(self, render):
        xml = build_page_xml(
            paragraph('quoted', style='3')
            + paragraph(style=None, inner=table([('x',)], columns=1))
            + paragraph('after')
        )
        assert render(xml) == "\n# Test Page\n*quoted*\n| - |\n | x |\n\nafter"


class TestImages:
    """Binary references written through the sink."""

    def test_image_written_and_linked(self, make_assembler, memory_sink):
        xml = build_page_xml(paragraph(style=None, inner=image('{IMG-1}')))
        artifact = make_assembler(memory_sink).assemble('{PAGE-1}', parse_page_xml(xml))

        assert artifact.content == "\n# Test Page\n![test-page_1.jpg](file://media/test-page_1.jpg)"
        expected_path = os.path.join(memory_sink.root_directory, 'media', 'test-page_1.jpg')
        assert memory_sink.files[expected_path] == PNG_BYTES
        assert artifact.media_files == [expected_path]

    def test_base64_payload_is_decoded(self, make_assembler, memory_sink):
        xml = build_page_xml(paragraph(style=None, inner=image('{IMG-B64}', image_format='png')))
        artifact = make_assembler(memory_sink).assemble('{PAGE-1}', parse_page_xml(xml))

        assert memory_sink.files[artifact.media_files[0]] == PNG_BYTES

    def test_images_numbered_in_document_order(self, render):
        xml = build_page_xml(
            paragraph(style=None, inner=image('{IMG-1}'))
            + paragraph(style=None, inner=image('{IMG-1}', image_format='gif'))
        )
        content = render(xml)
        assert content.index('test-page_1.jpg') < content.index('test-page_2.gif')

    def test_missing_format_uses_default(self, render):
        xml = build_page_xml(paragraph(style=None, inner=image('{IMG-1}', image_format=None)))
        assert render(xml).endswith("![test-page_1.png](file://media/test-page_1.png)")

    def test_failed_fetch_is_skipped(self, make_assembler, memory_sink):
        xml = build_page_xml(
            paragraph(style=None, inner=image('{MISSING}')) + paragraph('still here')
        )
        artifact = make_assembler(memory_sink).assemble('{PAGE-1}', parse_page_xml(xml))

        assert artifact.content == "\n# Test Page\nstill here"
        assert artifact.stats['images_failed'] == 1
        assert memory_sink.files == {}

    def test_timed_out_fetch_is_skipped(self, make_assembler, memory_sink):
        slow = FakeProvider({'{SLOW}': slow_payload(1.0)})
        xml = build_page_xml(paragraph(style=None, inner=image('{SLOW}')) + paragraph('after'))
        assembler = make_assembler(memory_sink, media_provider=slow, fetch_timeout=0.05)

        artifact = assembler.assemble('{PAGE-1}', parse_page_xml(xml))

        assert artifact.content == "\n# Test Page\nafter"
        assert artifact.stats['images_failed'] == 1

    def test_source_unavailable_propagates(self, make_assembler, memory_sink):
        class GoneProvider(FakeProvider):
            def fetch(self, page_id, reference_id):
                raise SourceUnavailable("OneNote is not running")

        xml = build_page_xml(paragraph(style=None, inner=image('{IMG-1}')))
        assembler = make_assembler(memory_sink, media_provider=GoneProvider())

        with pytest.raises(SourceUnavailable):
            assembler.assemble('{PAGE-1}', parse_page_xml(xml))

    def test_image_only_page_falls_back_to_image_roots(self, render):
        xml = build_page_xml(extra=image('{IMG-1}', image_format='jpg'))
        assert render(xml) == "\n# Test Page\n![test-page_1.png](file://media/test-page_1.png)"

    def test_whitespace_body_without_images_is_dropped(self, render):
        xml = build_page_xml(paragraph(' ', style=None))
        assert render(xml) == "\n# Test Page"

    def test_ocr_text_is_not_rendered(self, render):
        xml = build_page_xml(paragraph(style=None, inner=image('{IMG-1}')))
        assert 'ignored ocr' not in render(xml)


class TestRendererState:
    """Direct use of the renderer with explicit state."""

    def _state(self, cancel_event=None):
        paths = PathContext(page_id='{PAGE-1}', page_title='Test Page',
                            page_stem='test-page', page_directory='out')
        return RenderState(paths=paths, cancel_event=cancel_event)

    def test_size_parsed_as_decimal(self):
        tree = parse_page_xml(build_page_xml(extra='<one:Image format="png"><one:Size width="1.5" height="2"/></one:Image>'))
        image_node = tree.find_first(NodeKind.IMAGE)
        state = self._state()
        renderer = MarkdownRenderer()

        renderer.render(image_node, state, StyleCatalog.from_page(tree), 0, [])

        assert str(state.image.width) == '1.5'
        assert str(state.image.height) == '2'

    def test_malformed_size_is_ignored(self):
        tree = parse_page_xml(build_page_xml(extra='<one:Image><one:Size width="wide" height="2"/></one:Image>'))
        state = self._state()

        MarkdownRenderer().render(tree.find_first(NodeKind.IMAGE), state, StyleCatalog.from_page(tree), 0, [])

        assert state.image.width is None
        assert state.stats['malformed_attributes'] == 1

    def test_image_without_resolver_is_skipped(self):
        tree = parse_page_xml(build_page_xml(extra=image('{IMG-1}')))
        state = self._state()
        output = []

        MarkdownRenderer().render(tree.find_first(NodeKind.IMAGE), state, StyleCatalog.from_page(tree), 0, output)

        assert output == []
        assert state.stats['images_failed'] == 1
        assert state.image.within_image is False

    def test_cancelled_render_raises(self):
        cancel = threading.Event()
        cancel.set()
        tree = parse_page_xml(build_page_xml(paragraph('text')))

        with pytest.raises(RenderCancelled):
            MarkdownRenderer().render(tree, self._state(cancel), StyleCatalog.from_page(tree), 0, [])
