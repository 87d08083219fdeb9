"""Tests for paragraph style and tag definition lookup."""

import unittest

from converters.errors import MissingDefinition
from converters.style_catalog import StyleCatalog
from converters.xml_parser import parse_page_xml
from models import MarkdownFragment, TagDef, TagDefType
from page_builders import TODO_TAGS, build_page_xml


class TestStyleCatalog(unittest.TestCase):
    def setUp(self):
        self.catalog = StyleCatalog.from_page(parse_page_xml(build_page_xml(tags=TODO_TAGS)))

    def test_styles_indexed(self):
        """Test QuickStyleDef elements are indexed by their index attribute."""
        self.assertEqual(self.catalog.get_style('2').name, 'h1')
        self.assertEqual(len(self.catalog.styles), 5)

    def test_tags_indexed(self):
        """Test TagDef elements keep name, symbol and type."""
        tag = self.catalog.get_tag('1')
        self.assertEqual(tag.name, 'Important')
        self.assertEqual(tag.symbol, '17')
        self.assertEqual(tag.type, '13')
        self.assertEqual(tag.kind, TagDefType.OTHER)

    def test_missing_style(self):
        """Test unknown style indexes raise MissingDefinition."""
        with self.assertRaises(MissingDefinition):
            self.catalog.get_style('99')
        with self.assertRaises(MissingDefinition):
            self.catalog.get_style(None)

    def test_missing_tag(self):
        """Test unknown tag indexes raise MissingDefinition."""
        with self.assertRaises(MissingDefinition):
            self.catalog.get_tag('7')

    def test_resolve_fragment(self):
        """Test style names map to paired Markdown fragments."""
        self.assertEqual(self.catalog.resolve_fragment('0'), MarkdownFragment('# ', ''))
        self.assertEqual(self.catalog.resolve_fragment('3'), MarkdownFragment('*', '*'))
        self.assertEqual(self.catalog.resolve_fragment('4'), MarkdownFragment('## ', ''))

    def test_unmapped_style_name_gives_empty_fragment(self):
        """Test styles without Markdown markup resolve to an empty fragment."""
        catalog = StyleCatalog.from_page(parse_page_xml(build_page_xml(styles=(('0', 'PageTitle'), ('5', 'fancy')))))
        self.assertEqual(catalog.resolve_fragment('5'), MarkdownFragment())

    def test_is_heading(self):
        """Test only h1 to h5 count as headings."""
        self.assertTrue(self.catalog.is_heading('2'))
        self.assertTrue(self.catalog.is_heading('4'))
        self.assertFalse(self.catalog.is_heading('0'))
        self.assertFalse(self.catalog.is_heading('1'))
        self.assertFalse(self.catalog.is_heading('99'))
        self.assertFalse(self.catalog.is_heading(None))

    def test_last_definition_wins(self):
        """Test a repeated index takes the later definition."""
        xml = build_page_xml(styles=(('1', 'p'), ('1', 'cite')))
        catalog = StyleCatalog.from_page(parse_page_xml(xml))
        self.assertEqual(catalog.get_style('1').name, 'cite')

    def test_definitions_without_index_ignored(self):
        """Test definitions lacking an index attribute are skipped."""
        xml = build_page_xml(extra='<one:QuickStyleDef name="h3"/><one:TagDef name="Loose" type="0"/>')
        catalog = StyleCatalog.from_page(parse_page_xml(xml))
        self.assertNotIn('h3', [style.name for style in catalog.styles.values()])
        self.assertEqual(catalog.tags, {})


class TestTagLabels(unittest.TestCase):
    def test_todo_types(self):
        """Test type 0 and 26 tags are to-do checkboxes."""
        self.assertTrue(TagDef('0', type='0').is_todo)
        self.assertTrue(TagDef('0', type='26').is_todo)
        self.assertFalse(TagDef('0', type='13').is_todo)
        self.assertFalse(TagDef('0', type='').is_todo)

    def test_label_prefers_name(self):
        """Test the tag name is used as label when present."""
        self.assertEqual(StyleCatalog.tag_label(TagDef('1', name='Idea', symbol='10')), '**Idea** ')

    def test_label_falls_back_to_symbol(self):
        """Test the symbol is used when the tag has no name."""
        self.assertEqual(StyleCatalog.tag_label(TagDef('1', symbol='10')), '(10) ')

    def test_label_empty(self):
        """Test tags without name or symbol get no label."""
        self.assertEqual(StyleCatalog.tag_label(TagDef('1')), '')
