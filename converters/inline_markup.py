"""Conversion of OneNote text runs (span-styled HTML) to inline Markdown."""

import html
import logging
import re
from typing import Dict

from markdownify import MarkdownConverter as MarkdownifyConverter, chomp

logger = logging.getLogger('onenote_markdown_exporter.converters.inline_markup')

LINE_BREAK_PATTERN = re.compile(r'\r\n|\r|\n')


class InlineMarkupConverter(MarkdownifyConverter):
    """
    markdownify converter for the HTML fragments stored in text runs.

    OneNote expresses character formatting through ``style`` attributes on
    span elements rather than through b/i/u tags, so spans are mapped here.
    """

    def __init__(self, **kwargs):
        """Initialize converter with options suited to inline fragments."""
        markdownify_options = {
            'heading_style': 'ATX',
            'bullets': '-',
            'escape_asterisks': False,
            'escape_underscores': False,
            'escape_misc': False,
        }
        markdownify_options.update(kwargs)
        super().__init__(**markdownify_options)

    def convert_span(self, el, text, parent_tags=None, **kwargs):
        """Wrap span text in the markers its inline style asks for."""
        if not text or not text.strip():
            return text

        style = parse_style_attribute(el.get('style', ''))
        prefix, suffix, text = chomp(text)

        weight = style.get('font-weight', '')
        if weight == 'bold' or (weight.isdigit() and int(weight) >= 600):
            text = f"**{text}**"
        if style.get('font-style') == 'italic':
            text = f"*{text}*"

        decoration = style.get('text-decoration', '')
        if 'line-through' in decoration:
            text = f"~~{text}~~"
        if 'underline' in decoration:
            text = f"<u>{text}</u>"

        return f"{prefix}{text}{suffix}"


def parse_style_attribute(style: str) -> Dict[str, str]:
    """Split a CSS style attribute into a lowercase property map."""
    properties = {}
    for declaration in style.split(';'):
        if ':' not in declaration:
            continue
        key, value = declaration.split(':', 1)
        properties[key.strip().lower()] = value.strip().lower()
    return properties


_converter = InlineMarkupConverter()


def normalize_text(text: str) -> str:
    """
    Turn the content of a text run into inline Markdown.

    Line breaks become spaces, entities are decoded, and span markup is
    converted. Escaped markup such as ``&lt;b&gt;`` is literal text and stays
    text. Leading and trailing whitespace of the run is kept so that
    adjacent runs do not run together.
    """
    if not text:
        return ''

    flattened = LINE_BREAK_PATTERN.sub(' ', text)
    if '<' not in flattened:
        return html.unescape(flattened)

    # BeautifulSoup decodes entities itself, so the run is parsed undecoded
    leading = flattened[:len(flattened) - len(flattened.lstrip())]
    trailing = flattened[len(flattened.rstrip()):]
    converted = _converter.convert(flattened)

    return f"{leading}{converted.strip()}{trailing}"


__all__ = ['InlineMarkupConverter', 'normalize_text', 'parse_style_attribute']
