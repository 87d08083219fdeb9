"""Shared fixtures for the exporter tests."""

import base64
import os

import pytest

from config_loader import ConfigLoader
from converters.markdown_renderer import MarkdownRenderer
from converters.media import MediaResolver
from converters.page_assembler import PageAssembler
from converters.xml_parser import parse_page_xml
from exporters.sink import LocalFileImporter, MemorySink
from page_builders import PNG_BYTES, FakeProvider, write_export


@pytest.fixture
def memory_sink():
    return MemorySink(os.path.join(os.sep, 'export'))


@pytest.fixture
def provider():
    return FakeProvider({
        '{IMG-1}': PNG_BYTES,
        '{IMG-B64}': base64.b64encode(PNG_BYTES).decode('ascii'),
    })


@pytest.fixture
def make_assembler(provider):
    """Build a PageAssembler around a sink, wiring media through the fake provider."""
    resolvers = []

    def factory(sink, media_provider=None, fetch_timeout=5, fetch_attempts=1):
        media = MediaResolver(
            provider=media_provider or provider,
            sink=sink,
            importer=LocalFileImporter(),
            fetch_timeout=fetch_timeout,
            fetch_attempts=fetch_attempts,
            retry_backoff=0
        )
        resolvers.append(media)
        return PageAssembler(MarkdownRenderer(media), sink)

    yield factory

    for media in resolvers:
        media.close()


@pytest.fixture
def render(make_assembler, memory_sink):
    """Render page XML and return the Markdown content."""
    assembler = make_assembler(memory_sink)

    def do_render(xml, page_id='{PAGE-1}'):
        return assembler.assemble(page_id, parse_page_xml(xml)).content

    return do_render


@pytest.fixture
def export_dir(tmp_path):
    """An export directory with two notebooks (see page_builders.write_export)."""
    return write_export(tmp_path / 'export')


@pytest.fixture
def export_config(export_dir, tmp_path):
    return ConfigLoader.with_defaults({
        'source': {'export_path': str(export_dir)},
        'export': {'output_directory': str(tmp_path / 'out'), 'progress_bars': False},
        'media': {'fetch_timeout': 5, 'retry_backoff': 0},
    })
