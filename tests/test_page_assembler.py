"""Tests for whole-page assembly: titles, media lifecycle, cancellation and concurrency."""

import os
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from urllib.parse import quote

import pytest

from converters import convert_page_xml
from converters.errors import AttachmentCopyFailure, RenderCancelled
from converters.page_assembler import PageAssembler
from converters.xml_parser import parse_page_xml
from exporters.sink import FileSystemSink, MemorySink
from page_builders import (
    PNG_BYTES,
    FakeProvider,
    build_page_xml,
    image,
    inserted_file,
    paragraph
)


class TestTitle:
    """Title extraction and rendering."""

    def test_plain_title(self):
        tree = parse_page_xml(build_page_xml(title='Weekly  Notes '))
        assert PageAssembler.extract_title(tree) == 'Weekly Notes'

    def test_title_entities_are_decoded(self, render):
        xml = build_page_xml(paragraph('x'), title='Fish &amp; Chips')
        assert PageAssembler.extract_title(parse_page_xml(xml)) == 'Fish & Chips'
        assert render(xml) == "\n# Fish & Chips\nx"

    def test_title_markup_is_stripped(self):
        xml = build_page_xml(title='<span style="font-weight:bold">Bold</span> title')
        assert PageAssembler.extract_title(parse_page_xml(xml)) == 'Bold title'

    def test_missing_title(self, make_assembler, memory_sink):
        xml = build_page_xml(paragraph('Hello'), title=None)
        artifact = make_assembler(memory_sink).assemble('{PAGE-1}', parse_page_xml(xml))

        assert artifact.title == ''
        assert artifact.content == "\nHello"
        assert artifact.output_path == os.path.join(memory_sink.root_directory, 'untitled.md')

    def test_title_only_page(self, render):
        assert render(build_page_xml()) == "\n# Test Page"


class TestArtifact:
    """Output path and metadata of the assembled artifact."""

    def test_output_path_follows_sink_directory(self, make_assembler, memory_sink):
        assembler = make_assembler(memory_sink)
        tree = parse_page_xml(build_page_xml(paragraph('a'), title='Release Plan'))

        with memory_sink.directory('Work Notes'):
            artifact = assembler.assemble('{PAGE-1}', tree)

        expected = os.path.join(memory_sink.root_directory, 'work-notes', 'release-plan.md')
        assert artifact.output_path == expected
        assert artifact.page_id == '{PAGE-1}'

    def test_explicit_page_directory(self, make_assembler, memory_sink):
        tree = parse_page_xml(build_page_xml(paragraph(style=None, inner=image('{IMG-1}'))))
        artifact = make_assembler(memory_sink).assemble('{PAGE-1}', tree, page_directory='elsewhere')

        assert artifact.output_path == os.path.join('elsewhere', 'test-page.md')
        assert os.path.join('elsewhere', 'media', 'test-page_1.jpg') in memory_sink.files

    def test_stats_and_to_dict(self, make_assembler, memory_sink):
        xml = build_page_xml(paragraph('one') + paragraph(style=None, inner=image('{IMG-1}')))
        artifact = make_assembler(memory_sink).assemble('{PAGE-1}', parse_page_xml(xml))

        assert artifact.stats['images_written'] == 1
        assert artifact.stats['paragraphs'] == 3
        data = artifact.to_dict()
        assert data['title'] == 'Test Page'
        assert data['content_length'] == len(artifact.content)

    def test_rendering_is_repeatable(self, make_assembler, memory_sink):
        assembler = make_assembler(memory_sink)
        tree = parse_page_xml(build_page_xml(
            paragraph('quote', style='3') + paragraph(style=None, inner=image('{IMG-1}'))
        ))

        first = assembler.assemble('{PAGE-1}', tree)
        second = assembler.assemble('{PAGE-1}', tree)

        assert first.content == second.content
        assert first.media_files == second.media_files

    def test_convert_page_xml_without_media(self):
        artifact = convert_page_xml('{PAGE-1}', build_page_xml(paragraph('Hi')), MemorySink('out'))

        assert artifact.content == "\n# Test Page\nHi"
        assert artifact.output_path == os.path.join('out', 'test-page.md')

    def test_convert_page_xml_accepts_bytes(self):
        xml = build_page_xml(paragraph('Grüße')).encode('utf-8')
        artifact = convert_page_xml('{PAGE-1}', xml, MemorySink())
        assert artifact.content.endswith('Grüße')


class TestInsertedFiles:
    """Attachments copied next to the page."""

    def test_inserted_file_is_copied_and_linked(self, tmp_path, make_assembler):
        source = tmp_path / 'attachments' / 'report.pdf'
        source.parent.mkdir()
        source.write_bytes(b'%PDF-1.4')
        sink = FileSystemSink(str(tmp_path / 'out'))

        xml = build_page_xml(paragraph(style=None, inner=inserted_file(str(source))))
        artifact = make_assembler(sink).assemble('{PAGE-1}', parse_page_xml(xml))

        target = Path(sink.root_directory) / 'media' / 'test-page_report.pdf'
        assert target.read_bytes() == b'%PDF-1.4'
        expected_link = quote(target.as_posix(), safe='/:')
        assert artifact.content == f"\n# Test Page\n[report.pdf](file://{expected_link})"
        assert artifact.stats['files_copied'] == 1

    def test_preferred_name_wins(self, tmp_path, make_assembler):
        source = tmp_path / 'blob.bin'
        source.write_bytes(b'data')
        sink = FileSystemSink(str(tmp_path / 'out'))

        xml = build_page_xml(paragraph(
            style=None, inner=inserted_file(str(source), preferred_name='Budget.xlsx')
        ))
        artifact = make_assembler(sink).assemble('{PAGE-1}', parse_page_xml(xml))

        assert '[Budget.xlsx](file://' in artifact.content
        assert (Path(sink.root_directory) / 'media' / 'test-page_Budget.xlsx').exists()

    def test_missing_path_cache_is_ignored(self, render):
        xml = build_page_xml(paragraph('text', inner='<one:InsertedFile preferredName="x.txt"/>'))
        assert render(xml) == "\n# Test Page\ntext"

    def test_copy_failure_removes_written_media(self, tmp_path, make_assembler):
        sink = FileSystemSink(str(tmp_path / 'out'))
        missing = tmp_path / 'does-not-exist.docx'
        xml = build_page_xml(
            paragraph(style=None, inner=image('{IMG-1}'))
            + paragraph(style=None, inner=inserted_file(str(missing)))
        )

        with pytest.raises(AttachmentCopyFailure):
            make_assembler(sink).assemble('{PAGE-1}', parse_page_xml(xml))

        assert not (Path(sink.root_directory) / 'media' / 'test-page_1.jpg').exists()

    def test_inserted_file_without_importer_fails(self):
        xml = build_page_xml(paragraph(style=None, inner=inserted_file('/tmp/a.txt')))
        with pytest.raises(AttachmentCopyFailure):
            convert_page_xml('{PAGE-1}', xml, MemorySink())


class TestCancellation:
    """Cooperative cancellation between sibling elements."""

    def test_cancelled_before_rendering(self, make_assembler, memory_sink):
        cancel = threading.Event()
        cancel.set()
        tree = parse_page_xml(build_page_xml(paragraph(style=None, inner=image('{IMG-1}'))))

        with pytest.raises(RenderCancelled):
            make_assembler(memory_sink).assemble('{PAGE-1}', tree, cancel_event=cancel)

        assert memory_sink.files == {}

    def test_cancelled_mid_page_removes_media(self, make_assembler, memory_sink):
        cancel = threading.Event()

        def payload_then_cancel():
            cancel.set()
            return PNG_BYTES

        provider = FakeProvider({'{IMG-1}': payload_then_cancel})
        xml = build_page_xml(
            paragraph(style=None, inner=image('{IMG-1}')) + paragraph('never rendered')
        )
        assembler = make_assembler(memory_sink, media_provider=provider)

        with pytest.raises(RenderCancelled) as exc_info:
            assembler.assemble('{PAGE-1}', parse_page_xml(xml), cancel_event=cancel)

        assert exc_info.value.page_id == '{PAGE-1}'
        assert memory_sink.files == {}

    def test_unset_event_does_not_interfere(self, make_assembler, memory_sink):
        tree = parse_page_xml(build_page_xml(paragraph('Hello')))
        artifact = make_assembler(memory_sink).assemble('{PAGE-1}', tree, cancel_event=threading.Event())
        assert artifact.content == "\n# Test Page\nHello"


class TestConcurrentPages:
    """One assembler shared by pages rendered on several threads."""

    def test_pages_do_not_share_state(self, make_assembler, memory_sink):
        assembler = make_assembler(memory_sink)
        pages = {
            f'{{PAGE-{n}}}': build_page_xml(
                paragraph(f'quote {n}', style='3')
                + paragraph(style=None, inner=image('{IMG-1}'))
                + paragraph(f'body {n}'),
                title=f'Page {n}',
                page_id=f'{{PAGE-{n}}}'
            )
            for n in range(8)
        }

        with ThreadPoolExecutor(max_workers=4) as executor:
            futures = {
                page_id: executor.submit(assembler.assemble, page_id, parse_page_xml(xml))
                for page_id, xml in pages.items()
            }
            results = {page_id: future.result() for page_id, future in futures.items()}

        for n in range(8):
            artifact = results[f'{{PAGE-{n}}}']
            assert artifact.content == (
                f"\n# Page {n}\n*quote {n}*"
                f"![page-{n}_1.jpg](file://media/page-{n}_1.jpg)"
                f"\nbody {n}"
            )
        assert len(memory_sink.files) == 8
