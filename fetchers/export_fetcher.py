"""Fetcher reading a OneNote export directory from disk."""

import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from urllib.parse import quote

from lxml import etree

from models import HierarchyEntry, HierarchyScope, ObjectKind
from .base_fetcher import BaseFetcher, FetcherError, SourceParseError, SourceUnavailable

logger = logging.getLogger('onenote_markdown_exporter.fetcher.export')

HIERARCHY_FILE = 'hierarchy.xml'
PAGES_DIRECTORY = 'pages'
BINARY_DIRECTORY = 'binary'
BASE64_SUFFIX = '.b64'

SCOPE_KINDS = {
    HierarchyScope.NOTEBOOKS: {ObjectKind.NOTEBOOK},
    HierarchyScope.SECTIONS: {ObjectKind.SECTION},
    HierarchyScope.PAGES: {ObjectKind.PAGE},
}


class ExportFetcher(BaseFetcher):
    """
    Navigates notebooks and serves page XML and binary content from an export directory.

    Layout of the export directory:
    - hierarchy.xml: the notebook hierarchy document (Notebooks/Notebook/SectionGroup/Section/Page)
    - pages/*.xml: one page content document per page, matched by the root ID attribute
    - binary/<page id>/<callback id>: image payloads, raw or base64 text when named *.b64
    IDs in the binary layout are percent-encoded.
    """

    def __init__(self, config: Dict[str, Any], logger=None):
        """
        Initialize export fetcher with configuration.

        Args:
            config: Configuration dictionary with source.export_path
            logger: Logger instance (optional)
        """
        super().__init__(config, logger)

        export_path = config.get('source', {}).get('export_path')
        if not export_path:
            raise ValueError("source.export_path is required for the export fetcher")

        self.export_path = Path(export_path).resolve()
        self.hierarchy_path = self.export_path / HIERARCHY_FILE
        self.pages_path = self.export_path / PAGES_DIRECTORY
        self.binary_path = self.export_path / BINARY_DIRECTORY

        self._check_available()

        self._hierarchy = None
        self._elements_by_id: Dict[str, Any] = {}
        self._page_files: Optional[Dict[str, Path]] = None
        self._lock = threading.Lock()

        self.logger.info(f"Initialized ExportFetcher for path: {self.export_path}")

    def _check_available(self) -> None:
        if not self.export_path.is_dir():
            raise SourceUnavailable(f"Export path not found: {self.export_path}")
        if not self.hierarchy_path.is_file():
            raise SourceUnavailable(f"{HIERARCHY_FILE} not found in export path: {self.export_path}")

    def _load_hierarchy(self):
        with self._lock:
            if self._hierarchy is None:
                self._check_available()
                parser = etree.XMLParser(resolve_entities=False, no_network=True)
                try:
                    self._hierarchy = etree.parse(str(self.hierarchy_path), parser).getroot()
                except etree.XMLSyntaxError as e:
                    raise SourceParseError(f"Failed to parse {self.hierarchy_path}: {str(e)}") from e

                for element in self._hierarchy.iter():
                    object_id = element.get('ID')
                    if object_id and _object_kind(element) is not None:
                        self._elements_by_id[object_id] = element

                self._log_progress(f"Loaded hierarchy with {len(self._elements_by_id)} object(s)", 'debug')
            return self._hierarchy

    def list_children(
        self,
        container_id: Optional[str],
        scope: HierarchyScope = HierarchyScope.CHILDREN
    ) -> List[HierarchyEntry]:
        root = self._load_hierarchy()

        if container_id is None:
            container = root
        else:
            container = self._elements_by_id.get(container_id)
            if container is None:
                raise FetcherError(f"Unknown object ID: {container_id}")

        if scope is HierarchyScope.CHILDREN:
            candidates = list(container)
        else:
            candidates = container.iterdescendants()

        entries = []
        for element in candidates:
            kind = _object_kind(element)
            if kind is None:
                continue
            if scope is not HierarchyScope.CHILDREN and kind not in SCOPE_KINDS[scope]:
                continue
            if element.get('isRecycleBin') == 'true' or element.get('isInRecycleBin') == 'true':
                self.logger.debug(f"Skipping recycle bin object: {element.get('name')}")
                continue
            entries.append(HierarchyEntry(
                id=element.get('ID', ''),
                name=element.get('name', ''),
                kind=kind
            ))

        return entries

    def resolve_id(self, scope: HierarchyScope, name: str) -> Optional[str]:
        root = self._load_hierarchy()
        kinds = SCOPE_KINDS.get(scope)

        for element in root.iterdescendants():
            kind = _object_kind(element)
            if kind is None or (kinds is not None and kind not in kinds):
                continue
            if element.get('name') == name:
                return element.get('ID')

        return None

    def fetch_page_xml(self, page_id: str) -> str:
        page_file = self._find_page_file(page_id)
        if page_file is None:
            raise FetcherError(f"No page content found for page ID: {page_id}")

        try:
            return page_file.read_text(encoding='utf-8')
        except OSError as e:
            self._check_available()
            raise FetcherError(f"Failed to read page file {page_file}: {str(e)}") from e

    def fetch(self, page_id: str, reference_id: str) -> Union[bytes, str]:
        self._check_available()

        reference_dir = self.binary_path / quote(page_id, safe='')
        raw_path = reference_dir / quote(reference_id, safe='')
        encoded_path = raw_path.with_name(raw_path.name + BASE64_SUFFIX)

        if raw_path.is_file():
            return raw_path.read_bytes()
        if encoded_path.is_file():
            return encoded_path.read_text(encoding='ascii').strip()

        raise FetcherError(f"No binary content for reference '{reference_id}' on page {page_id}")

    def _find_page_file(self, page_id: str) -> Optional[Path]:
        self._check_available()

        direct = self.pages_path / f"{quote(page_id, safe='')}.xml"
        if direct.is_file():
            return direct

        with self._lock:
            if self._page_files is None:
                self._page_files = self._index_page_files()
            return self._page_files.get(page_id)

    def _index_page_files(self) -> Dict[str, Path]:
        """Map page IDs to files by reading only the root element of each page document."""
        index: Dict[str, Path] = {}
        if not self.pages_path.is_dir():
            self.logger.warning(f"Pages directory not found: {self.pages_path}")
            return index

        for page_file in sorted(self.pages_path.glob('*.xml')):
            try:
                with open(page_file, 'rb') as f:
                    for _, element in etree.iterparse(f, events=('start',)):
                        page_id = element.get('ID')
                        if page_id:
                            index[page_id] = page_file
                        break
            except (OSError, etree.XMLSyntaxError) as e:
                self.logger.warning(f"Skipping unreadable page file {page_file}: {str(e)}")

        self._log_progress(f"Indexed {len(index)} page file(s) in {self.pages_path}", 'debug')
        return index


def _object_kind(element) -> Optional[ObjectKind]:
    if not isinstance(element.tag, str):
        return None
    try:
        return ObjectKind(etree.QName(element).localname)
    except ValueError:
        return None


__all__ = ['ExportFetcher']
