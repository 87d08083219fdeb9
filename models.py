"""Data models for the OneNote to Markdown export pipeline."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

logger = logging.getLogger('onenote_markdown_exporter')


class NodeKind(Enum):
    """Element kinds of the OneNote page schema the renderer understands."""
    PARAGRAPH = "OE"
    TEXT = "T"
    BULLET = "Bullet"
    NUMBER = "Number"
    TAG = "Tag"
    TABLE = "Table"
    COLUMN = "Column"
    ROW = "Row"
    CELL = "Cell"
    IMAGE = "Image"
    SIZE = "Size"
    BINARY_REFERENCE = "CallbackID"
    OCR_DATA = "OCRData"
    INSERTED_FILE = "InsertedFile"
    CHILDREN_GROUP = "OEChildren"
    TITLE = "Title"
    OUTLINE = "Outline"
    QUICK_STYLE_DEF = "QuickStyleDef"
    TAG_DEF = "TagDef"
    OTHER = "*"

    @classmethod
    def from_name(cls, name: str) -> 'NodeKind':
        """Resolve an element local name, falling back to OTHER."""
        try:
            return cls(name)
        except ValueError:
            return cls.OTHER


class TagDefType(Enum):
    """Tag definition types that change how a tag is rendered."""
    TODO = 0
    TODO2 = 26
    OTHER = -1

    @classmethod
    def from_attribute(cls, value: Optional[str]) -> 'TagDefType':
        """Map the numeric ``type`` attribute of a TagDef to a TagDefType."""
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            return cls.OTHER


class ObjectKind(Enum):
    """Kinds of objects in a notebook hierarchy."""
    NOTEBOOK = "Notebook"
    SECTION_GROUP = "SectionGroup"
    SECTION = "Section"
    PAGE = "Page"


class HierarchyScope(Enum):
    """How deep a hierarchy listing reaches below its container."""
    CHILDREN = "children"
    NOTEBOOKS = "notebooks"
    SECTIONS = "sections"
    PAGES = "pages"


@dataclass
class DocumentNode:
    """A parsed element of a OneNote page tree."""

    name: str
    kind: NodeKind = NodeKind.OTHER
    attributes: Dict[str, str] = field(default_factory=dict)
    text: str = ""
    children: List['DocumentNode'] = field(default_factory=list)
    parent: Optional['DocumentNode'] = field(default=None, repr=False, compare=False)

    def get(self, attribute: str, default: Optional[str] = None) -> Optional[str]:
        """Return an attribute value or ``default``."""
        return self.attributes.get(attribute, default)

    def add_child(self, child: 'DocumentNode') -> None:
        """Append a child and point its parent reference here."""
        child.parent = self
        self.children.append(child)

    def iter_descendants(self, kind: Optional[NodeKind] = None) -> Iterator['DocumentNode']:
        """Yield descendants in document order, optionally filtered by kind."""
        for child in self.children:
            if kind is None or child.kind is kind:
                yield child
            yield from child.iter_descendants(kind)

    def find_first(self, kind: NodeKind) -> Optional['DocumentNode']:
        """Return the first descendant of the given kind."""
        return next(self.iter_descendants(kind), None)

    def ancestors(self) -> Iterator['DocumentNode']:
        """Yield parent, grandparent and so on up to the root."""
        node = self.parent
        while node is not None:
            yield node
            node = node.parent

    def previous_sibling(self) -> Optional['DocumentNode']:
        """Return the element immediately before this one under the same parent."""
        if self.parent is None:
            return None
        siblings = self.parent.children
        for position, sibling in enumerate(siblings):
            if sibling is self:
                return siblings[position - 1] if position > 0 else None
        return None

    def text_content(self) -> str:
        """Concatenate the text of every text run below this node."""
        runs = [self.text] if self.kind is NodeKind.TEXT else []
        runs.extend(node.text for node in self.iter_descendants(NodeKind.TEXT))
        return "".join(runs)


@dataclass(frozen=True)
class StyleDef:
    """A named paragraph style referenced by ``quickStyleIndex``."""

    index: str
    name: str


@dataclass(frozen=True)
class TagDef:
    """A tag definition referenced by a Tag's ``index``."""

    index: str
    name: str = ""
    symbol: str = ""
    type: str = ""

    @property
    def kind(self) -> TagDefType:
        return TagDefType.from_attribute(self.type)

    @property
    def is_todo(self) -> bool:
        return self.kind in (TagDefType.TODO, TagDefType.TODO2)


@dataclass(frozen=True)
class MarkdownFragment:
    """Paired Markdown text wrapped around a styled paragraph."""

    opening: str = ""
    closing: str = ""

    @property
    def starts_new_line(self) -> bool:
        return self.opening.startswith("\n")


@dataclass
class PageArtifact:
    """Result of rendering one page."""

    title: str
    content: str
    output_path: str
    page_id: Optional[str] = None
    media_files: List[str] = field(default_factory=list)
    stats: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize artifact metadata to dictionary."""
        return {
            'page_id': self.page_id,
            'title': self.title,
            'output_path': self.output_path,
            'media_files': list(self.media_files),
            'stats': dict(self.stats),
            'content_length': len(self.content)
        }


@dataclass(frozen=True)
class HierarchyEntry:
    """A notebook, section group, section or page listed by a navigator."""

    id: str
    name: str
    kind: ObjectKind


@dataclass
class PageExportStatus:
    """Tracks the outcome of exporting a single page for reporting."""

    page_id: str
    page_title: str
    status: str  # "exported", "previewed", "failed", "skipped"
    output_path: Optional[str] = None
    error_message: Optional[str] = None
    timestamp: Optional[str] = None

    def __post_init__(self) -> None:
        """Set timestamp if not provided."""
        if self.timestamp is None:
            self.timestamp = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Serialize status to dictionary."""
        return {
            'page_id': self.page_id,
            'page_title': self.page_title,
            'status': self.status,
            'output_path': self.output_path,
            'error_message': self.error_message,
            'timestamp': self.timestamp
        }


__all__ = [
    'DocumentNode',
    'HierarchyEntry',
    'HierarchyScope',
    'MarkdownFragment',
    'NodeKind',
    'ObjectKind',
    'PageArtifact',
    'PageExportStatus',
    'StyleDef',
    'TagDef',
    'TagDefType'
]
