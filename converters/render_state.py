"""Mutable state threaded through the rendering of a single page."""

import os
import threading
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from converters.errors import RenderCancelled
from models import MarkdownFragment


@dataclass
class TableState:
    """Column and row bookkeeping while inside a Table element."""

    in_table: bool = False
    column_count: int = 0
    row_index: int = 0
    header_emitted: bool = False

    def enter(self) -> None:
        self.reset()
        self.in_table = True

    def add_column(self) -> None:
        self.column_count += 1

    def on_header_row(self) -> bool:
        """Check whether the row about to be rendered is the first one."""
        return self.row_index == 0 and not self.header_emitted

    def add_row(self) -> None:
        self.row_index += 1

    def reset(self) -> None:
        self.in_table = False
        self.column_count = 0
        self.row_index = 0
        self.header_emitted = False


@dataclass
class ImageState:
    """Format and size of the image whose binary content comes next."""

    within_image: bool = False
    format: str = 'png'
    width: Optional[Decimal] = None
    height: Optional[Decimal] = None

    def arm(self, image_format: str) -> None:
        self.within_image = True
        self.format = image_format

    def set_dimensions(self, width: Optional[Decimal], height: Optional[Decimal]) -> None:
        self.width = width
        self.height = height

    def reset(self, default_format: str = 'png') -> None:
        self.within_image = False
        self.format = default_format
        self.width = None
        self.height = None


@dataclass
class PathContext:
    """Where the current page and its media files are written."""

    page_id: str
    page_title: str
    page_stem: str
    page_directory: str
    media_directory_name: str = 'media'
    image_counter: int = 0

    @property
    def output_path(self) -> str:
        return os.path.join(self.page_directory, f"{self.page_stem}.md")

    @property
    def media_directory(self) -> str:
        return os.path.join(self.page_directory, self.media_directory_name)

    def next_image_target(self, image_format: str) -> Tuple[str, str, str]:
        """
        Allocate the next image file name for this page.

        Returns:
            Tuple of (absolute target path, file name, link relative to the page)
        """
        self.image_counter += 1
        filename = f"{self.page_stem}_{self.image_counter}.{image_format}"
        relative = f"{self.media_directory_name}/{filename}"
        return os.path.join(self.media_directory, filename), filename, relative

    def inserted_file_target(self, preferred_name: str) -> str:
        """Target path for a copied attachment."""
        return os.path.join(self.media_directory, f"{self.page_stem}_{preferred_name}")


@dataclass
class RenderState:
    """All per-page rendering state; never shared between pages."""

    paths: PathContext
    default_image_format: str = 'png'
    cancel_event: Optional[threading.Event] = None
    pending: Optional[MarkdownFragment] = None
    table: TableState = field(default_factory=TableState)
    image: ImageState = field(default_factory=ImageState)
    written_media: List[str] = field(default_factory=list)
    stats: Dict[str, int] = field(default_factory=lambda: {
        'paragraphs': 0,
        'tables': 0,
        'images_written': 0,
        'images_failed': 0,
        'files_copied': 0,
        'missing_definitions': 0,
        'malformed_attributes': 0
    })

    def __post_init__(self) -> None:
        self.image.reset(self.default_image_format)

    @property
    def has_pending(self) -> bool:
        return self.pending is not None

    def set_pending(self, fragment: MarkdownFragment) -> None:
        self.pending = fragment

    def take_pending(self) -> Optional[MarkdownFragment]:
        """Return the pending fragment and clear the slot."""
        fragment, self.pending = self.pending, None
        return fragment

    def reset_image(self) -> None:
        self.image.reset(self.default_image_format)

    def check_cancelled(self) -> None:
        """Raise RenderCancelled if cancellation was requested."""
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise RenderCancelled(
                f"Rendering of page '{self.paths.page_title}' cancelled",
                page_id=self.paths.page_id
            )


__all__ = ['ImageState', 'PathContext', 'RenderState', 'TableState']
