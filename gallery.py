"""Attachment gallery: merge a post's images, videos, documents and polls into one feed.

The bundle belongs to the post form. Nothing here mutates it; removals are
handed back through a ``(collection, id)`` callback.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Union

from errors import ParseError

log = logging.getLogger(__name__)

COLLECTIONS = ("images", "videos", "documents", "polls")
MAX_GRID_COLUMNS = 3

# Leading digits of the timestamp segment, read the way the upload form's ids were parsed
_LEADING_INT = re.compile(r"\s*\+?(\d+)")

RemoveCallback = Callable[[str, Any], None]


@dataclass
class ImageItem:
    media_type: ClassVar[str] = "image"
    collection: ClassVar[str] = "images"

    id: Any
    url: str
    name: str = ""

    @classmethod
    def from_dict(cls, raw: dict) -> "ImageItem":
        return cls(id=raw.get("id"), url=raw.get("url", ""), name=raw.get("name", ""))


@dataclass
class VideoItem:
    media_type: ClassVar[str] = "video"
    collection: ClassVar[str] = "videos"

    id: Any
    url: str
    name: str = ""

    @classmethod
    def from_dict(cls, raw: dict) -> "VideoItem":
        return cls(id=raw.get("id"), url=raw.get("url", ""), name=raw.get("name", ""))


@dataclass
class DocumentItem:
    media_type: ClassVar[str] = "document"
    collection: ClassVar[str] = "documents"

    id: Any
    name: str
    size: int = 0

    def __post_init__(self):
        if self.size < 0:
            raise ValueError(f"Document {self.id!r} has a negative size")

    @classmethod
    def from_dict(cls, raw: dict) -> "DocumentItem":
        return cls(id=raw.get("id"), name=raw.get("name", ""), size=int(raw.get("size") or 0))


@dataclass
class PollOption:
    id: Any
    text: str


@dataclass
class PollItem:
    media_type: ClassVar[str] = "poll"
    collection: ClassVar[str] = "polls"

    id: Any
    question: str
    options: list[PollOption]

    def __post_init__(self):
        if not self.options:
            raise ValueError(f"Poll {self.id!r} needs at least one option")

    @classmethod
    def from_dict(cls, raw: dict) -> "PollItem":
        options = [PollOption(id=o.get("id"), text=o.get("text", "")) for o in raw.get("options", [])]
        return cls(id=raw.get("id"), question=raw.get("question", ""), options=options)


GalleryItem = Union[ImageItem, VideoItem, DocumentItem, PollItem]

_ITEM_TYPES = {
    "images": ImageItem,
    "videos": VideoItem,
    "documents": DocumentItem,
    "polls": PollItem,
}


@dataclass
class AttachmentBundle:
    images: list[ImageItem] = field(default_factory=list)
    videos: list[VideoItem] = field(default_factory=list)
    documents: list[DocumentItem] = field(default_factory=list)
    polls: list[PollItem] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: dict) -> "AttachmentBundle":
        """Build a bundle from plain mappings. Missing collections are empty."""
        return cls(**{
            name: [item_type.from_dict(r) for r in (raw.get(name) or [])]
            for name, item_type in _ITEM_TYPES.items()
        })

    def collection(self, name: str) -> list:
        if name not in COLLECTIONS:
            raise KeyError(name)
        return getattr(self, name)


@dataclass
class Layout:
    kind: str       # "empty" | "single" | "grid"
    columns: int


@dataclass
class Gallery:
    items: list[GalleryItem]
    has_mixed: bool
    counts: dict[str, int]
    empty: bool
    layout: Layout


def _parse_recency(attachment_id) -> int:
    if not isinstance(attachment_id, str) or "-" not in attachment_id:
        raise ParseError(attachment_id)
    match = _LEADING_INT.match(attachment_id.split("-")[1])
    if not match:
        raise ParseError(attachment_id)
    return int(match.group(1))


def recency_key(item_or_id) -> int:
    """Creation time embedded in an attachment id, or 0 when the id has none."""
    attachment_id = getattr(item_or_id, "id", item_or_id)
    try:
        return _parse_recency(attachment_id)
    except ParseError as e:
        log.debug("%s; sorting it as oldest", e)
        return 0


def aggregate(bundle: AttachmentBundle) -> list[GalleryItem]:
    """All attachments of a bundle, newest first.

    ``sorted`` is stable with ``reverse=True`` too, so equal keys keep the
    images, videos, documents, polls insertion order.
    """
    items: list[GalleryItem] = []
    for name in COLLECTIONS:
        items.extend(bundle.collection(name))
    return sorted(items, key=recency_key, reverse=True)


def attachment_counts(bundle: AttachmentBundle) -> dict[str, int]:
    return {name: len(bundle.collection(name)) for name in COLLECTIONS}


def has_mixed_attachments(bundle: AttachmentBundle) -> bool:
    return sum(1 for n in attachment_counts(bundle).values() if n > 0) > 1


def is_empty(bundle: AttachmentBundle) -> bool:
    return not any(attachment_counts(bundle).values())


def count_label(collection: str, count: int) -> str:
    """'1 image', '3 videos', ..."""
    singular = collection[:-1]
    return f"{count} {singular}" if count == 1 else f"{count} {collection}"


def layout_for(items: list) -> Layout:
    if not items:
        return Layout(kind="empty", columns=0)
    if len(items) == 1:
        return Layout(kind="single", columns=1)
    return Layout(kind="grid", columns=min(len(items), MAX_GRID_COLUMNS))


def removal_target(item: GalleryItem) -> tuple[str, Any]:
    return item.collection, item.id


def remove(item: GalleryItem, on_remove: RemoveCallback) -> None:
    collection, attachment_id = removal_target(item)
    log.info("Removing %s %r", item.media_type, attachment_id)
    on_remove(collection, attachment_id)


def format_file_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1048576:
        return f"{size / 1024:.1f} KB"
    return f"{size / 1048576:.1f} MB"


def describe(item: GalleryItem) -> str:
    """One-line text rendering of a gallery item."""
    if isinstance(item, PollItem):
        return f"[poll] {item.question} ({len(item.options)} options)"
    if isinstance(item, DocumentItem):
        return f"[document] {item.name} ({format_file_size(item.size)})"
    return f"[{item.media_type}] {item.name or item.url}"


def build_gallery(bundle: AttachmentBundle) -> Gallery:
    items = aggregate(bundle)
    return Gallery(
        items=items,
        has_mixed=has_mixed_attachments(bundle),
        counts=attachment_counts(bundle),
        empty=is_empty(bundle),
        layout=layout_for(items),
    )
