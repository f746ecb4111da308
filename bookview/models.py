"""
Domain records read by the query engine.

Books, libraries and shelves are owned by the repository; the engine only
reads them. All records are frozen dataclasses so a snapshot can be shared
across recomputations without copying.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional, Tuple
import logging

logger = logging.getLogger(__name__)


class ReadStatus(str, Enum):
    """Reading status of a book."""
    UNREAD = 'UNREAD'
    READING = 'READING'
    RE_READING = 'RE_READING'
    PARTIALLY_READ = 'PARTIALLY_READ'
    PAUSED = 'PAUSED'
    READ = 'READ'
    WONT_READ = 'WONT_READ'
    ABANDONED = 'ABANDONED'
    UNSET = 'UNSET'

    @property
    def label(self) -> str:
        return READ_STATUS_LABELS[self]

    @classmethod
    def coerce(cls, value: Any) -> 'ReadStatus':
        """Map a stored value to a status, falling back to UNSET."""
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.UNSET
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            logger.debug(f"Unknown read status {value!r}, using UNSET")
            return cls.UNSET


READ_STATUS_LABELS = {
    ReadStatus.UNREAD: 'Unread',
    ReadStatus.READING: 'Reading',
    ReadStatus.RE_READING: 'Re-reading',
    ReadStatus.PARTIALLY_READ: 'Partially Read',
    ReadStatus.PAUSED: 'Paused',
    ReadStatus.READ: 'Read',
    ReadStatus.WONT_READ: "Won't Read",
    ReadStatus.ABANDONED: 'Abandoned',
    ReadStatus.UNSET: 'Unset',
}


@dataclass(frozen=True)
class Book:
    """A book record as seen by the query engine."""
    id: int
    title: str = ''
    subtitle: Optional[str] = None
    authors: Tuple[str, ...] = ()
    categories: Tuple[str, ...] = ()
    publisher: Optional[str] = None
    series_name: Optional[str] = None
    series_number: Optional[float] = None
    series_total: Optional[int] = None
    published_date: Optional[date] = None
    language: Optional[str] = None
    page_count: Optional[int] = None
    isbn10: Optional[str] = None
    isbn13: Optional[str] = None
    file_type: Optional[str] = None
    file_size_kb: Optional[float] = None
    read_status: ReadStatus = ReadStatus.UNSET
    personal_rating: Optional[float] = None
    amazon_rating: Optional[float] = None
    amazon_review_count: Optional[int] = None
    goodreads_rating: Optional[float] = None
    goodreads_review_count: Optional[int] = None
    hardcover_rating: Optional[float] = None
    hardcover_review_count: Optional[int] = None
    metadata_match_score: Optional[float] = None
    library_id: Optional[int] = None
    shelf_ids: FrozenSet[int] = frozenset()
    added_on: Optional[datetime] = None
    last_read_time: Optional[datetime] = None
    date_finished: Optional[date] = None
    read_progress: Optional[float] = None

    @property
    def is_shelved(self) -> bool:
        return bool(self.shelf_ids)

    def __repr__(self):
        return f"<Book(id={self.id}, title='{self.title[:50]}')>"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Book':
        """
        Build a book from a library file entry.

        Accepts the camelCase keys of the persisted library format as well
        as snake_case. Unknown keys are ignored.
        """
        def get(*keys, default=None):
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return default

        return cls(
            id=int(data['id']),
            title=get('title', default=''),
            subtitle=get('subtitle'),
            authors=tuple(_as_list(get('authors', 'creators', default=[]))),
            categories=tuple(_as_list(get('categories', 'subjects', default=[]))),
            publisher=get('publisher'),
            series_name=get('seriesName', 'series_name', 'series'),
            series_number=_to_float(get('seriesNumber', 'series_number')),
            series_total=_to_int(get('seriesTotal', 'series_total')),
            published_date=parse_date(get('publishedDate', 'published_date')),
            language=get('language'),
            page_count=_to_int(get('pageCount', 'page_count')),
            isbn10=get('isbn10'),
            isbn13=get('isbn13'),
            file_type=_lower(get('fileType', 'file_type', 'bookType')),
            file_size_kb=_to_float(get('fileSizeKb', 'file_size_kb')),
            read_status=ReadStatus.coerce(get('readStatus', 'read_status')),
            personal_rating=_to_float(get('personalRating', 'personal_rating')),
            amazon_rating=_to_float(get('amazonRating', 'amazon_rating')),
            amazon_review_count=_to_int(get('amazonReviewCount', 'amazon_review_count')),
            goodreads_rating=_to_float(get('goodreadsRating', 'goodreads_rating')),
            goodreads_review_count=_to_int(get('goodreadsReviewCount', 'goodreads_review_count')),
            hardcover_rating=_to_float(get('hardcoverRating', 'hardcover_rating')),
            hardcover_review_count=_to_int(get('hardcoverReviewCount', 'hardcover_review_count')),
            metadata_match_score=_to_float(get('metadataMatchScore', 'metadata_match_score')),
            library_id=_to_int(get('libraryId', 'library_id')),
            shelf_ids=frozenset(_shelf_ids(get('shelves', 'shelfIds', 'shelf_ids', default=[]))),
            added_on=parse_datetime(get('addedOn', 'added_on')),
            last_read_time=parse_datetime(get('lastReadTime', 'last_read_time')),
            date_finished=parse_date(get('dateFinished', 'date_finished')),
            read_progress=_to_float(get('readProgress', 'read_progress')),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the camelCase library file format."""
        return {
            'id': self.id,
            'title': self.title,
            'subtitle': self.subtitle,
            'authors': list(self.authors),
            'categories': list(self.categories),
            'publisher': self.publisher,
            'seriesName': self.series_name,
            'seriesNumber': self.series_number,
            'seriesTotal': self.series_total,
            'publishedDate': self.published_date.isoformat() if self.published_date else None,
            'language': self.language,
            'pageCount': self.page_count,
            'isbn10': self.isbn10,
            'isbn13': self.isbn13,
            'fileType': self.file_type,
            'fileSizeKb': self.file_size_kb,
            'readStatus': self.read_status.value,
            'personalRating': self.personal_rating,
            'amazonRating': self.amazon_rating,
            'amazonReviewCount': self.amazon_review_count,
            'goodreadsRating': self.goodreads_rating,
            'goodreadsReviewCount': self.goodreads_review_count,
            'hardcoverRating': self.hardcover_rating,
            'hardcoverReviewCount': self.hardcover_review_count,
            'metadataMatchScore': self.metadata_match_score,
            'libraryId': self.library_id,
            'shelves': sorted(self.shelf_ids),
            'addedOn': self.added_on.isoformat() if self.added_on else None,
            'lastReadTime': self.last_read_time.isoformat() if self.last_read_time else None,
            'dateFinished': self.date_finished.isoformat() if self.date_finished else None,
            'readProgress': self.read_progress,
        }


@dataclass(frozen=True)
class Library:
    """A library (top-level book container)."""
    id: int
    name: str
    paths: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Shelf:
    """A user shelf with explicit membership."""
    id: int
    name: str
    icon: Optional[str] = None


@dataclass(frozen=True)
class MagicShelf:
    """
    A saved rule tree defining a dynamic subset of the collection.

    ``filter_json`` is the persisted tree as a JSON string; it is parsed by
    the scope selector, not here, so a broken tree does not prevent the
    shelf itself from loading.
    """
    id: int
    name: str
    filter_json: Optional[str] = None
    icon: Optional[str] = None


# =============================================================================
# Value coercion helpers
# =============================================================================


def parse_date(value: Any) -> Optional[date]:
    """Parse a date from a date, datetime or ISO string; None if unparseable."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    # Year-only dates are common in imported metadata
    if len(text) == 4 and text.isdigit():
        return date(int(text), 1, 1)
    return None


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse a datetime from a datetime, date or ISO string."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        day = parse_date(text)
        return datetime(day.year, day.month, day.day) if day else None
    # Compare naive and aware values safely by dropping tzinfo
    return parsed.replace(tzinfo=None)


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == '':
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_int(value: Any) -> Optional[int]:
    number = _to_float(value)
    return int(number) if number is not None else None


def _lower(value: Any) -> Optional[str]:
    return str(value).lower() if value is not None else None


def _as_list(value: Any) -> Iterable[str]:
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value or []]


def _shelf_ids(value: Any) -> Iterable[int]:
    for item in value or []:
        if isinstance(item, dict):
            if item.get('id') is not None:
                yield int(item['id'])
        else:
            yield int(item)
