"""
Static table of rule fields and operator legality.

Both the evaluator and anything that offers operators to a rule author
(the ``bookview fields`` command) read this table, so the two can never
disagree about which (field, operator) pairs are legal.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple


class FieldKind(str, Enum):
    """Value kind of a rule field. Fields without a kind are categorical."""
    TEXT = 'text'
    NUMBER = 'number'
    DECIMAL = 'decimal'
    DATE = 'date'


class RuleOperator(str, Enum):
    EQUALS = 'equals'
    NOT_EQUALS = 'not_equals'
    CONTAINS = 'contains'
    DOES_NOT_CONTAIN = 'does_not_contain'
    STARTS_WITH = 'starts_with'
    ENDS_WITH = 'ends_with'
    GREATER_THAN = 'greater_than'
    GREATER_THAN_EQUAL_TO = 'greater_than_equal_to'
    LESS_THAN = 'less_than'
    LESS_THAN_EQUAL_TO = 'less_than_equal_to'
    IN_BETWEEN = 'in_between'
    IS_EMPTY = 'is_empty'
    IS_NOT_EMPTY = 'is_not_empty'
    INCLUDES_ANY = 'includes_any'
    EXCLUDES_ALL = 'excludes_all'
    INCLUDES_ALL = 'includes_all'


class RuleField(str, Enum):
    LIBRARY = 'library'
    TITLE = 'title'
    SUBTITLE = 'subtitle'
    AUTHORS = 'authors'
    CATEGORIES = 'categories'
    PUBLISHER = 'publisher'
    PUBLISHED_DATE = 'publishedDate'
    SERIES_NAME = 'seriesName'
    SERIES_NUMBER = 'seriesNumber'
    SERIES_TOTAL = 'seriesTotal'
    PAGE_COUNT = 'pageCount'
    LANGUAGE = 'language'
    AMAZON_RATING = 'amazonRating'
    AMAZON_REVIEW_COUNT = 'amazonReviewCount'
    GOODREADS_RATING = 'goodreadsRating'
    GOODREADS_REVIEW_COUNT = 'goodreadsReviewCount'
    HARDCOVER_RATING = 'hardcoverRating'
    HARDCOVER_REVIEW_COUNT = 'hardcoverReviewCount'
    PERSONAL_RATING = 'personalRating'
    FILE_TYPE = 'fileType'
    FILE_SIZE = 'fileSize'
    READ_STATUS = 'readStatus'
    DATE_FINISHED = 'dateFinished'
    METADATA_SCORE = 'metadataScore'


BASE_OPERATORS: Tuple[RuleOperator, ...] = (
    RuleOperator.EQUALS,
    RuleOperator.NOT_EQUALS,
    RuleOperator.IS_EMPTY,
    RuleOperator.IS_NOT_EMPTY,
)

MULTI_VALUE_OPERATORS: Tuple[RuleOperator, ...] = (
    RuleOperator.INCLUDES_ANY,
    RuleOperator.EXCLUDES_ALL,
    RuleOperator.INCLUDES_ALL,
)

TEXT_OPERATORS: Tuple[RuleOperator, ...] = (
    RuleOperator.CONTAINS,
    RuleOperator.DOES_NOT_CONTAIN,
    RuleOperator.STARTS_WITH,
    RuleOperator.ENDS_WITH,
)

COMPARISON_OPERATORS: Tuple[RuleOperator, ...] = (
    RuleOperator.GREATER_THAN,
    RuleOperator.GREATER_THAN_EQUAL_TO,
    RuleOperator.LESS_THAN,
    RuleOperator.LESS_THAN_EQUAL_TO,
    RuleOperator.IN_BETWEEN,
)

EMPTY_CHECK_OPERATORS: Tuple[RuleOperator, ...] = (
    RuleOperator.IS_EMPTY,
    RuleOperator.IS_NOT_EMPTY,
)

OPERATOR_LABELS: Dict[RuleOperator, str] = {
    RuleOperator.EQUALS: 'Equals',
    RuleOperator.NOT_EQUALS: 'Not Equal',
    RuleOperator.IS_EMPTY: 'Empty',
    RuleOperator.IS_NOT_EMPTY: 'Not Empty',
    RuleOperator.INCLUDES_ANY: 'Includes Any',
    RuleOperator.EXCLUDES_ALL: 'Excludes All',
    RuleOperator.INCLUDES_ALL: 'Includes All',
    RuleOperator.CONTAINS: 'Contains',
    RuleOperator.DOES_NOT_CONTAIN: "Doesn't Contain",
    RuleOperator.STARTS_WITH: 'Starts With',
    RuleOperator.ENDS_WITH: 'Ends With',
    RuleOperator.GREATER_THAN: 'Greater Than',
    RuleOperator.GREATER_THAN_EQUAL_TO: 'Greater or Equal',
    RuleOperator.LESS_THAN: 'Less Than',
    RuleOperator.LESS_THAN_EQUAL_TO: 'Less or Equal',
    RuleOperator.IN_BETWEEN: 'Between',
}


@dataclass(frozen=True)
class FieldSpec:
    """Declared behaviour of one rule field."""
    field: RuleField
    label: str
    kind: Optional[FieldKind] = None
    multi_value: bool = False
    text_eligible: bool = True
    sequence: bool = False
    max: Optional[float] = None

    @property
    def is_ordered(self) -> bool:
        return self.kind in (FieldKind.NUMBER, FieldKind.DECIMAL, FieldKind.DATE)

    @property
    def operators(self) -> Tuple[RuleOperator, ...]:
        ops: List[RuleOperator] = list(BASE_OPERATORS)
        if self.multi_value:
            ops.extend(MULTI_VALUE_OPERATORS)
        if self.is_ordered:
            ops.extend(COMPARISON_OPERATORS)
        elif self.text_eligible:
            ops.extend(TEXT_OPERATORS)
        return tuple(ops)

    def allows(self, operator: RuleOperator) -> bool:
        return operator in self.operators


def _spec(field: RuleField, label: str, **kwargs) -> Tuple[RuleField, FieldSpec]:
    return field, FieldSpec(field=field, label=label, **kwargs)


FIELD_SPECS: Dict[RuleField, FieldSpec] = dict([
    _spec(RuleField.LIBRARY, 'Library', multi_value=True, text_eligible=False),
    _spec(RuleField.READ_STATUS, 'Read Status', multi_value=True, text_eligible=False),
    _spec(RuleField.DATE_FINISHED, 'Date Finished', kind=FieldKind.DATE),
    _spec(RuleField.METADATA_SCORE, 'Metadata Score', kind=FieldKind.DECIMAL, max=100),
    _spec(RuleField.TITLE, 'Title', multi_value=True),
    _spec(RuleField.AUTHORS, 'Authors', multi_value=True, sequence=True),
    _spec(RuleField.CATEGORIES, 'Categories', multi_value=True, sequence=True),
    _spec(RuleField.PUBLISHER, 'Publisher', multi_value=True),
    _spec(RuleField.PUBLISHED_DATE, 'Published Date', kind=FieldKind.DATE),
    _spec(RuleField.PERSONAL_RATING, 'Personal Rating', kind=FieldKind.DECIMAL, max=10),
    _spec(RuleField.PAGE_COUNT, 'Page Count', kind=FieldKind.NUMBER),
    _spec(RuleField.LANGUAGE, 'Language', multi_value=True),
    _spec(RuleField.SERIES_NAME, 'Series Name', multi_value=True),
    _spec(RuleField.SERIES_NUMBER, 'Series Number', kind=FieldKind.NUMBER),
    _spec(RuleField.SERIES_TOTAL, 'Books in Series', kind=FieldKind.NUMBER),
    _spec(RuleField.FILE_SIZE, 'File Size (Kb)', kind=FieldKind.NUMBER),
    _spec(RuleField.FILE_TYPE, 'File Type', multi_value=True, text_eligible=False),
    _spec(RuleField.SUBTITLE, 'Subtitle', multi_value=True),
    _spec(RuleField.AMAZON_RATING, 'Amazon Rating', kind=FieldKind.DECIMAL, max=5),
    _spec(RuleField.AMAZON_REVIEW_COUNT, 'Amazon Review Count', kind=FieldKind.NUMBER),
    _spec(RuleField.GOODREADS_RATING, 'Goodreads Rating', kind=FieldKind.DECIMAL, max=5),
    _spec(RuleField.GOODREADS_REVIEW_COUNT, 'Goodreads Review Count', kind=FieldKind.NUMBER),
    _spec(RuleField.HARDCOVER_RATING, 'Hardcover Rating', kind=FieldKind.DECIMAL, max=5),
    _spec(RuleField.HARDCOVER_REVIEW_COUNT, 'Hardcover Review Count', kind=FieldKind.NUMBER),
])

FILE_TYPES: FrozenSet[str] = frozenset({'pdf', 'epub', 'cbr', 'cbz', 'cb7'})


def resolve_field(name: Optional[str]) -> Optional[FieldSpec]:
    """Look up a field spec by its persisted name; None if unknown."""
    if not name:
        return None
    try:
        return FIELD_SPECS[RuleField(name)]
    except ValueError:
        return None


def resolve_operator(name: Optional[str]) -> Optional[RuleOperator]:
    """Look up an operator by its persisted name; None if unknown."""
    if not name:
        return None
    try:
        return RuleOperator(name)
    except ValueError:
        return None


def operators_for(field_name: Optional[str]) -> Tuple[RuleOperator, ...]:
    """
    Operators a rule author may pick for a field.

    With no field chosen yet, the base and multi-value operators are offered.
    """
    if not field_name:
        return BASE_OPERATORS + MULTI_VALUE_OPERATORS
    spec = resolve_field(field_name)
    return spec.operators if spec else ()


def is_legal(field_name: Optional[str], operator_name: Optional[str]) -> bool:
    spec = resolve_field(field_name)
    operator = resolve_operator(operator_name)
    return spec is not None and operator is not None and spec.allows(operator)
