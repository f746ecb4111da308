"""
Rule evaluator for magic shelves.

Evaluates a rule tree against a single book. Evaluation is total: a rule
with an unknown field, an unknown operator, an operator the field does not
allow, or a value that cannot be parsed for the field's kind never matches,
and evaluation of sibling rules continues. Nothing here holds state, so one
evaluator can be shared across the whole collection.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence
import logging
import math

from ..models import Book, ReadStatus, parse_date
from .fields import (
    EMPTY_CHECK_OPERATORS,
    MULTI_VALUE_OPERATORS,
    FieldKind,
    FieldSpec,
    RuleField,
    RuleOperator,
    resolve_field,
    resolve_operator,
)
from .tree import JOIN_AND, JOIN_OR, Group, Node, Rule

logger = logging.getLogger(__name__)

DECIMAL_TOLERANCE = 1e-6


def _library(book: Book) -> Any:
    return book.library_id


def _metadata_score(book: Book) -> Optional[float]:
    # Scores are stored as 0-1; rules are written in percent
    if book.metadata_match_score is None:
        return None
    return book.metadata_match_score * 100


FIELD_EXTRACTORS: Dict[RuleField, Callable[[Book], Any]] = {
    RuleField.LIBRARY: _library,
    RuleField.TITLE: lambda b: b.title,
    RuleField.SUBTITLE: lambda b: b.subtitle,
    RuleField.AUTHORS: lambda b: list(b.authors),
    RuleField.CATEGORIES: lambda b: list(b.categories),
    RuleField.PUBLISHER: lambda b: b.publisher,
    RuleField.PUBLISHED_DATE: lambda b: b.published_date,
    RuleField.SERIES_NAME: lambda b: b.series_name,
    RuleField.SERIES_NUMBER: lambda b: b.series_number,
    RuleField.SERIES_TOTAL: lambda b: b.series_total,
    RuleField.PAGE_COUNT: lambda b: b.page_count,
    RuleField.LANGUAGE: lambda b: b.language,
    RuleField.AMAZON_RATING: lambda b: b.amazon_rating,
    RuleField.AMAZON_REVIEW_COUNT: lambda b: b.amazon_review_count,
    RuleField.GOODREADS_RATING: lambda b: b.goodreads_rating,
    RuleField.GOODREADS_REVIEW_COUNT: lambda b: b.goodreads_review_count,
    RuleField.HARDCOVER_RATING: lambda b: b.hardcover_rating,
    RuleField.HARDCOVER_REVIEW_COUNT: lambda b: b.hardcover_review_count,
    RuleField.PERSONAL_RATING: lambda b: b.personal_rating,
    RuleField.FILE_TYPE: lambda b: b.file_type,
    RuleField.FILE_SIZE: lambda b: b.file_size_kb,
    RuleField.READ_STATUS: lambda b: ReadStatus.coerce(b.read_status).value,
    RuleField.DATE_FINISHED: lambda b: b.date_finished,
    RuleField.METADATA_SCORE: _metadata_score,
}


class RuleEvaluator:
    """
    Interprets rule trees against books.

    Args:
        empty_group_matches: Result for a group with no children. Defaults to
            False so a tree built outside the shelf editor cannot silently
            match the whole collection.
    """

    def __init__(self, empty_group_matches: bool = False):
        self.empty_group_matches = empty_group_matches

    def evaluate(self, book: Book, node: Node) -> bool:
        """Evaluate a rule or group against one book."""
        if isinstance(node, Group):
            return self._evaluate_group(book, node)
        if isinstance(node, Rule):
            return self._evaluate_rule(book, node)
        raise TypeError(f"Unknown rule node type: {type(node).__name__}")

    def select(self, books: Iterable[Book], group: Group) -> List[Book]:
        """Return the books matching a tree, keeping their relative order."""
        return [book for book in books if self.evaluate(book, group)]

    # =========================================================================
    # Groups
    # =========================================================================

    def _evaluate_group(self, book: Book, group: Group) -> bool:
        if not group.rules:
            return self.empty_group_matches

        results = (self.evaluate(book, child) for child in group.rules)
        if group.join == JOIN_AND:
            return all(results)
        if group.join == JOIN_OR:
            return any(results)

        logger.debug(f"Unknown group join '{group.join}', group never matches")
        return False

    # =========================================================================
    # Rules
    # =========================================================================

    def _evaluate_rule(self, book: Book, rule: Rule) -> bool:
        spec = resolve_field(rule.field)
        if spec is None:
            logger.debug(f"Unknown rule field '{rule.field}', rule never matches")
            return False

        operator = resolve_operator(rule.operator)
        if operator is None:
            logger.debug(f"Unknown rule operator '{rule.operator}', rule never matches")
            return False

        if not spec.allows(operator):
            logger.debug(
                f"Operator '{operator.value}' not allowed for field '{spec.field.value}', rule never matches"
            )
            return False

        try:
            raw = FIELD_EXTRACTORS[spec.field](book)

            if operator in EMPTY_CHECK_OPERATORS:
                empty = _is_empty(raw)
                return empty if operator == RuleOperator.IS_EMPTY else not empty

            if operator in MULTI_VALUE_OPERATORS:
                return _compare_sets(operator, raw, rule.value)

            if spec.is_ordered:
                return _compare_ordered(spec, operator, raw, rule)

            return _compare_text(operator, raw, rule.value)
        except (TypeError, ValueError) as e:
            logger.debug(f"Rule {rule} failed on book {book.id}: {e}")
            return False


_default_evaluator = RuleEvaluator()


def evaluate(book: Book, node: Node) -> bool:
    """Evaluate with the default (empty groups never match) evaluator."""
    return _default_evaluator.evaluate(book, node)


# =============================================================================
# Operator implementations
# =============================================================================


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, frozenset)):
        return len(value) == 0
    return False


def _as_sequence(value: Any) -> Sequence[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return [v for v in value if v is not None]
    return [value]


def _norm(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip().casefold()


def _compare_sets(operator: RuleOperator, raw: Any, wanted_raw: Any) -> bool:
    have = {_norm(v) for v in _as_sequence(raw)}
    wanted = {_norm(v) for v in _as_sequence(wanted_raw)}

    if operator == RuleOperator.INCLUDES_ANY:
        return bool(have & wanted)
    if operator == RuleOperator.EXCLUDES_ALL:
        return not (have & wanted)
    if operator == RuleOperator.INCLUDES_ALL:
        return bool(wanted) and wanted <= have
    return False


def _compare_text(operator: RuleOperator, raw: Any, target_raw: Any) -> bool:
    if _is_empty(target_raw):
        return False
    target = _norm(target_raw)
    values = [_norm(v) for v in _as_sequence(raw)]

    if operator == RuleOperator.EQUALS:
        return target in values
    if operator == RuleOperator.NOT_EQUALS:
        return target not in values
    if operator == RuleOperator.CONTAINS:
        return any(target in v for v in values)
    if operator == RuleOperator.DOES_NOT_CONTAIN:
        return not any(target in v for v in values)
    if operator == RuleOperator.STARTS_WITH:
        return any(v.startswith(target) for v in values)
    if operator == RuleOperator.ENDS_WITH:
        return any(v.endswith(target) for v in values)
    return False


def _coerce(kind: Optional[FieldKind], value: Any) -> Any:
    """Parse a stored or book value for an ordered field; None if unparseable."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if kind == FieldKind.DATE:
        return parse_date(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _equal(kind: Optional[FieldKind], left: Any, right: Any) -> bool:
    if kind == FieldKind.DECIMAL:
        return math.isclose(left, right, abs_tol=DECIMAL_TOLERANCE)
    return left == right


def _compare_ordered(spec: FieldSpec, operator: RuleOperator, raw: Any, rule: Rule) -> bool:
    kind = spec.kind
    actual = _coerce(kind, raw)

    if operator == RuleOperator.IN_BETWEEN:
        low = _coerce(kind, rule.value_start)
        high = _coerce(kind, rule.value_end)
        if low is None or high is None or low > high or actual is None:
            return False
        return low <= actual <= high

    target = _coerce(kind, rule.value)
    if target is None:
        return False

    if operator == RuleOperator.EQUALS:
        return actual is not None and _equal(kind, actual, target)
    if operator == RuleOperator.NOT_EQUALS:
        return actual is None or not _equal(kind, actual, target)

    if actual is None:
        return False
    if operator == RuleOperator.GREATER_THAN:
        return actual > target
    if operator == RuleOperator.GREATER_THAN_EQUAL_TO:
        return actual >= target
    if operator == RuleOperator.LESS_THAN:
        return actual < target
    if operator == RuleOperator.LESS_THAN_EQUAL_TO:
        return actual <= target
    return False
