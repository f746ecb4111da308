"""
Query pipeline.

Runs the browser query in a fixed order:

    Scope -> Sort -> Text Search -> Facet Filter -> Series Collapse

Facet counts are derived from the scope subset so the sidebar keeps showing
every value the scope offers while filters are active.

Usage:
    repo = BookRepository.open(Path("library.json"))
    session = BrowserSession(repo)
    result = session.update(search_term="dune")
    for book in result.books:
        print(book.title)
"""

from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import unquote
import logging
import threading

from .facets import JOIN_AND, SORT_BY_COUNT, FacetCount, active_selections, apply_facets, derive_facets
from .models import Book
from .repository import MAGIC_SHELF_DELETED, MAGIC_SHELF_SAVED, BookRepository, RepositoryEvent
from .scope import Scope, ScopeSelector
from .search import DEFAULT_SEARCH_FIELDS, filter_books
from .series import collapse_series
from .sorting import DEFAULT_SORT, SortOption, ViewPreferences, apply_sort, resolve_sort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryState:
    """Every input the pipeline reads. Replace it to change the view."""
    scope: Scope = field(default_factory=Scope)
    sort: SortOption = DEFAULT_SORT
    search_term: str = ''
    selections: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    join_mode: str = JOIN_AND
    series_collapsed: bool = True
    facet_sort_mode: str = SORT_BY_COUNT
    search_fields: Tuple[str, ...] = DEFAULT_SEARCH_FIELDS

    @property
    def force_expand_series(self) -> bool:
        """A series filter shows every volume of the selected series."""
        return 'series' in active_selections(self.selections)


@dataclass(frozen=True)
class QueryResult:
    books: Tuple[Book, ...]
    facets: Dict[str, List[FacetCount]]
    sort: SortOption
    scope_label: str
    warnings: Tuple[str, ...] = ()
    broken: bool = False
    total_in_scope: int = 0


def run_query(books: Iterable[Book], state: QueryState, selector: ScopeSelector) -> QueryResult:
    """
    Run the whole pipeline once.

    Args:
        books: Collection snapshot
        state: Query inputs
        selector: Scope selector bound to the repository the books came from

    Returns:
        QueryResult with the visible books and the scope's facet counts
    """
    scoped = selector.select(books, state.scope)

    visible = apply_sort(scoped.books, state.sort)
    visible = filter_books(visible, state.search_term, state.search_fields)
    visible = apply_facets(visible, state.selections, state.join_mode)
    visible = collapse_series(visible, force_expand=state.force_expand_series, collapsed=state.series_collapsed)

    return QueryResult(
        books=tuple(visible),
        facets=derive_facets(scoped.books, state.facet_sort_mode),
        sort=state.sort,
        scope_label=scoped.label,
        warnings=scoped.warnings,
        broken=scoped.broken,
        total_in_scope=len(scoped.books),
    )


# =============================================================================
# Session
# =============================================================================


ResultListener = Callable[[QueryResult], None]


class BrowserSession:
    """
    One browsing view over a repository.

    Holds the current ``QueryState`` and recomputes whenever it changes or
    the repository reports a change. When recomputations race, only the
    result of the most recent request is published.
    """

    def __init__(
        self,
        repository: BookRepository,
        state: Optional[QueryState] = None,
        selector: Optional[ScopeSelector] = None,
        preferences: Optional[ViewPreferences] = None,
    ):
        self.repository = repository
        self._owns_selector = selector is None
        self.selector = selector or ScopeSelector(repository)
        self.preferences = preferences or ViewPreferences()

        if state is None:
            scope = Scope()
            state = QueryState(scope=scope, sort=self._resolve_sort(scope))
        self.state = state

        self.result: Optional[QueryResult] = None
        self._listeners: List[ResultListener] = []
        self._lock = threading.Lock()
        self._generation = 0
        self._unsubscribe = repository.subscribe(self._on_repository_event)
        self.refresh()

    def close(self) -> None:
        self._unsubscribe()
        if self._owns_selector:
            self.selector.close()

    def subscribe(self, listener: ResultListener) -> Callable[[], None]:
        """Register a result listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def update(self, **changes) -> QueryResult:
        """Change query inputs (any ``QueryState`` field) and recompute."""
        scope = changes.pop('scope', self.state.scope)
        if scope != self.state.scope:
            return self.navigate(scope, **changes)
        self.state = replace(self.state, **changes)
        return self.refresh()

    def navigate(self, scope: Scope, **changes) -> QueryResult:
        """
        Move the view to another scope.

        The search term and facet selections are cleared and the sort is
        resolved again for the new scope unless given explicitly.
        """
        changes.setdefault('sort', self._resolve_sort(scope))
        changes.setdefault('search_term', '')
        changes.setdefault('selections', {})
        logger.debug(f"Navigating to scope {scope}")
        self.state = replace(self.state, scope=scope, **changes)
        return self.refresh()

    def refresh(self) -> QueryResult:
        with self._lock:
            self._generation += 1
            generation = self._generation
        state = self.state

        result = run_query(self.repository.books, state, self.selector)

        with self._lock:
            if generation != self._generation:
                logger.debug("Dropping stale query result")
                return self.result
            self.result = result

        for listener in list(self._listeners):
            listener(result)
        return result

    def _resolve_sort(self, scope: Scope) -> SortOption:
        return resolve_sort(self.preferences, scope.kind.value, scope.entity_id)

    def _on_repository_event(self, event: RepositoryEvent) -> None:
        if event.kind in (MAGIC_SHELF_SAVED, MAGIC_SHELF_DELETED):
            self.selector.invalidate(event.entity_id)
        self.refresh()


# =============================================================================
# Filter parameter codec
# =============================================================================

_ESCAPES = (('%', '%25'), (',', '%2C'), ('|', '%7C'), (':', '%3A'))


def _escape(value: str) -> str:
    for char, code in _ESCAPES:
        value = value.replace(char, code)
    return value


def parse_filter_param(param: Optional[str]) -> Dict[str, Tuple[str, ...]]:
    """
    Decode ``author:A|B,series:X`` into facet selections.

    Values are trimmed. Malformed segments (no ``:`` or no values) and
    blank values are skipped.
    """
    selections: Dict[str, Tuple[str, ...]] = {}
    if not param:
        return selections
    for segment in param.split(','):
        name, sep, raw_values = segment.partition(':')
        name = name.strip()
        if not sep or not name:
            logger.debug(f"Skipping malformed filter segment '{segment}'")
            continue
        values = tuple(v for v in (unquote(raw).strip() for raw in raw_values.split('|')) if v)
        if values:
            selections[name] = selections.get(name, ()) + values
    return selections


def format_filter_param(selections: Optional[Mapping[str, Iterable[str]]]) -> str:
    """Encode facet selections as ``author:A|B,series:X``; empty facets are dropped."""
    segments = []
    for name, values in (selections or {}).items():
        values = [str(v) for v in values or ()]
        if values:
            segments.append(f"{name}:{'|'.join(_escape(v) for v in values)}")
    return ','.join(segments)
