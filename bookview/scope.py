"""
Scope selection: the first narrowing step of every query.

A scope is the collection a view is rooted at: everything, the unshelved
books, one library, one shelf, or a magic shelf whose rule tree decides
membership.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple
import logging
import threading

from .models import Book
from .repository import MAGIC_SHELF_DELETED, MAGIC_SHELF_SAVED, BookRepository, RepositoryEvent
from .rules.evaluator import RuleEvaluator
from .rules.tree import Group, MalformedRuleError, find_issues, loads

logger = logging.getLogger(__name__)


class ScopeKind(str, Enum):
    ALL_BOOKS = 'ALL_BOOKS'
    UNSHELVED = 'UNSHELVED'
    LIBRARY = 'LIBRARY'
    SHELF = 'SHELF'
    MAGIC_SHELF = 'MAGIC_SHELF'

    @property
    def label(self) -> str:
        return SCOPE_LABELS[self]

    @property
    def needs_id(self) -> bool:
        return self in (ScopeKind.LIBRARY, ScopeKind.SHELF, ScopeKind.MAGIC_SHELF)


SCOPE_LABELS = {
    ScopeKind.ALL_BOOKS: 'All Books',
    ScopeKind.UNSHELVED: 'Unshelved Books',
    ScopeKind.LIBRARY: 'Library',
    ScopeKind.SHELF: 'Shelf',
    ScopeKind.MAGIC_SHELF: 'Magic Shelf',
}

_PREFIXES = {
    'all': ScopeKind.ALL_BOOKS,
    'unshelved': ScopeKind.UNSHELVED,
    'library': ScopeKind.LIBRARY,
    'shelf': ScopeKind.SHELF,
    'magic': ScopeKind.MAGIC_SHELF,
}


@dataclass(frozen=True)
class Scope:
    kind: ScopeKind = ScopeKind.ALL_BOOKS
    entity_id: Optional[int] = None

    def __post_init__(self):
        if self.kind.needs_id and self.entity_id is None:
            raise ValueError(f"Scope {self.kind.value} requires an entity id")

    @classmethod
    def parse(cls, text: Optional[str]) -> 'Scope':
        """
        Parse a scope string.

        Accepted forms: ``all``, ``unshelved``, ``library:ID``, ``shelf:ID``
        and ``magic:ID``. An empty string means all books.

        Raises:
            ValueError: On an unknown prefix or a missing/non-integer id
        """
        if not text or not text.strip():
            return cls()
        prefix, _, raw_id = text.strip().partition(':')
        kind = _PREFIXES.get(prefix.lower())
        if kind is None:
            raise ValueError(f"Unknown scope '{text}'. Use one of: all, unshelved, library:ID, shelf:ID, magic:ID")
        if not kind.needs_id:
            return cls(kind)
        try:
            return cls(kind, int(raw_id))
        except ValueError:
            raise ValueError(f"Scope '{text}' needs an integer id") from None

    def __str__(self) -> str:
        for prefix, kind in _PREFIXES.items():
            if kind == self.kind:
                return prefix if self.entity_id is None else f"{prefix}:{self.entity_id}"
        return self.kind.value


@dataclass(frozen=True)
class ScopeResult:
    books: Tuple[Book, ...]
    label: str
    warnings: Tuple[str, ...] = ()
    broken: bool = False


@dataclass
class _CachedTree:
    group: Optional[Group]
    error: Optional[str] = None
    issues: List[str] = field(default_factory=list)


class ScopeSelector:
    """
    Resolves a scope to the books it contains.

    Parsed magic shelf trees are cached by shelf id and dropped when the
    repository reports that the shelf was saved or deleted.
    """

    def __init__(self, repository: BookRepository, evaluator: Optional[RuleEvaluator] = None):
        self.repository = repository
        self.evaluator = evaluator or RuleEvaluator()
        self._cache: Dict[int, _CachedTree] = {}
        # Invalidation counters; a load started before a bump is not cached
        self._versions: Dict[int, int] = {}
        self._epoch = 0
        self._lock = threading.Lock()
        self._unsubscribe = repository.subscribe(self._on_repository_event)

    def close(self) -> None:
        """Stop listening to the repository."""
        self._unsubscribe()

    def _on_repository_event(self, event: RepositoryEvent) -> None:
        if event.kind in (MAGIC_SHELF_SAVED, MAGIC_SHELF_DELETED):
            self.invalidate(event.entity_id)

    def invalidate(self, shelf_id: Optional[int] = None) -> None:
        """Drop one cached tree, or all of them when ``shelf_id`` is None."""
        with self._lock:
            if shelf_id is None:
                self._cache.clear()
                self._epoch += 1
            else:
                self._cache.pop(shelf_id, None)
                self._versions[shelf_id] = self._versions.get(shelf_id, 0) + 1

    def label_for(self, scope: Scope) -> str:
        """Display label: the entity name, or the kind label when unnamed."""
        entity = None
        if scope.kind == ScopeKind.LIBRARY:
            entity = self.repository.get_library(scope.entity_id)
        elif scope.kind == ScopeKind.SHELF:
            entity = self.repository.get_shelf(scope.entity_id)
        elif scope.kind == ScopeKind.MAGIC_SHELF:
            entity = self.repository.get_magic_shelf(scope.entity_id)
        if entity is not None and entity.name:
            return entity.name
        return scope.kind.label

    def select(self, books: Iterable[Book], scope: Scope) -> ScopeResult:
        """Keep the books belonging to ``scope``, in their original order."""
        books = tuple(books)
        label = self.label_for(scope)

        if scope.kind == ScopeKind.ALL_BOOKS:
            return ScopeResult(books, label)

        if scope.kind == ScopeKind.UNSHELVED:
            return ScopeResult(tuple(b for b in books if not b.is_shelved), label)

        if scope.kind == ScopeKind.LIBRARY:
            return ScopeResult(tuple(b for b in books if b.library_id == scope.entity_id), label)

        if scope.kind == ScopeKind.SHELF:
            return ScopeResult(tuple(b for b in books if scope.entity_id in b.shelf_ids), label)

        return self._select_magic(books, scope.entity_id, label)

    def _select_magic(self, books: Tuple[Book, ...], shelf_id: int, label: str) -> ScopeResult:
        cached = self._tree_for(shelf_id)
        if cached is None:
            return ScopeResult((), label, (f"Magic shelf {shelf_id} not found",))

        if cached.group is None:
            return ScopeResult((), label, (f"Magic shelf '{label}' has a broken rule tree: {cached.error}",), broken=True)

        warnings = tuple(f"Magic shelf '{label}': {issue}" for issue in cached.issues)
        return ScopeResult(tuple(self.evaluator.select(books, cached.group)), label, warnings)

    def _tree_for(self, shelf_id: int) -> Optional[_CachedTree]:
        with self._lock:
            cached = self._cache.get(shelf_id)
            version = (self._epoch, self._versions.get(shelf_id, 0))
        if cached is not None:
            return cached

        shelf = self.repository.get_magic_shelf(shelf_id)
        if shelf is None:
            logger.warning(f"Magic shelf {shelf_id} not found")
            return None

        try:
            group = loads(shelf.filter_json)
        except MalformedRuleError as e:
            logger.warning(f"Magic shelf '{shelf.name}' ({shelf_id}) has a broken rule tree: {e}")
            cached = _CachedTree(group=None, error=str(e))
        else:
            issues = find_issues(group)
            for issue in issues:
                logger.warning(f"Magic shelf '{shelf.name}' ({shelf_id}): {issue}")
            cached = _CachedTree(group=group, issues=issues)

        with self._lock:
            if version == (self._epoch, self._versions.get(shelf_id, 0)):
                self._cache[shelf_id] = cached
            else:
                logger.debug(f"Magic shelf {shelf_id} changed while loading, not caching")
        return cached
