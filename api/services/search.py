"""Document search over the document store."""
import threading
import time
from collections import Counter, OrderedDict
from typing import Callable, Dict, List, Optional, Tuple
from shared.config import config
from shared.counters import CounterStore, InMemoryCounterStore
from shared.models import Category, SearchFilters, SearchQuery, SearchResult
from api.services.document_store import DocumentCriteria, DocumentStore
import logging

logger = logging.getLogger(__name__)

GENERATION_KEY_PREFIX = "search_generation:"


def normalize_query(text: Optional[str]) -> str:
    """Trim and lower-case free text."""
    return (text or "").strip().lower()


class SearchEngine:
    """Turns free text and filters into paginated, sorted store queries.

    Cached results are keyed by the owner's corpus generation, which lives in the
    counter store so every instance sharing it sees an upload or delete at once.
    """

    def __init__(
        self,
        store: DocumentStore,
        cache_ttl_seconds: float = config.SEARCH_CACHE_TTL_SECONDS,
        counters: Optional[CounterStore] = None,
        max_cache_entries: int = config.SEARCH_CACHE_MAX_ENTRIES,
        timer: Callable[[], float] = time.monotonic
    ):
        self.store = store
        self.cache_ttl_seconds = cache_ttl_seconds
        self.counters = counters or InMemoryCounterStore()
        self.max_cache_entries = max_cache_entries
        self.timer = timer
        self._cache: "OrderedDict[Tuple, Tuple[float, SearchResult]]" = OrderedDict()
        self._lock = threading.Lock()

    def search(
        self,
        free_text: str,
        actor_id: str,
        filters: Optional[SearchFilters] = None,
        limit: int = 20,
        offset: int = 0
    ) -> SearchResult:
        """Search an owner's documents, newest first.

        Args:
            free_text: Text matched against name, content, keywords and category
            actor_id: Owner whose corpus is searched
            filters: Optional structured filters
            limit: Page size
            offset: Page start

        Returns:
            SearchResult with the page, the total match count and elapsed time
        """
        query = SearchQuery(
            free_text=free_text or "",
            filters=filters or SearchFilters(),
            limit=limit,
            offset=offset
        )
        return self.advanced_search(query, actor_id)

    def advanced_search(self, query: SearchQuery, actor_id: str) -> SearchResult:
        """Search with an explicit sort field and direction."""
        start = time.perf_counter()
        criteria = DocumentCriteria(
            owner_id=actor_id,
            text=normalize_query(query.free_text),
            filters=query.filters,
            sort_by=query.sort_by,
            sort_order=query.sort_order,
            limit=query.limit,
            offset=query.offset
        )
        caching = self.cache_ttl_seconds > 0
        generation = self.generation(actor_id) if caching else 0
        cache_key = self._cache_key(criteria, generation)

        cached = self._cache_get(cache_key) if caching else None
        if cached is not None:
            documents, total = cached.documents, cached.total_count
        else:
            documents, total = self.store.query(criteria)

        elapsed_ms = (time.perf_counter() - start) * 1000
        result = SearchResult(documents=documents, total_count=total, elapsed_ms=elapsed_ms)
        # a corpus change during the query makes this result stale
        if cached is None and caching and self.generation(actor_id) == generation:
            self._cache_put(cache_key, result)
        logger.info(
            f"Search owner={actor_id} text={criteria.text!r} returned {len(documents)}/{total} in {elapsed_ms:.1f}ms"
        )
        return result

    def generation(self, owner_id: str) -> int:
        """Current corpus generation for an owner."""
        record = self.counters.get(f"{GENERATION_KEY_PREFIX}{owner_id}")
        return record.get("generation", 0) if record else 0

    @staticmethod
    def _cache_key(criteria: DocumentCriteria, generation: int) -> Tuple:
        return (
            criteria.owner_id,
            generation,
            criteria.text,
            criteria.filters.model_dump_json(),
            criteria.sort_by.value,
            criteria.sort_order.value,
            criteria.limit,
            criteria.offset,
        )

    def _cache_get(self, key: Tuple) -> Optional[SearchResult]:
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            expires_at, result = entry
            if self.timer() > expires_at:
                del self._cache[key]
                return None
            self._cache.move_to_end(key)
            return result

    def _cache_put(self, key: Tuple, result: SearchResult):
        now = self.timer()
        with self._lock:
            for expired in [k for k, (expires_at, _) in self._cache.items() if now > expires_at]:
                del self._cache[expired]
            self._cache[key] = (now + self.cache_ttl_seconds, result)
            self._cache.move_to_end(key)
            while len(self._cache) > self.max_cache_entries:
                self._cache.popitem(last=False)

    def invalidate(self, owner_id: str):
        """Bump the owner's corpus generation and drop their cached results."""
        self.counters.increment(f"{GENERATION_KEY_PREFIX}{owner_id}", "generation")
        with self._lock:
            for key in [k for k in self._cache if k[0] == owner_id]:
                del self._cache[key]

    def suggest(self, partial: str, actor_id: str, limit: int = 5) -> List[str]:
        """Document names and keywords containing a partial query."""
        needle = normalize_query(partial)
        if len(needle) < 2:
            return []

        suggestions: List[str] = []
        for document in self.store.list_for_owner(actor_id):
            if needle in document.name.lower():
                suggestions.append(document.name)
            suggestions.extend(k for k in document.keywords if needle in k.lower())
        return list(dict.fromkeys(suggestions))[:limit]

    def popular_terms(self, actor_id: str, limit: int = 10) -> List[str]:
        """Most common keywords across an owner's documents."""
        counts = Counter(k for d in self.store.list_for_owner(actor_id) for k in d.keywords)
        return [keyword for keyword, _ in counts.most_common(limit)]

    def category_stats(self, actor_id: str) -> Dict[str, int]:
        """Document count per category, including empty categories."""
        stats = {category.value: 0 for category in Category}
        for document in self.store.list_for_owner(actor_id):
            stats[document.category.value] += 1
        return stats
