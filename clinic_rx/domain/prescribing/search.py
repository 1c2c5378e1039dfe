"""
Medicine picker search.

Debounced free-text search over the medicine catalog. Like the interaction
check, each query carries a generation number and only the newest query may
update the visible results.
"""

from typing import Any, List, Optional, Protocol, Set
import asyncio
import logging

from pydantic import ValidationError as PydanticValidationError

from clinic_rx.core.config import Settings, settings as default_settings
from clinic_rx.domain.prescribing.collaborators import MedicineCatalog
from clinic_rx.domain.prescribing.models import MedicineCatalogEntry

logger = logging.getLogger(__name__)


class SearchCache(Protocol):
    async def get(self, key: str) -> Optional[Any]:
        ...

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        ...


def cache_key(query: str, limit: int) -> str:
    return f"medicine-search:{limit}:{query.strip().lower()}"


class MedicineSearch:
    """Debounced, last-query-wins catalog search with an optional TTL cache"""

    def __init__(
        self,
        catalog: MedicineCatalog,
        cache: Optional[SearchCache] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or default_settings
        self.catalog = catalog
        self.cache = cache
        self.debounce_seconds = max(settings.MEDICINE_SEARCH_DEBOUNCE_MS, 0) / 1000
        self.min_length = settings.MEDICINE_SEARCH_MIN_LENGTH
        self.limit = settings.MEDICINE_SEARCH_LIMIT
        self.cache_ttl = settings.CATALOG_CACHE_TTL_SECONDS
        self.results: List[MedicineCatalogEntry] = []
        self.query = ""
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

    async def _cached(self, key: str) -> Optional[List[MedicineCatalogEntry]]:
        if self.cache is None:
            return None
        cached = await self.cache.get(key)
        if not cached:
            return None
        try:
            return [MedicineCatalogEntry.model_validate(item) for item in cached]
        except (PydanticValidationError, TypeError) as e:
            logger.warning(f"Ignoring malformed cached search results for {key}: {e}")
            return None

    async def search(self, query: str) -> List[MedicineCatalogEntry]:
        """One catalog round trip (or cache hit); no state is touched"""
        query = query.strip()
        if len(query) < self.min_length:
            return []
        key = cache_key(query, self.limit)
        cached = await self._cached(key)
        if cached is not None:
            logger.debug(f"Medicine search cache hit for {query!r}")
            return cached
        results = list(await self.catalog.search(query, limit=self.limit))[: self.limit]
        if self.cache is not None:
            await self.cache.set(key, [entry.to_wire() for entry in results], ttl=self.cache_ttl)
        return results

    def update_query(self, query: str) -> Optional[asyncio.Task]:
        """Called on every keystroke in the picker"""
        self._generation += 1
        generation = self._generation
        self.query = query
        if len(query.strip()) < self.min_length:
            self.results = []
            self._task = None
            return None
        task = asyncio.get_running_loop().create_task(self._run(generation, query))
        self._task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, generation: int, query: str) -> None:
        if self.debounce_seconds:
            await asyncio.sleep(self.debounce_seconds)
        if generation != self._generation:
            return
        try:
            results = await self.search(query)
        except Exception as e:
            logger.warning(f"Medicine search failed for {query!r}; keeping previous results: {e}")
            return
        if generation != self._generation:
            logger.debug(f"Discarding stale medicine search results for {query!r}")
            return
        self.results = results

    async def wait(self) -> None:
        while self._task is not None and not self._task.done():
            await asyncio.wait({self._task})

    async def close(self) -> None:
        self._generation += 1
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
