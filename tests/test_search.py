import pytest
import asyncio
from typing import List

import httpx

from clinic_rx.core.config import Settings
from clinic_rx.core.exceptions import NotFoundError
from clinic_rx.domain.prescribing.models import MedicineCatalogEntry
from clinic_rx.domain.prescribing.search import MedicineSearch, cache_key


class FakeCatalog:
    def __init__(self, entries: List[MedicineCatalogEntry]):
        self.entries = entries
        self.queries = []
        self.fail_with = None

    async def search(self, query: str, limit: int = 10) -> List[MedicineCatalogEntry]:
        self.queries.append(query)
        if self.fail_with is not None:
            raise self.fail_with
        lowered = query.lower()
        return [e for e in self.entries if lowered in e.name.lower()]


class DictCache:
    def __init__(self):
        self.store = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ttl=None):
        self.store[key] = value
        return True


@pytest.fixture
def catalog():
    return FakeCatalog([
        MedicineCatalogEntry(id="1", name="Amoxicillin", route="oral"),
        MedicineCatalogEntry(id="2", name="Amoxicillin-Clavulanate", route="oral"),
        MedicineCatalogEntry(id="3", name="Amlodipine", route="oral"),
        MedicineCatalogEntry(id="4", name="Aspirin", route="oral"),
    ])


@pytest.mark.unit
class TestMedicineSearch:

    @pytest.mark.asyncio
    async def test_short_query_makes_no_request(self, catalog, test_settings):
        search = MedicineSearch(catalog, settings=test_settings)
        assert await search.search("a") == []
        assert catalog.queries == []

    @pytest.mark.asyncio
    async def test_results_are_limited(self, catalog):
        search = MedicineSearch(catalog, settings=Settings(_env_file=None, MEDICINE_SEARCH_LIMIT=1))
        results = await search.search("amox")
        assert [r.name for r in results] == ["Amoxicillin"]

    @pytest.mark.asyncio
    async def test_cache_hit_skips_catalog(self, catalog, test_settings):
        cache = DictCache()
        search = MedicineSearch(catalog, cache=cache, settings=test_settings)

        first = await search.search("Amlo")
        second = await search.search("amlo ")

        assert catalog.queries == ["Amlo"]
        assert first == second
        assert cache_key("AMLO", test_settings.MEDICINE_SEARCH_LIMIT) in cache.store


@pytest.mark.unit
class TestQueryUpdates:

    @pytest.mark.asyncio
    async def test_latest_query_wins(self, catalog):
        search = MedicineSearch(catalog, settings=Settings(_env_file=None, MEDICINE_SEARCH_DEBOUNCE_MS=30))

        search.update_query("am")
        search.update_query("amo")
        search.update_query("asp")
        await search.wait()

        assert catalog.queries == ["asp"]
        assert [r.name for r in search.results] == ["Aspirin"]

    @pytest.mark.asyncio
    async def test_clearing_query_clears_results(self, catalog, test_settings):
        search = MedicineSearch(catalog, settings=test_settings)
        search.update_query("amox")
        await search.wait()
        assert len(search.results) == 2

        assert search.update_query("a") is None
        assert search.results == []

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_results(self, catalog, test_settings, network_error):
        search = MedicineSearch(catalog, settings=test_settings)
        search.update_query("asp")
        await search.wait()

        catalog.fail_with = network_error
        search.update_query("aspi")
        await search.wait()

        assert [r.name for r in search.results] == ["Aspirin"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        NotFoundError("catalog: /medicines not found"),
        httpx.ConnectError("Connection refused"),
    ])
    async def test_unexpected_catalog_errors_keep_previous_results(self, catalog, test_settings, error):
        search = MedicineSearch(catalog, settings=test_settings)
        search.update_query("asp")
        await search.wait()

        catalog.fail_with = error
        search.update_query("aspi")
        await search.wait()

        assert [r.name for r in search.results] == ["Aspirin"]

    @pytest.mark.asyncio
    async def test_close_cancels_pending_search(self, catalog):
        search = MedicineSearch(catalog, settings=Settings(_env_file=None, MEDICINE_SEARCH_DEBOUNCE_MS=1000))
        task = search.update_query("amox")
        await search.close()
        await asyncio.sleep(0)
        assert task.cancelled()
        assert catalog.queries == []
