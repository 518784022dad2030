# tests/test_search_service.py
import asyncio
import random
from datetime import timedelta

import pytest

from geosearch.db.memory_store import InMemoryEntityStore
from geosearch.errors import (
    BackingStoreError,
    GeocodeError,
    InvalidCursorError,
    SearchTimeoutError,
    ValidationError,
)
from geosearch.geo.distance import haversine_miles
from geosearch.models import SearchFilter
from test_utils import make_entity_at, print_test_name, print_test_result, utc

CENTER = (37.3382, -121.8863)


def _filter(**overrides):
    values = dict(
        center_lat=CENTER[0],
        center_lng=CENTER[1],
        radius_miles=10.0,
        window_start=utc(2025, 1, 1),
        window_end=utc(2025, 1, 8),
        page_size=20,
    )
    values.update(overrides)
    return SearchFilter(**values)


async def _collect(service, search_filter):
    """Parcourt toutes les pages ; renvoie (ids, curseurs, pages)."""
    ids, cursors, pages = [], [], []
    cursor = None
    while True:
        page = await service.search(search_filter, cursor=cursor)
        pages.append(page)
        ids.extend(record.entity.id for record in page.items)
        cursor = page.next_cursor
        if cursor is None:
            return ids, cursors, pages
        cursors.append(cursor)


class SlowStore(InMemoryEntityStore):
    """Stockage en mémoire dont chaque scan prend `delay` secondes."""

    def __init__(self, delay, entities=None):
        super().__init__(entities)
        self.delay = delay
        self.cancelled = 0

    async def scan(self, bound, limit, window=None):
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        return await super().scan(bound, limit, window)


class FailingStore(InMemoryEntityStore):
    async def scan(self, bound, limit, window=None):
        raise BackingStoreError("connection reset", bound=bound)


@pytest.mark.asyncio
class TestSearchScenarios:
    """Scénarios de bout en bout sur le stockage en mémoire."""

    async def test_radius_and_window(self, make_service):
        test_name = "test_radius_and_window"
        print_test_name(test_name)
        try:
            store = InMemoryEntityStore([
                make_entity_at("A", CENTER, 2, 30, utc(2025, 1, 3)),
                make_entity_at("B", CENTER, 15, 30, utc(2025, 1, 3)),
                make_entity_at("C", CENTER, 2, 30, utc(2025, 2, 1)),
            ])
            page = await make_service(store).search(_filter())

            assert [record.entity.id for record in page.items] == ["A"]
            assert page.items[0].distance_miles == pytest.approx(2.0, rel=1e-6)
            assert page.next_cursor is None
            assert page.is_truncated is False
            assert page.stats.results_count == 1
            assert page.stats.precision == 4
            print_test_result(test_name, passed=True)
        except Exception as e:
            print_test_result(test_name, passed=False)
            raise e

    async def test_pagination_45_by_20(self, make_service):
        test_name = "test_pagination_45_by_20"
        print_test_name(test_name)
        try:
            entities = [
                # Horaires en double pour exercer le départage par id
                make_entity_at(f"ent-{i:02d}", CENTER, 0.5 + (i % 9), i * 8, utc(2025, 1, 2) + timedelta(hours=i // 2))
                for i in range(45)
            ]
            service = make_service(InMemoryEntityStore(entities))
            ids, cursors, pages = await _collect(service, _filter())

            assert [len(page.items) for page in pages] == [20, 20, 5]
            assert len(cursors) == 2
            expected = [e.id for e in sorted(entities, key=lambda e: (e.start_time, e.id))]
            assert ids == expected
            assert not any(page.is_truncated for page in pages)
            print_test_result(test_name, passed=True)
        except Exception as e:
            print_test_result(test_name, passed=False)
            raise e

    async def test_completeness_against_brute_force(self, make_service):
        test_name = "test_completeness_against_brute_force"
        print_test_name(test_name)
        try:
            rng = random.Random(20250101)
            entities = [
                make_entity_at(
                    f"r{i:03d}",
                    CENTER,
                    rng.uniform(0, 30),
                    rng.uniform(0, 360),
                    utc(2025, 1, 1) + timedelta(minutes=rng.randint(0, 31 * 24 * 60)),
                )
                for i in range(200)
            ]
            search_filter = _filter(
                radius_miles=12.0,
                window_start=utc(2025, 1, 5),
                window_end=utc(2025, 1, 20),
                page_size=25,
            )
            expected = sorted(
                (e for e in entities
                 if haversine_miles(CENTER, (e.latitude, e.longitude)) <= 12.0
                 and utc(2025, 1, 5) <= e.start_time < utc(2025, 1, 20)),
                key=lambda e: (e.start_time, e.id),
            )
            assert expected

            ids, _, pages = await _collect(make_service(InMemoryEntityStore(entities)), search_filter)
            assert ids == [e.id for e in expected]
            assert len(ids) == len(set(ids))
            assert not any(page.is_truncated for page in pages)
            print_test_result(test_name, passed=True)
        except Exception as e:
            print_test_result(test_name, passed=False)
            raise e

    async def test_repeated_calls_are_identical(self, make_service):
        entities = [
            make_entity_at(f"e{i}", CENTER, 1 + i % 5, i * 17, utc(2025, 1, 2) + timedelta(hours=i % 4))
            for i in range(30)
        ]
        service = make_service(InMemoryEntityStore(entities))
        first = await _collect(service, _filter(page_size=7))
        second = await _collect(service, _filter(page_size=7))
        assert first[0] == second[0]
        assert first[1] == second[1]

    async def test_custom_attribute_filter(self, make_service):
        store = InMemoryEntityStore([
            make_entity_at("open", CENTER, 1, 0, utc(2025, 1, 2), {"status": "open"}),
            make_entity_at("closed", CENTER, 1, 90, utc(2025, 1, 2), {"status": "closed"}),
        ])
        page = await make_service(store).search(_filter(attributes={"status": "open"}))
        assert [record.entity.id for record in page.items] == ["open"]


@pytest.mark.asyncio
class TestBoundaries:
    """Bord du cercle et de la fenêtre."""

    async def test_radius_boundary_is_inclusive(self, make_service):
        entity = make_entity_at("edge", CENTER, 5.0, 123, utc(2025, 1, 2))
        distance = haversine_miles(CENTER, (entity.latitude, entity.longitude))
        service = make_service(InMemoryEntityStore([entity]))

        page = await service.search(_filter(radius_miles=distance))
        assert [record.entity.id for record in page.items] == ["edge"]

        page = await service.search(_filter(radius_miles=distance - 1e-6))
        assert page.items == []

    async def test_window_end_is_exclusive(self, make_service):
        store = InMemoryEntityStore([
            make_entity_at("first", CENTER, 1, 0, utc(2025, 1, 1)),
            make_entity_at("last", CENTER, 1, 0, utc(2025, 1, 8)),
        ])
        page = await make_service(store).search(_filter())
        assert [record.entity.id for record in page.items] == ["first"]

    async def test_max_window_accepted(self, make_service, memory_store):
        page = await make_service(memory_store).search(
            _filter(window_start=utc(2025, 1, 1), window_end=utc(2025, 1, 31))
        )
        assert page.items == []


@pytest.mark.asyncio
class TestTruncation:
    """Plafonds et indicateur de troncature."""

    async def test_total_cap_truncates(self, make_service):
        test_name = "test_total_cap_truncates"
        print_test_name(test_name)
        try:
            entities = [
                make_entity_at(f"t{i:02d}", CENTER, 1 + (i % 5), i * 14, utc(2025, 1, 2) + timedelta(hours=i))
                for i in range(25)
            ]
            service = make_service(InMemoryEntityStore(entities), max_candidates_total=10)
            ids, _, pages = await _collect(service, _filter(page_size=100))

            assert pages[0].is_truncated is True
            assert len(ids) < 25
            assert pages[0].stats.candidates_merged <= 10
            print_test_result(test_name, passed=True)
        except Exception as e:
            print_test_result(test_name, passed=False)
            raise e

    async def test_raw_volume_truncates_even_without_matches(self, make_service):
        """Le plafond s'applique avant le filtre exact : des non-résultats suffisent."""
        entities = [
            make_entity_at(f"n{i:02d}", CENTER, 0.2, i * 10, utc(2025, 1, 2), {"status": "closed"})
            for i in range(20)
        ]
        entities.append(make_entity_at("match", CENTER, 0.2, 5, utc(2025, 1, 2), {"status": "open"}))
        service = make_service(InMemoryEntityStore(entities), per_bound_limit=5)

        page = await service.search(_filter(attributes={"status": "open"}))
        assert page.is_truncated is True
        assert len(page.items) <= 1

    async def test_not_truncated_below_caps(self, make_service):
        store = InMemoryEntityStore([make_entity_at("only", CENTER, 1, 0, utc(2025, 1, 2))])
        page = await make_service(store).search(_filter())
        assert page.is_truncated is False


@pytest.mark.asyncio
class TestErrors:
    """Validation avant lecture et propagation des échecs."""

    @pytest.mark.parametrize("overrides", [
        {"radius_miles": 0.0},
        {"radius_miles": -3.0},
        {"radius_miles": 100.5},
        {"radius_miles": float("inf")},
        {"window_end": utc(2025, 1, 1)},
        {"window_start": utc(2025, 1, 9)},
        {"window_end": utc(2025, 1, 31) + timedelta(seconds=1)},
        {"page_size": 0},
        {"page_size": 101},
    ])
    async def test_validation_errors_perform_no_scans(self, make_service, memory_store, overrides):
        with pytest.raises(ValidationError):
            await make_service(memory_store).search(_filter(**overrides))
        assert memory_store.scans == []

    async def test_invalid_center(self, make_service, memory_store):
        with pytest.raises(GeocodeError):
            await make_service(memory_store).search(_filter(center_lat=91.0))
        assert memory_store.scans == []

    @pytest.mark.parametrize("cursor", ["not-a-cursor", "e30", "eyJ2IjoyLCJ0IjoiMjAyNS0wMS0wMVQwMDowMDowMCswMDowMCIsImlkIjoiYSJ9"])
    async def test_invalid_cursor(self, make_service, memory_store, cursor):
        with pytest.raises(InvalidCursorError):
            await make_service(memory_store).search(_filter(), cursor=cursor)
        assert memory_store.scans == []

    async def test_store_failure_fails_whole_search(self, make_service):
        with pytest.raises(BackingStoreError):
            await make_service(FailingStore()).search(_filter())

    async def test_timeout_returns_no_partial_results(self, make_service):
        test_name = "test_timeout_returns_no_partial_results"
        print_test_name(test_name)
        try:
            store = SlowStore(delay=1.0, entities=[make_entity_at("A", CENTER, 1, 0, utc(2025, 1, 2))])
            with pytest.raises(SearchTimeoutError):
                await make_service(store).search(_filter(), timeout=0.05)
            assert store.cancelled >= 1
            print_test_result(test_name, passed=True)
        except Exception as e:
            print_test_result(test_name, passed=False)
            raise e
