"""Tests for proximity ranking of restaurant records."""

import asyncio
from typing import Dict, List, Optional, Union
from unittest.mock import AsyncMock, patch

from dinnerpick.errors import GeocodeServiceError
from dinnerpick.models import GeocodeResult, RankingPhase, RestaurantRecord, UserLocation
from dinnerpick.ranking import ProximityRanker, reconcile_favorites, sort_records

HOME = UserLocation(lat=36.3504, lng=127.3845)
ELSEWHERE = UserLocation(lat=36.3624, lng=127.3563)


class FakeResolver:
    """Resolver answering from a fixed address table and recording calls."""

    def __init__(self, answers: Dict[str, Union[GeocodeResult, Exception, None]] = None):
        self.answers = answers or {}
        self.calls: List[str] = []

    async def resolve(self, address: str) -> Optional[GeocodeResult]:
        self.calls.append(address)
        answer = self.answers.get(address)
        if isinstance(answer, Exception):
            raise answer
        return answer


def record(id: str, lat: float = None, lng: float = None, **kwargs) -> RestaurantRecord:
    return RestaurantRecord(id=id, name=f"식당{id}", address=f"주소{id}", lat=lat, lng=lng, **kwargs)


def rank(ranker, records, location=HOME, favorites=None):
    return asyncio.run(ranker.rank(records, location, favorites))


def test_ranks_by_ascending_distance_with_unresolved_last():
    """Test records are sorted nearest first and distance-less records go last."""
    resolver = FakeResolver({"주소geo": GeocodeResult(lat=36.3510, lng=127.3850)})
    records = [
        record("far", 36.4000, 127.4500),
        record("missing"),
        record("near", 36.3505, 127.3846),
        RestaurantRecord(id="geo", name="지오", address="주소geo"),
    ]
    ranker = ProximityRanker(resolver, geocode_delay=0)

    result = rank(ranker, records)

    assert [r.id for r in result.ranked] == ["near", "geo", "far", "missing"]
    distances = [r.distance_m for r in result.ranked if r.distance_m is not None]
    assert distances == sorted(distances)
    assert result.ranked[-1].distance_m is None
    assert len(result.ranked) == len(records)


def test_truncates_to_max_results():
    """Test only the nearest N records are kept."""
    records = [record(str(i), 36.3504 + i * 0.01, 127.3845) for i in range(10)]
    ranker = ProximityRanker(FakeResolver(), max_results=3, geocode_delay=0)

    result = rank(ranker, list(reversed(records)))

    assert [r.id for r in result.ranked] == ["0", "1", "2"]
    assert len(result.markers) == 3


def test_default_limit_is_fifty():
    """Test the default candidate bound."""
    records = [record(str(i), 36.0 + i * 0.001, 127.0) for i in range(80)]
    ranker = ProximityRanker(FakeResolver(), geocode_delay=0)

    result = rank(ranker, records)

    assert len(result.ranked) == 50


def test_geocode_failures_are_kept_without_distance():
    """Test not-found and service errors skip the record instead of failing the pass."""
    resolver = FakeResolver({
        "주소ok": GeocodeResult(lat=36.3510, lng=127.3850),
        "주소down": GeocodeServiceError("503"),
    })
    records = [record("ok"), record("down"), record("unknown")]
    ranker = ProximityRanker(resolver, geocode_delay=0)

    result = rank(ranker, records)

    assert [r.id for r in result.ranked] == ["ok", "down", "unknown"]
    assert result.ranked[0].distance_m is not None
    assert result.ranked[1].distance_m is None
    assert result.ranked[2].distance_m is None
    assert [m.id for m in result.markers] == ["ok"]


def test_total_geocode_failure_degrades_to_unsorted_list():
    """Test a pass with no coordinates at all keeps input order and has no markers."""
    records = [record("c"), record("a"), record("b")]
    ranker = ProximityRanker(FakeResolver(), geocode_delay=0)

    result = rank(ranker, records)

    assert [r.id for r in result.ranked] == ["c", "a", "b"]
    assert all(r.distance_m is None for r in result.ranked)
    assert result.markers == []


def test_empty_input_yields_empty_output():
    """Test ranking nothing returns nothing."""
    ranker = ProximityRanker(FakeResolver(), geocode_delay=0)

    result = rank(ranker, [])

    assert result.ranked == []
    assert result.markers == []


def test_known_coordinates_skip_resolver():
    """Test records with coordinates are never geocoded."""
    resolver = FakeResolver()
    ranker = ProximityRanker(resolver, geocode_delay=0)

    rank(ranker, [record("1", 36.35, 127.38), record("2", 36.36, 127.39)])

    assert resolver.calls == []


def test_invalid_coordinates_are_geocoded():
    """Test out-of-range coordinates are treated as unknown."""
    resolver = FakeResolver({"주소bad": GeocodeResult(lat=36.3510, lng=127.3850)})
    ranker = ProximityRanker(resolver, geocode_delay=0)

    result = rank(ranker, [record("bad", 123.0, 127.38)])

    assert resolver.calls == ["주소bad"]
    assert result.ranked[0].lat == 36.3510
    assert result.ranked[0].distance_m is not None


def test_resolver_calls_are_sequential_with_delay():
    """Test a delay follows every resolver call except the last record's."""
    events: List[str] = []

    class RecordingResolver(FakeResolver):
        async def resolve(self, address):
            events.append(f"resolve:{address}")
            return GeocodeResult(lat=36.35, lng=127.38)

    async def fake_sleep(seconds):
        events.append(f"sleep:{seconds}")

    records = [record("1"), record("2", 36.36, 127.39), record("3"), record("4")]
    ranker = ProximityRanker(RecordingResolver(), geocode_delay=0.3)

    with patch("dinnerpick.ranking.asyncio.sleep", new=AsyncMock(side_effect=fake_sleep)):
        rank(ranker, records)

    assert events == [
        "resolve:주소1", "sleep:0.3",
        "resolve:주소3", "sleep:0.3",
        "resolve:주소4",
    ]


def test_favorites_are_reapplied():
    """Test favorite flags from the favorites map survive the pass."""
    records = [
        record("1", 36.36, 127.39),
        record("2", 36.35, 127.38, is_favorite=True),
        record("3", 36.37, 127.40),
    ]
    ranker = ProximityRanker(FakeResolver(), geocode_delay=0)

    result = rank(ranker, records, favorites={"1": True, "3": False})

    flags = {r.id: r.is_favorite for r in result.ranked}
    assert flags == {"1": True, "2": True, "3": False}


def test_rerank_of_ranked_output_is_noop():
    """Test ranking already-ranked output at the same location changes nothing."""
    resolver = FakeResolver({"주소2": GeocodeResult(lat=36.3600, lng=127.3900)})
    records = [record("1", 36.3700, 127.4000), record("2"), record("3")]
    ranker = ProximityRanker(resolver, geocode_delay=0)

    first = rank(ranker, records)
    calls_after_first = list(resolver.calls)
    second = rank(ranker, first.ranked)

    assert resolver.calls == calls_after_first
    assert second.ranked == first.ranked
    assert second.markers == first.markers
    assert ranker.result == first


def test_new_location_reranks_known_coordinates():
    """Test a genuinely new location re-sorts without geocoding again."""
    resolver = FakeResolver()
    near_home = record("home", 36.3505, 127.3846)
    near_elsewhere = record("elsewhere", 36.3625, 127.3564)
    ranker = ProximityRanker(resolver, geocode_delay=0)

    first = rank(ranker, [near_elsewhere, near_home], location=HOME)
    second = rank(ranker, first.ranked, location=ELSEWHERE)

    assert [r.id for r in first.ranked] == ["home", "elsewhere"]
    assert [r.id for r in second.ranked] == ["elsewhere", "home"]
    assert resolver.calls == []
    assert ranker.last_location == ELSEWHERE


def test_pass_uses_snapshot_of_inputs():
    """Test changes to the caller's records during a pass do not leak into it."""
    records = [record("1"), record("2", 36.36, 127.39)]

    class MutatingResolver(FakeResolver):
        async def resolve(self, address):
            records[1].name = "renamed"
            records.append(record("late", 36.35, 127.38))
            return GeocodeResult(lat=36.3510, lng=127.3850)

    ranker = ProximityRanker(MutatingResolver(), geocode_delay=0)

    result = rank(ranker, records)

    assert [r.id for r in result.ranked] == ["1", "2"]
    assert result.ranked[1].name == "식당2"


def test_superseded_pass_is_not_applied():
    """Test a slow pass finishing after a newer one does not overwrite it."""

    class GatedResolver(FakeResolver):
        def __init__(self, gate):
            super().__init__()
            self.gate = gate

        async def resolve(self, address):
            await self.gate.wait()
            return GeocodeResult(lat=36.3510, lng=127.3850)

    async def scenario():
        gate = asyncio.Event()
        ranker = ProximityRanker(GatedResolver(gate), geocode_delay=0)

        slow = asyncio.create_task(ranker.rank([record("slow")], HOME))
        await asyncio.sleep(0)
        assert ranker.phase == RankingPhase.FETCHING

        fresh = await ranker.rank([record("fresh", 36.36, 127.39)], ELSEWHERE)
        gate.set()
        stale = await slow
        return ranker, stale, fresh

    ranker, stale, fresh = asyncio.run(scenario())

    assert stale.superseded
    assert not fresh.superseded
    assert [r.id for r in ranker.result.ranked] == ["fresh"]
    assert ranker.last_location == ELSEWHERE
    assert ranker.phase == RankingPhase.RANKED


def test_empty_pass_supersedes_pass_in_flight():
    """Test an empty batch ranked later wins over a slower earlier pass."""

    class GatedResolver(FakeResolver):
        def __init__(self, gate):
            super().__init__()
            self.gate = gate

        async def resolve(self, address):
            await self.gate.wait()
            return GeocodeResult(lat=36.3510, lng=127.3850)

    async def scenario():
        gate = asyncio.Event()
        ranker = ProximityRanker(GatedResolver(gate), geocode_delay=0)

        slow = asyncio.create_task(ranker.rank([record("old")], HOME))
        await asyncio.sleep(0)
        cleared = await ranker.rank([], ELSEWHERE)
        gate.set()
        stale = await slow
        return ranker, stale, cleared

    ranker, stale, cleared = asyncio.run(scenario())

    assert stale.superseded
    assert cleared.ranked == []
    assert ranker.result.ranked == []
    assert ranker.last_location == ELSEWHERE


def test_fresh_ranker_ranks_batch_with_stray_distance():
    """Test a distance carried in from elsewhere does not skip the pass."""
    resolver = FakeResolver({
        "주소a": GeocodeResult(lat=36.3506, lng=127.3846),
        "주소b": GeocodeResult(lat=36.3600, lng=127.3900),
        "주소c": GeocodeResult(lat=36.3700, lng=127.4000),
        "주소d": GeocodeResult(lat=36.4000, lng=127.4500),
    })
    stray = record("stray", 36.4500, 127.5000, distance_m=1.0)
    records = [stray, record("d"), record("c"), record("b"), record("a")]
    ranker = ProximityRanker(resolver, max_results=3, geocode_delay=0)

    result = rank(ranker, records)

    assert resolver.calls == ["주소d", "주소c", "주소b", "주소a"]
    assert [r.id for r in result.ranked] == ["a", "b", "c"]
    distances = [r.distance_m for r in result.ranked]
    assert distances == sorted(distances)


def test_foreign_batch_at_same_location_is_ranked():
    """Test only the ranker's own output is treated as already ranked."""
    ranker = ProximityRanker(FakeResolver(), max_results=2, geocode_delay=0)
    rank(ranker, [record("1", 36.3510, 127.3850)])

    other = [
        record("far", 36.4500, 127.5000, distance_m=3.0),
        record("near", 36.3505, 127.3846),
        record("mid", 36.3600, 127.3900),
    ]
    result = rank(ranker, other)

    assert [r.id for r in result.ranked] == ["near", "mid"]
    assert ranker.result == result


def test_known_addresses_are_not_geocoded_again():
    """Test a later pass reuses coordinates resolved by an earlier one."""
    resolver = FakeResolver({
        "주소1": GeocodeResult(lat=36.3510, lng=127.3850),
        "주소2": GeocodeResult(lat=36.3620, lng=127.3560),
    })
    ranker = ProximityRanker(resolver, max_results=1, geocode_delay=0)

    first = rank(ranker, [record("1"), record("2")], location=HOME)
    second = rank(ranker, [record("1"), record("2")], location=ELSEWHERE)

    assert [r.id for r in first.ranked] == ["1"]
    assert [r.id for r in second.ranked] == ["2"]
    assert resolver.calls == ["주소1", "주소2"]


def test_phase_moves_from_idle_to_ranked():
    """Test the ranker's lifecycle."""
    ranker = ProximityRanker(FakeResolver(), geocode_delay=0)
    assert ranker.phase == RankingPhase.IDLE

    rank(ranker, [record("1", 36.35, 127.38)])

    assert ranker.phase == RankingPhase.RANKED


def test_markers_follow_ranked_order():
    """Test markers carry the ranked records' coordinates and distances."""
    records = [record("b", 36.37, 127.40), record("a", 36.3505, 127.3846)]
    ranker = ProximityRanker(FakeResolver(), geocode_delay=0)

    result = rank(ranker, records)

    assert [m.id for m in result.markers] == ["a", "b"]
    marker = result.markers[0]
    assert (marker.lat, marker.lng) == (36.3505, 127.3846)
    assert marker.distance == result.ranked[0].distance_m
    assert marker.name == "식당a"


def test_reconcile_favorites_is_pure():
    """Test reconciliation returns copies and leaves inputs alone."""
    records = [record("1"), record("2", is_favorite=True)]

    reconciled = reconcile_favorites(records, {"1": True})

    assert [r.is_favorite for r in reconciled] == [True, True]
    assert [r.is_favorite for r in records] == [False, True]


def test_sort_records_by_name():
    """Test the alternative name ordering."""
    records = [
        RestaurantRecord(id="1", name="다온"),
        RestaurantRecord(id="2", name="가람"),
        RestaurantRecord(id="3", name="나루"),
    ]

    assert [r.name for r in sort_records(records, by="name")] == ["가람", "나루", "다온"]
