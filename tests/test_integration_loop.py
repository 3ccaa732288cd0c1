"""
CoinTrail — tests/test_integration_loop.py
Full session flow through SimulationLoop: move, collect, deposit, save, load, reset.
"""

import math
import pytest

from engine.components import GridCell, LatLng
from engine.data_loader import WorldConfig
from engine.events import EVT_BALANCE_CHANGED, EVT_PLAYER_MOVED, EVT_SESSION_SAVE_FAILED
from engine.loop import SimulationLoop
from engine.spawner import survey
from world.persistence import CACHE_STATE_KEY, PLAYER_LOCATION_KEY, MemoryStorage

CONFIG = WorldConfig(seed="integration", neighborhood_size=4, cache_spawn_probability=0.5)

def make_sim(storage=None, **kwargs):
    sim = SimulationLoop(config=CONFIG, storage=storage or MemoryStorage(), **kwargs)
    events = []
    sim.bus.subscribe("*", events.append)
    return sim, events

def rich_cache(sim, minimum=2):
    return next(
        cache for cache in sorted(sim.store, key=lambda c: (c.cell.i, c.cell.j))
        if cache.visible and cache.coin_count >= minimum
    )

def test_default_scenario_window_matches_survey():
    # origin, radius 8, probability 0.1
    config = WorldConfig(seed="scenario")
    sim = SimulationLoop(config=config, storage=MemoryStorage())
    sim.open_session()

    expected = survey("scenario", GridCell(0, 0), 8, 0.1)
    assert sim.player_cell == GridCell(0, 0)
    assert set(sim.store.visible_cells()) == set(expected)
    assert {c: sim.store.get(c).coin_count for c in expected} == expected

def test_open_session_announces_player():
    sim, events = make_sim()
    sim.open_session()
    keys = [e.event_key for e in events]
    assert EVT_PLAYER_MOVED in keys
    assert keys[-1] == EVT_BALANCE_CHANGED
    assert sim.player.movement_trail == [CONFIG.origin]

def test_collect_persists_through_exit_and_reentry():
    sim, events = make_sim()
    sim.open_session()
    cache = rich_cache(sim)
    count = cache.coin_count

    assert sim.collect(cache.cell) == count
    assert sim.player.coin_balance == count
    balance_events = [e for e in events if e.event_key == EVT_BALANCE_CHANGED]
    assert balance_events[-1].data == {"balance": count, "delta": count}

    assert sim.step(60, 0)
    assert not cache.visible
    assert sim.collect(cache.cell) == 0

    assert sim.step(-60, 0)
    assert sim.player_cell == GridCell(0, 0)
    assert cache.visible
    assert sim.store.get(cache.cell).coin_count == 0
    assert sim.player.coin_balance == count

def test_deposit_moves_balance_into_cache():
    sim, _ = make_sim()
    sim.open_session()
    cache = rich_cache(sim)
    count = sim.collect(cache.cell)

    assert sim.deposit(cache.cell, 2) == 2
    assert sim.player.coin_balance == count - 2
    assert [c.id for c in cache.coins] == [f"{cache.cell.i}:{cache.cell.j}#0", f"{cache.cell.i}:{cache.cell.j}#1"]

    # Asking for more than the balance deposits what is left
    assert sim.deposit(cache.cell, 10_000) == count - 2
    assert sim.player.coin_balance == 0
    assert cache.coin_count == count

def test_deposit_with_empty_purse_is_noop():
    sim, events = make_sim()
    sim.open_session()
    cache = rich_cache(sim)
    before = cache.coins
    seen = len(events)

    assert sim.deposit(cache.cell) == 0
    assert sim.deposit(cache.cell, -3) == 0
    assert cache.coins is before
    assert len(events) == seen

def test_collect_and_deposit_outside_window_are_noops():
    sim, _ = make_sim()
    sim.open_session()
    far = GridCell(1000, 1000)
    assert sim.collect(far) == 0
    assert sim.deposit(far) == 0
    assert far not in sim.store

@pytest.mark.parametrize("bad", [
    LatLng(math.nan, 0.0),
    LatLng(0.0, math.inf),
    LatLng(91.0, 0.0),
    LatLng(0.0, -181.0),
])
def test_invalid_moves_are_rejected(bad):
    sim, events = make_sim()
    sim.open_session()
    trail = list(sim.player.movement_trail)
    visible = set(sim.store.visible_cells())
    seen = len(events)

    assert sim.move_to(bad) is False
    assert sim.player.movement_trail == trail
    assert sim.player.location == CONFIG.origin
    assert set(sim.store.visible_cells()) == visible
    assert len(events) == seen

def test_same_cell_move_extends_trail_only():
    sim, events = make_sim()
    sim.open_session()
    visible = set(sim.store.visible_cells())

    assert sim.move_by(CONFIG.tile_degrees * 0.3, 0.0)
    assert len(sim.player.movement_trail) == 2
    assert set(sim.store.visible_cells()) == visible
    assert events[-1].event_key == EVT_PLAYER_MOVED
    assert events[-1].data["trail_length"] == 2

def test_reset_restores_fresh_world():
    storage = MemoryStorage()
    sim, _ = make_sim(storage)
    sim.open_session()
    cache = rich_cache(sim)
    count = cache.coin_count
    sim.collect(cache.cell)
    sim.step(3, 3)
    sim.save()

    sim.reset()
    assert sim.player.coin_balance == 0
    assert sim.player.location == CONFIG.origin
    assert sim.player.movement_trail == [CONFIG.origin]
    assert not sim.persistence.has_saved_session()
    assert sim.store.get(cache.cell) is not cache
    assert sim.store.get(cache.cell).coin_count == count

def test_autosave_writes_after_each_change():
    storage = MemoryStorage()
    sim, _ = make_sim(storage, autosave=True)
    sim.open_session()
    assert storage.get(PLAYER_LOCATION_KEY) is None

    sim.step(1, 0)
    assert storage.get(PLAYER_LOCATION_KEY) is not None
    cache = rich_cache(sim)
    sim.collect(cache.cell)
    assert str(sim.player.coin_balance) == storage.get("player-coins")

def test_save_and_load_in_a_new_session():
    storage = MemoryStorage()
    first, _ = make_sim(storage)
    first.open_session()
    cache = rich_cache(first)
    count = first.collect(cache.cell)
    first.step(0, 2)
    first.save()

    second, _ = make_sim(storage)
    assert second.resume_session() is True
    assert second.player.coin_balance == count
    assert second.player.location == first.player.location
    assert second.player.movement_trail == first.player.movement_trail
    assert second.player_cell == GridCell(0, 2)
    assert second.store.get(cache.cell).coin_count == 0
    assert set(second.store.visible_cells()) == set(first.store.visible_cells())

def test_load_without_cache_state_rederives_world():
    storage = MemoryStorage()
    first, _ = make_sim(storage, persist_caches=False)
    first.open_session()
    cache = rich_cache(first)
    count = first.collect(cache.cell)
    first.save()
    assert storage.get(CACHE_STATE_KEY) is None

    second, _ = make_sim(storage)
    assert second.load()
    assert second.player.coin_balance == count
    assert second.store.get(cache.cell).coin_count == count

def test_resume_without_save_opens_fresh_session():
    sim, _ = make_sim()
    assert sim.load() is False
    assert sim.resume_session() is False
    assert sim.store.visible_cells()

def test_coin_home():
    sim, _ = make_sim()
    home = sim.coin_home("3:-2#7")
    assert home == sim.coder.cell_center(GridCell(3, -2))
    assert sim.coder.to_cell(home) == GridCell(3, -2)
    assert sim.coin_home("garbage") is None

def test_nearby_caches_sorted_by_distance():
    sim, _ = make_sim()
    sim.open_session()
    found = sim.nearby_caches(reach=4)
    assert {c.cell for c in found} == set(sim.store.visible_cells())
    distances = [abs(c.cell.i) + abs(c.cell.j) for c in found]
    assert distances == sorted(distances)

def test_nearby_caches_reads_only_the_reach():
    sim, _ = make_sim()
    sim.open_session()
    sim.store.load_state(
        [(GridCell(5_000 + n, 5_000), ()) for n in range(10_000)] +
        [(c, sim.store.get(c).coins) for c in sim.store.visible_cells()]
    )
    sim.window.recompute(sim.player_cell)
    reads = []

    class Recording(dict):
        def get(self, key, default=None):
            reads.append(key)
            return super().get(key, default)

        def values(self):
            raise AssertionError("nearby_caches walked the whole store")

    sim.store._caches = Recording(sim.store._caches)
    sim.nearby_caches(reach=1)
    assert len(reads) == 5

class FailingStorage(MemoryStorage):
    """Accepts reads, refuses every write."""
    def update(self, values, removed=()):
        raise OSError("disk full")

def test_autosave_failure_is_reported_not_raised():
    sim, events = make_sim(FailingStorage(), autosave=True)
    sim.open_session()

    assert sim.step(1, 0) is True
    assert sim.player_cell == GridCell(1, 0)
    failures = [e for e in events if e.event_key == EVT_SESSION_SAVE_FAILED]
    assert len(failures) == 1
    assert failures[0].data == {"error": "disk full"}

    cache = rich_cache(sim)
    count = sim.collect(cache.cell)
    assert count > 0
    assert sim.player.coin_balance == count
    assert len([e for e in events if e.event_key == EVT_SESSION_SAVE_FAILED]) == 2

def test_explicit_save_still_raises():
    sim, _ = make_sim(FailingStorage())
    sim.open_session()
    with pytest.raises(OSError):
        sim.save()

def test_failed_reset_leaves_session_intact():
    sim, _ = make_sim(FailingStorage())
    sim.open_session()
    cache = rich_cache(sim)
    count = sim.collect(cache.cell)
    sim.step(2, 0)
    visible = set(sim.store.visible_cells())

    with pytest.raises(OSError):
        sim.reset()

    assert sim.player.coin_balance == count
    assert sim.player_cell == GridCell(2, 0)
    assert sim.store.get(cache.cell) is cache
    assert set(sim.store.visible_cells()) == visible
    assert sim.window.center == GridCell(2, 0)
