"""
CoinTrail — world/window.py
WindowManager: keeps exactly the caches within NEIGHBORHOOD_SIZE of the player visible.
=======================================================================================
Version:     0.3
Stack:       Python 3.14.3 | bespoke EventBus
Status:      Production-ready.

Per-cell lifecycle
------------------
  Unknown  -> Spawned   spawner says yes; Cache created visible
  Unknown  -> Unknown   spawner says no; no record, re-evaluated on next entry
  Spawned  -> Hidden    cell leaves the window; record kept, coins intact
  Hidden   -> Spawned   cell re-enters; the same Cache object is revealed
  any      -> Reset     explicit game reset only (CacheStore.reset)

A cell that holds a Cache is never handed back to the spawner, even when
its coins have all been collected.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Set, Tuple
import logging

from engine.components import Cache, GridCell, LatLng
from engine.coin_factory import mint_coins
from engine.events import (
    EventBus,
    cache_event,
    EVT_CACHE_APPEARED,
    EVT_CACHE_DISAPPEARED,
)
from engine.spawner import decide
from world.cache_store import CacheStore
from world.grid import GridCoder, manhattan, neighborhood

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class WindowDelta:
    center: GridCell
    appeared: Tuple[GridCell, ...] = ()
    disappeared: Tuple[GridCell, ...] = ()
    spawned: Tuple[GridCell, ...] = ()

class WindowManager:
    def __init__(
        self,
        store: CacheStore,
        coder: GridCoder,
        bus: EventBus,
        seed: str,
        radius: int,
        spawn_probability: float,
    ):
        self.store = store
        self.coder = coder
        self.bus = bus
        self.seed = seed
        self.radius = radius
        self.spawn_probability = spawn_probability
        self.center: Optional[GridCell] = None

    def on_player_move(self, location: LatLng) -> WindowDelta:
        return self.recompute(self.coder.to_cell(location))

    def recompute(self, center: GridCell) -> WindowDelta:
        """
        Brings the store in line with the window around center, then
        notifies the bus. Scans the visible set plus the O(radius^2)
        neighborhood, never the whole store.
        """
        self.center = center

        # 1. Retire caches that fell outside the radius
        disappeared = []
        for cell in self.store.visible_cells():
            if manhattan(cell, center) > self.radius:
                self.store.set_visible(cell, False)
                disappeared.append(cell)

        # 2. Reveal or spawn caches that entered it
        appeared = []
        spawned = []
        for cell in neighborhood(center, self.radius):
            cache = self.store.get(cell)
            if cache is not None:
                if not cache.visible:
                    self.store.set_visible(cell, True)
                    appeared.append(cell)
                continue

            decision = decide(cell, self.seed, self.spawn_probability)
            if not decision.spawns:
                continue
            coins = mint_coins(cell, decision.coin_count, self.store.value_policy)
            self.store.upsert(Cache(cell=cell, coins=coins, visible=True))
            appeared.append(cell)
            spawned.append(cell)

        # 3. Notify once the store is consistent
        for cell in disappeared:
            self.bus.emit(cache_event(EVT_CACHE_DISAPPEARED, cell))
        for cell in appeared:
            self.bus.emit(cache_event(EVT_CACHE_APPEARED, cell, self.store.get(cell).coins))

        logger.debug(
            "Window at %s: %d appeared (%d spawned), %d disappeared",
            center, len(appeared), len(spawned), len(disappeared),
        )
        return WindowDelta(
            center=center,
            appeared=tuple(appeared),
            disappeared=tuple(disappeared),
            spawned=tuple(spawned),
        )

    def hide_all(self) -> Tuple[GridCell, ...]:
        """Hides every visible cache and forgets the center. Used before reset/load."""
        hidden = []
        for cell in self.store.visible_cells():
            self.store.set_visible(cell, False)
            hidden.append(cell)
        self.center = None
        for cell in hidden:
            self.bus.emit(cache_event(EVT_CACHE_DISAPPEARED, cell))
        return tuple(hidden)

    def visible_cells(self) -> Set[GridCell]:
        return set(self.store.visible_cells())
