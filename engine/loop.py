"""
CoinTrail — engine/loop.py
Main Simulation Loop: wires the session state, window, persistence and event bus.
=================================================================================
Version:     0.3
Stack:       Python 3.14.3 | Pydantic v2 | bespoke EventBus
Status:      Integration entry point.

Every public operation runs to completion synchronously and emits its
events only after the state it describes is in place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, List, Dict

from engine.coin_factory import ValuePolicy, fixed_value, parse_coin_id
from engine.components import Cache, GridCell, LatLng, Player
from engine.data_loader import WorldConfig, get_world_config
from engine.events import (
    EventBus,
    GameEvent,
    cache_event,
    EVT_CACHE_UPDATED,
    EVT_PLAYER_MOVED,
    EVT_BALANCE_CHANGED,
    EVT_SESSION_SAVED,
    EVT_SESSION_SAVE_FAILED,
    EVT_SESSION_LOADED,
    EVT_SESSION_RESET,
)
from world.cache_store import CacheStore
from world.grid import GridCoder, is_valid_location, manhattan, neighborhood
from world.persistence import MemoryStorage, SessionPersistence
from world.window import WindowDelta, WindowManager

logger = logging.getLogger(__name__)

@dataclass
class GameSession:
    """The mutable state of one play session."""
    player: Player
    store: CacheStore

class SimulationLoop:
    """
    Core executor for a CoinTrail session.
    Owns the GameSession and hands it to the WindowManager and
    SessionPersistence; nothing reaches it through globals.
    """
    def __init__(
        self,
        config: Optional[WorldConfig] = None,
        storage: Optional[MemoryStorage] = None,
        bus: Optional[EventBus] = None,
        value_policy: Optional[ValuePolicy] = None,
        autosave: bool = False,
        persist_caches: bool = True,
    ):
        self.config = config if config is not None else get_world_config()
        self.bus = bus if bus is not None else EventBus()
        self.coder = GridCoder(self.config.origin, self.config.tile_degrees)
        self.autosave = autosave

        if value_policy is None:
            value_policy = fixed_value(self.config.coin_value)

        origin = self.config.origin
        self.session = GameSession(
            player=Player(location=origin, movement_trail=[origin]),
            store=CacheStore(value_policy),
        )
        self.window = WindowManager(
            store=self.session.store,
            coder=self.coder,
            bus=self.bus,
            seed=self.config.world_seed,
            radius=self.config.neighborhood_size,
            spawn_probability=self.config.cache_spawn_probability,
        )
        self.persistence = SessionPersistence(storage, persist_caches=persist_caches)

    @property
    def player(self) -> Player:
        return self.session.player

    @property
    def store(self) -> CacheStore:
        return self.session.store

    @property
    def player_cell(self) -> GridCell:
        return self.coder.to_cell(self.player.location)

    # ----------------------------------------------------------
    # Session lifecycle
    # ----------------------------------------------------------

    def open_session(self) -> WindowDelta:
        """Builds the initial window around the player's current location."""
        delta = self.window.on_player_move(self.player.location)
        self._emit_player_moved()
        self._emit_balance(0)
        return delta

    def resume_session(self) -> bool:
        """Loads the saved session if there is one, otherwise opens a fresh one."""
        if self.load():
            return True
        self.open_session()
        return False

    def save(self) -> Dict[str, str]:
        record = self.persistence.save(self.player, self.store.get_state())
        logger.info("Session saved (%d coins, %d trail points)",
                    self.player.coin_balance, len(self.player.movement_trail))
        self.bus.emit(GameEvent(event_key=EVT_SESSION_SAVED, source="SimulationLoop",
                                data={"keys": sorted(record)}))
        return record

    def _autosave(self) -> None:
        """Saves after a change when autosave is on. A write failure is reported, not raised."""
        if not self.autosave:
            return
        try:
            self.save()
        except OSError as exc:
            logger.warning("Autosave failed: %s", exc)
            self.bus.emit(GameEvent(event_key=EVT_SESSION_SAVE_FAILED, source="SimulationLoop",
                                    data={"error": str(exc)}))

    def load(self) -> bool:
        """
        Restores the saved player (and caches, when saved) and rebuilds the
        window around the restored location. Returns False if nothing is saved.
        """
        if not self.persistence.has_saved_session():
            return False

        restored = self.persistence.load(self.config.origin)
        self.window.hide_all()
        if restored.caches is not None:
            self.store.load_state(restored.caches)
        else:
            self.store.reset()

        self.player.coin_balance = restored.coin_balance
        self.player.location = restored.location
        self.player.movement_trail = list(restored.movement_trail)

        self.window.on_player_move(self.player.location)
        logger.info("Session restored at %s (fallbacks: %s)",
                    self.player_cell, ", ".join(restored.fallbacks) or "none")
        self._emit_player_moved()
        self._emit_balance(0)
        self.bus.emit(GameEvent(event_key=EVT_SESSION_LOADED, source="SimulationLoop",
                                data={"fallbacks": list(restored.fallbacks)}))
        return True

    def reset(self) -> WindowDelta:
        """Destroys every cache, empties the purse and returns the player to the origin."""
        origin = self.config.origin
        # Storage goes first: a failing backend leaves the session untouched
        self.persistence.clear()
        self.window.hide_all()
        self.store.reset()

        self.player.location = origin
        self.player.coin_balance = 0
        self.player.movement_trail = [origin]

        delta = self.window.on_player_move(origin)
        logger.info("World reset")
        self._emit_player_moved()
        self._emit_balance(0)
        self.bus.emit(GameEvent(event_key=EVT_SESSION_RESET, source="SimulationLoop"))
        return delta

    # ----------------------------------------------------------
    # Movement
    # ----------------------------------------------------------

    def move_by(self, d_lat: float, d_lng: float) -> bool:
        loc = self.player.location
        return self.move_to(LatLng(loc.lat + d_lat, loc.lng + d_lng))

    def step(self, di: int, dj: int) -> bool:
        """Moves by whole tiles."""
        tile = self.config.tile_degrees
        return self.move_by(di * tile, dj * tile)

    def move_to(self, location: LatLng) -> bool:
        """
        Moves the player and recomputes the window.
        Invalid coordinates are ignored and leave every piece of state untouched.
        """
        if not is_valid_location(location):
            logger.warning("Rejected move to invalid coordinate %r", location)
            return False

        self.player.location = location
        self.player.movement_trail.append(location)
        self.window.on_player_move(location)
        self._emit_player_moved()

        self._autosave()
        return True

    # ----------------------------------------------------------
    # Coins
    # ----------------------------------------------------------

    def nearby_caches(self, reach: int = 0) -> List[Cache]:
        """Visible caches within reach cells of the player, nearest first."""
        here = self.player_cell
        found = []
        for cell in neighborhood(here, reach):
            cache = self.store.get(cell)
            if cache is not None and cache.visible:
                found.append(cache)
        found.sort(key=lambda c: (manhattan(c.cell, here), c.cell.i, c.cell.j))
        return found

    def collect(self, cell: GridCell) -> int:
        """Moves every coin of a visible cache into the player's balance."""
        cache = self.store.get(cell)
        if cache is None or not cache.visible:
            return 0

        taken = self.store.collect(cell)
        if taken == 0:
            return 0

        self.player.coin_balance += taken
        self.bus.emit(cache_event(EVT_CACHE_UPDATED, cell, cache.coins))
        self._emit_balance(taken)
        self._autosave()
        return taken

    def deposit(self, cell: GridCell, amount: Optional[int] = None) -> int:
        """
        Converts balance into freshly minted coins at a visible cache.
        Deposits the whole balance unless amount is given.
        """
        cache = self.store.get(cell)
        if cache is None or not cache.visible:
            return 0

        if amount is None:
            amount = self.player.coin_balance
        amount = min(amount, self.player.coin_balance)
        if amount <= 0:
            return 0

        minted = self.store.deposit(cell, amount)
        self.player.coin_balance -= len(minted)
        self.bus.emit(cache_event(EVT_CACHE_UPDATED, cell, cache.coins))
        self._emit_balance(-len(minted))
        self._autosave()
        return len(minted)

    def coin_home(self, cid: str) -> Optional[LatLng]:
        """Centre of the cell a coin was minted in, or None for a bad id."""
        parsed = parse_coin_id(cid)
        if parsed is None:
            return None
        cell, _serial = parsed
        return self.coder.cell_center(cell)

    # ----------------------------------------------------------
    # Events
    # ----------------------------------------------------------

    def _emit_player_moved(self) -> None:
        cell = self.player_cell
        loc = self.player.location
        self.bus.emit(GameEvent(
            event_key=EVT_PLAYER_MOVED,
            source="SimulationLoop",
            data={
                "lat": loc.lat,
                "lng": loc.lng,
                "i": cell.i,
                "j": cell.j,
                "trail_length": len(self.player.movement_trail),
            },
        ))

    def _emit_balance(self, delta: int) -> None:
        self.bus.emit(GameEvent(
            event_key=EVT_BALANCE_CHANGED,
            source="SimulationLoop",
            data={"balance": self.player.coin_balance, "delta": delta},
        ))
