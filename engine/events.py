"""
CoinTrail — engine/events.py
Event plumbing: typed game events, the pub-sub bus, and the render sink contract.
=================================================================================
Version:     0.2
Stack:       Python 3.14.3 | Pydantic v2 | bespoke pub-sub
Status:      Production-ready.

Architecture notes
------------------
- The core never calls the renderer directly. It emits GameEvents on an
  injected EventBus; a RenderSink subscribes and translates them into
  on_cache_* / on_player_moved calls.
- Data flows one way. Sinks receive immutable snapshots (coin id lists,
  plain numbers) and never hold a reference back into the core.
- Every window recomputation emits its disappear events before its
  appear events, after the store has reached its post-move state.

Event emission sequence per move
--------------------------------
  1. cache.disappeared   — per cell leaving the window
  2. cache.appeared      — per cell entering the window (spawned or revealed)
  3. player.moved        — once, with the new location
"""

from __future__ import annotations

import sys
from typing import Callable, Dict, List, Any, Sequence, TYPE_CHECKING

from pydantic import BaseModel

if TYPE_CHECKING:
    from engine.components import Coin, GridCell, LatLng

# ============================================================
# CANONICAL EVENT KEYS
# Never use raw strings. Add new keys here only.
# ============================================================

EVT_CACHE_APPEARED        = "cache.appeared"
EVT_CACHE_UPDATED         = "cache.updated"
EVT_CACHE_DISAPPEARED     = "cache.disappeared"
EVT_PLAYER_MOVED          = "player.moved"
EVT_BALANCE_CHANGED       = "player.balance_changed"
EVT_SESSION_SAVED         = "session.saved"
EVT_SESSION_SAVE_FAILED   = "session.save_failed"
EVT_SESSION_LOADED        = "session.loaded"
EVT_SESSION_RESET         = "session.reset"


# ============================================================
# EVENT MODEL  (Pydantic v2)
# data dict must remain flat + JSON-serializable.
# ============================================================

class GameEvent(BaseModel):
    """Base envelope for everything published on the bus."""
    event_key: str
    source: str
    data: Dict[str, Any] = {}


def cache_event(event_key: str, cell: "GridCell", coins: Sequence["Coin"] = ()) -> GameEvent:
    return GameEvent(
        event_key=event_key,
        source="WindowManager",
        data={"i": cell.i, "j": cell.j, "coins": [c.id for c in coins]},
    )


# ============================================================
# EVENT BUS
# ============================================================

HandlerFn = Callable[[GameEvent], None]


class EventBus:
    """
    Bespoke pub-sub. Pass an instance at construction; there is no global bus.

    Wildcard key "*" receives every emitted event.
    A failing handler is reported on stderr; the remaining handlers still run.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[HandlerFn]] = {}

    def subscribe(self, event_key: str, handler: HandlerFn) -> None:
        self._subscribers.setdefault(event_key, []).append(handler)

    def unsubscribe(self, event_key: str, handler: HandlerFn) -> None:
        if event_key in self._subscribers:
            self._subscribers[event_key] = [
                h for h in self._subscribers[event_key] if h != handler
            ]

    def emit(self, event: GameEvent) -> None:
        targets = (
            self._subscribers.get(event.event_key, [])
            + self._subscribers.get("*", [])
        )
        for handler in targets:
            try:
                handler(event)
            except Exception as exc:  # noqa: BLE001
                print(
                    f"[EventBus] Handler error on '{event.event_key}': {exc}",
                    file=sys.stderr,
                )


# ============================================================
# RENDER SINK
# ============================================================

class RenderSink:
    """
    Receiving end of the core's notifications. Subclass and override the
    on_* hooks; the defaults do nothing.

    Coin snapshots arrive as tuples of coin ids.
    """

    def attach(self, bus: EventBus) -> None:
        bus.subscribe(EVT_CACHE_APPEARED, self._dispatch)
        bus.subscribe(EVT_CACHE_UPDATED, self._dispatch)
        bus.subscribe(EVT_CACHE_DISAPPEARED, self._dispatch)
        bus.subscribe(EVT_PLAYER_MOVED, self._dispatch)
        bus.subscribe(EVT_BALANCE_CHANGED, self._dispatch)

    def detach(self, bus: EventBus) -> None:
        for key in (EVT_CACHE_APPEARED, EVT_CACHE_UPDATED, EVT_CACHE_DISAPPEARED,
                    EVT_PLAYER_MOVED, EVT_BALANCE_CHANGED):
            bus.unsubscribe(key, self._dispatch)

    def _dispatch(self, event: GameEvent) -> None:
        from engine.components import GridCell, LatLng

        data = event.data
        key = event.event_key
        if key == EVT_PLAYER_MOVED:
            self.on_player_moved(LatLng(data["lat"], data["lng"]))
            return
        if key == EVT_BALANCE_CHANGED:
            self.on_balance_changed(data["balance"])
            return

        cell = GridCell(data["i"], data["j"])
        if key == EVT_CACHE_APPEARED:
            self.on_cache_appear(cell, tuple(data["coins"]))
        elif key == EVT_CACHE_UPDATED:
            self.on_cache_update(cell, tuple(data["coins"]))
        elif key == EVT_CACHE_DISAPPEARED:
            self.on_cache_disappear(cell)

    def on_cache_appear(self, cell: "GridCell", coins: tuple) -> None:
        pass

    def on_cache_update(self, cell: "GridCell", coins: tuple) -> None:
        pass

    def on_cache_disappear(self, cell: "GridCell") -> None:
        pass

    def on_player_moved(self, location: "LatLng") -> None:
        pass

    def on_balance_changed(self, balance: int) -> None:
        pass
