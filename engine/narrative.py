"""
CoinTrail — engine/narrative.py
NarrativeGenerator: Translates game state and events into human-readable text.
"""

from typing import Dict, Any, Sequence
from engine.components import Cache, Player
from engine.events import (
    GameEvent,
    EVT_CACHE_APPEARED,
    EVT_CACHE_UPDATED,
    EVT_CACHE_DISAPPEARED,
    EVT_BALANCE_CHANGED,
    EVT_SESSION_SAVED,
    EVT_SESSION_SAVE_FAILED,
    EVT_SESSION_LOADED,
    EVT_SESSION_RESET,
)

class NarrativeGenerator:
    @staticmethod
    def status_text(player: Player) -> str:
        if player.coin_balance == 1:
            return "You have 1 coin."
        return f"You have {player.coin_balance} coins."

    @staticmethod
    def cache_text(cache: Cache) -> str:
        return f'Cache at "{cache.cell.i},{cache.cell.j}" with {cache.coin_count} coins.'

    @staticmethod
    def coin_list(coin_ids: Sequence[str], limit: int = 5) -> str:
        """Short inventory line: the first few ids plus a remainder count."""
        if not coin_ids:
            return "(empty)"
        shown = ", ".join(coin_ids[:limit])
        extra = len(coin_ids) - limit
        if extra > 0:
            return f"{shown} (+{extra} more)"
        return shown

    @staticmethod
    def event_to_text(event: GameEvent) -> str:
        """Translates a single GameEvent into a log line."""
        data: Dict[str, Any] = event.data
        key = event.event_key
        where = f"{data.get('i')},{data.get('j')}"

        if key == EVT_CACHE_APPEARED:
            return f"A cache with {len(data.get('coins', []))} coins is nearby at {where}."
        if key == EVT_CACHE_UPDATED:
            return f"The cache at {where} now holds {len(data.get('coins', []))} coins."
        if key == EVT_CACHE_DISAPPEARED:
            return f"The cache at {where} is out of range."
        if key == EVT_BALANCE_CHANGED:
            delta = data.get("delta", 0)
            if delta > 0:
                return f"Collected {delta} coins."
            if delta < 0:
                return f"Deposited {-delta} coins."
            return "Your purse is unchanged."
        if key == EVT_SESSION_SAVED:
            return "--- Session Saved ---"
        if key == EVT_SESSION_SAVE_FAILED:
            return f"Save failed: {data.get('error')}"
        if key == EVT_SESSION_LOADED:
            return "--- Session Restored ---"
        if key == EVT_SESSION_RESET:
            return "--- World Reset ---"

        # Fallback
        return f"{event.source}: {key}"
