"""
CoinTrail — world/persistence.py
SessionPersistence: key-value save/restore of the player's session.
===================================================================
Version:     0.2
Stack:       Python 3.14.3 | Pydantic v2 | stdlib json
Status:      Production-ready.

Record layout (every value is a JSON string)
--------------------------------------------
  player-coins      int >= 0
  player-location   {"lat": float, "lng": float}
  movement-history  [{"lat": float, "lng": float}, ...]
  cache-state       [{"i": int, "j": int, "coins": [{"id": str, "value": int}]}]

Loading is field-by-field: a corrupt field falls back to its default and
never prevents the other fields from being restored. A record without
cache-state restores no caches, and the world is re-derived from the seed.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Annotated, Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from engine.components import Coin, GridCell, LatLng, Player

logger = logging.getLogger(__name__)

PLAYER_COINS_KEY = "player-coins"
PLAYER_LOCATION_KEY = "player-location"
MOVEMENT_HISTORY_KEY = "movement-history"
CACHE_STATE_KEY = "cache-state"

RECORD_KEYS = (PLAYER_COINS_KEY, PLAYER_LOCATION_KEY, MOVEMENT_HISTORY_KEY, CACHE_STATE_KEY)

# ================================================================================
# SCHEMAS
# ================================================================================

class LocationRecord(BaseModel):
    model_config = ConfigDict(frozen=True)
    lat: float = Field(ge=-90.0, le=90.0)
    lng: float = Field(ge=-180.0, le=180.0)

    def to_latlng(self) -> LatLng:
        return LatLng(self.lat, self.lng)

class CoinRecord(BaseModel):
    model_config = ConfigDict(frozen=True)
    id: str = Field(min_length=1)
    value: int = 1

class CacheRecord(BaseModel):
    model_config = ConfigDict(frozen=True)
    i: int
    j: int
    coins: List[CoinRecord] = Field(default_factory=list)

_BALANCE = TypeAdapter(Annotated[int, Field(ge=0)])
_LOCATION = TypeAdapter(LocationRecord)
_TRAIL = TypeAdapter(List[LocationRecord])

# ================================================================================
# STORAGE BACKENDS
# ================================================================================

class MemoryStorage:
    """In-process key-value storage."""
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)

    def update(self, values: Dict[str, str], removed: Iterable[str] = ()) -> None:
        """Sets and removes several keys as one write."""
        self.data.update(values)
        for key in removed:
            self.data.pop(key, None)

    def items(self) -> Dict[str, str]:
        return dict(self.data)

class JsonFileStorage(MemoryStorage):
    """
    Key-value storage persisted as one JSON object on disk.
    An unreadable or malformed file is treated as empty. Every write
    replaces the file atomically, so a crash leaves either the old or the
    new record.
    """
    def __init__(self, path: Path):
        self.path = path
        super().__init__(self._read())

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable save file %s: %s", self.path, exc)
            return {}
        if not isinstance(raw, dict):
            logger.warning("Ignoring save file %s: not a JSON object", self.path)
            return {}
        return {k: v for k, v in raw.items() if isinstance(k, str) and isinstance(v, str)}

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def set(self, key: str, value: str) -> None:
        self.update({key: value})

    def remove(self, key: str) -> None:
        self.update({}, (key,))

    def update(self, values: Dict[str, str], removed: Iterable[str] = ()) -> None:
        """One file write per call. Memory changes only once the file is replaced."""
        pending = dict(self.data)
        pending.update(values)
        for key in removed:
            pending.pop(key, None)
        self._write(pending)
        self.data = pending

# ================================================================================
# SAVE / RESTORE
# ================================================================================

@dataclass
class RestoredState:
    coin_balance: int
    location: LatLng
    movement_trail: List[LatLng]
    caches: Optional[List[Tuple[GridCell, Tuple[Coin, ...]]]] = None
    fallbacks: List[str] = field(default_factory=list)

def encode_record(player: Player, cache_state: Optional[List[Dict[str, Any]]] = None) -> Dict[str, str]:
    """Builds the string-encoded record for a player (and optionally the caches)."""
    record = {
        PLAYER_COINS_KEY: json.dumps(player.coin_balance),
        PLAYER_LOCATION_KEY: json.dumps(player.location.to_dict()),
        MOVEMENT_HISTORY_KEY: json.dumps([p.to_dict() for p in player.movement_trail]),
    }
    if cache_state is not None:
        record[CACHE_STATE_KEY] = json.dumps(cache_state)
    return record

def _decode_caches(raw: str) -> Optional[List[Tuple[GridCell, Tuple[Coin, ...]]]]:
    try:
        entries = json.loads(raw)
    except ValueError:
        logger.warning("Malformed %s; caches will be re-derived", CACHE_STATE_KEY)
        return None
    if not isinstance(entries, list):
        logger.warning("Malformed %s; caches will be re-derived", CACHE_STATE_KEY)
        return None

    caches = []
    seen = set()
    for entry in entries:
        try:
            rec = CacheRecord.model_validate(entry)
        except ValidationError:
            logger.warning("Skipping malformed cache entry: %r", entry)
            continue
        cell = GridCell(rec.i, rec.j)
        if cell in seen:
            logger.warning("Skipping duplicate cache entry for %s", cell)
            continue
        seen.add(cell)
        caches.append((cell, tuple(Coin(id=c.id, value=c.value) for c in rec.coins)))
    return caches

def decode_record(record: Dict[str, Optional[str]], default_location: LatLng) -> RestoredState:
    """
    Parses a record field by field. Missing or corrupt fields fall back to
    the fresh-session default and are listed in RestoredState.fallbacks.
    """
    fallbacks = []

    def parse(key: str, adapter: TypeAdapter, default: Any) -> Any:
        raw = record.get(key)
        if raw is None:
            fallbacks.append(key)
            return default
        try:
            return adapter.validate_json(raw)
        except ValidationError:
            logger.warning("Malformed %s in saved session; using default", key)
            fallbacks.append(key)
            return default

    balance = parse(PLAYER_COINS_KEY, _BALANCE, 0)
    location_rec = parse(PLAYER_LOCATION_KEY, _LOCATION, None)
    location = location_rec.to_latlng() if location_rec is not None else default_location
    trail_recs = parse(MOVEMENT_HISTORY_KEY, _TRAIL, None)
    if trail_recs == []:
        logger.warning("Empty %s in saved session; restarting the trail", MOVEMENT_HISTORY_KEY)
        fallbacks.append(MOVEMENT_HISTORY_KEY)
        trail_recs = None
    trail = [r.to_latlng() for r in trail_recs] if trail_recs is not None else [location]

    caches = None
    raw_caches = record.get(CACHE_STATE_KEY)
    if raw_caches is not None:
        caches = _decode_caches(raw_caches)

    return RestoredState(
        coin_balance=balance,
        location=location,
        movement_trail=trail,
        caches=caches,
        fallbacks=fallbacks,
    )

class SessionPersistence:
    """Writes and reads the session record through a key-value storage backend."""
    def __init__(self, storage: Optional[MemoryStorage] = None, persist_caches: bool = True):
        self.storage = storage if storage is not None else MemoryStorage()
        self.persist_caches = persist_caches

    def save(self, player: Player, cache_state: Optional[List[Dict[str, Any]]] = None) -> Dict[str, str]:
        if not self.persist_caches:
            cache_state = None
        record = encode_record(player, cache_state)
        removed = (CACHE_STATE_KEY,) if cache_state is None else ()
        self.storage.update(record, removed)
        return record

    def has_saved_session(self) -> bool:
        return any(self.storage.get(key) is not None for key in RECORD_KEYS)

    def load(self, default_location: LatLng) -> RestoredState:
        record = {key: self.storage.get(key) for key in RECORD_KEYS}
        return decode_record(record, default_location)

    def clear(self) -> None:
        self.storage.update({}, RECORD_KEYS)
