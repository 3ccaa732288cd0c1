"""
CoinTrail — engine/spawner.py
Deterministic Spawner: decides which grid cells host a cache and how many coins it starts with.
===============================================================================================
Version:     0.3
Stack:       Python 3.14.3 | hashlib
Status:      Ready for testing.

Every draw is a pure function of (seed, cell, salt). There is no generator
state, so cells can be evaluated in any order, any number of times.
Python's built-in hash() is salted per process for strings and must not be
used here.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict
import hashlib
import math

from engine.components import GridCell

SPAWN_SALT = "spawn"
VALUE_SALT = "cacheValue"
MAX_INITIAL_COINS = 100

_DRAW_BITS = 53

def luck(key: str) -> float:
    """Maps a string to a stable pseudo-random float in [0, 1)."""
    digest = hashlib.sha256(key.encode("utf-8")).digest()
    return (int.from_bytes(digest[:8], byteorder="big") >> (64 - _DRAW_BITS)) / float(1 << _DRAW_BITS)

def draw(cell: GridCell, seed: str, salt: str) -> float:
    return luck(f"{seed}|{cell.i},{cell.j}|{salt}")

@dataclass(frozen=True)
class SpawnDecision:
    spawns: bool
    coin_count: int = 0

def decide(cell: GridCell, seed: str, probability: float) -> SpawnDecision:
    """Decides presence and, if present, the initial coin count for a cell."""
    if draw(cell, seed, SPAWN_SALT) >= probability:
        return SpawnDecision(spawns=False)
    coin_count = math.floor(draw(cell, seed, VALUE_SALT) * MAX_INITIAL_COINS)
    return SpawnDecision(spawns=True, coin_count=coin_count)

def survey(seed: str, center: GridCell, radius: int, probability: float) -> Dict[GridCell, int]:
    """
    Enumerates the spawning cells within a Manhattan radius of center.
    Returns {cell: initial coin count}.
    """
    from world.grid import neighborhood

    found: Dict[GridCell, int] = {}
    for cell in neighborhood(center, radius):
        decision = decide(cell, seed, probability)
        if decision.spawns:
            found[cell] = decision.coin_count
    return found
