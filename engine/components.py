"""
CoinTrail — engine/components.py
Core data model: grid cells, coins, caches and the player.
==========================================================
Version:     0.1
Stack:       Python 3.14.3 | dataclasses
Status:      Production-ready.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Tuple

@dataclass(frozen=True)
class GridCell:
    i: int
    j: int

    def __str__(self) -> str:
        return f"{self.i},{self.j}"

@dataclass(frozen=True)
class LatLng:
    lat: float
    lng: float

    def to_dict(self) -> dict:
        return {"lat": self.lat, "lng": self.lng}

@dataclass(frozen=True)
class Coin:
    """
    Value object. Equality and hashing are by id only; value is fixed
    at mint time.
    """
    id: str
    value: int = field(default=1, compare=False)

@dataclass
class Cache:
    """
    The coin record for one cell.

    coins is an immutable tuple; CacheStore replaces it wholesale on
    collect/deposit, it is never edited in place.
    """
    cell: GridCell
    coins: Tuple[Coin, ...] = ()
    visible: bool = True

    @property
    def coin_count(self) -> int:
        return len(self.coins)

    @property
    def is_empty(self) -> bool:
        return not self.coins

@dataclass
class Player:
    location: LatLng
    coin_balance: int = 0
    movement_trail: List[LatLng] = field(default_factory=list)
