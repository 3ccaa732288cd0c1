"""
CoinTrail — world/cache_store.py
CacheStore: the authoritative cell -> Cache mapping.
====================================================
Version:     0.2
Stack:       Python 3.14.3
Status:      Production-ready.

Architecture notes
------------------
- One Cache per GridCell, keyed by the frozen GridCell value.
- The visible cells are indexed separately, so window maintenance never
  has to walk the hidden records.- Entries are never dropped while the process lives. Leaving the
  visibility window only clears the visible flag; the record keeps its
  coins and is handed back unchanged on re-entry. reset() is the only
  way to destroy caches.
- upsert / set_visible / collect / deposit are the only ways to change a
  cache. Coin sequences are tuples and are replaced wholesale.
"""

from __future__ import annotations
from typing import Dict, Iterator, List, Optional, Set, Tuple, Any

from engine.components import Cache, Coin, GridCell
from engine.coin_factory import ValuePolicy, mint_coins, unit_value

class CacheStore:
    def __init__(self, value_policy: ValuePolicy = unit_value):
        self.value_policy = value_policy
        self._caches: Dict[GridCell, Cache] = {}
        self._visible: Set[GridCell] = set()

    def __len__(self) -> int:
        return len(self._caches)

    def __contains__(self, cell: GridCell) -> bool:
        return cell in self._caches

    def __iter__(self) -> Iterator[Cache]:
        return iter(list(self._caches.values()))

    def get(self, cell: GridCell) -> Optional[Cache]:
        return self._caches.get(cell)

    def cells(self) -> List[GridCell]:
        return list(self._caches)

    def visible_cells(self) -> List[GridCell]:
        return sorted(self._visible, key=lambda c: (c.i, c.j))

    def upsert(self, cache: Cache) -> Cache:
        """Inserts or replaces the cache at cache.cell."""
        cache.coins = tuple(cache.coins)
        self._caches[cache.cell] = cache
        if cache.visible:
            self._visible.add(cache.cell)
        else:
            self._visible.discard(cache.cell)
        return cache

    def set_visible(self, cell: GridCell, visible: bool) -> bool:
        """Toggles visibility. Returns False if no cache exists at cell."""
        cache = self._caches.get(cell)
        if cache is None:
            return False
        cache.visible = visible
        if visible:
            self._visible.add(cell)
        else:
            self._visible.discard(cell)
        return True

    def collect(self, cell: GridCell) -> int:
        """Empties the cache and returns how many coins were removed."""
        cache = self._caches.get(cell)
        if cache is None or cache.is_empty:
            return 0
        removed = len(cache.coins)
        cache.coins = ()
        return removed

    def deposit(self, cell: GridCell, count: int) -> Tuple[Coin, ...]:
        """
        Mints count coins under cell and appends them. Returns the minted
        coins; nothing happens for count <= 0 or a missing cache.
        """
        cache = self._caches.get(cell)
        if cache is None or count <= 0:
            return ()
        minted = mint_coins(cell, count, self.value_policy)
        cache.coins = cache.coins + minted
        return minted

    def reset(self) -> None:
        """Destroys every cache."""
        self._caches.clear()
        self._visible.clear()

    # ----------------------------------------------------------
    # Snapshots (persistence)
    # ----------------------------------------------------------

    def get_state(self) -> List[Dict[str, Any]]:
        """Returns serializable state for every known cache."""
        return [
            {
                "i": cell.i,
                "j": cell.j,
                "coins": [{"id": c.id, "value": c.value} for c in cache.coins],
            }
            for cell, cache in sorted(self._caches.items(), key=lambda kv: (kv[0].i, kv[0].j))
        ]

    def load_state(self, entries: List[Tuple[GridCell, Tuple[Coin, ...]]]) -> None:
        """Replaces the store with restored caches. All start hidden."""
        self._caches = {}
        self._visible = set()
        for cell, coins in entries:
            self._caches[cell] = Cache(cell=cell, coins=tuple(coins), visible=False)
