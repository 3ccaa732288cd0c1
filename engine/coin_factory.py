"""
CoinTrail — engine/coin_factory.py
Coin Factory: deterministic coin minting and coin id parsing.
==============================================================
Version:     0.2
Stack:       Python 3.14.3
Status:      Production-ready.
"""

import re
from typing import Callable, Optional, Tuple

from engine.components import Coin, GridCell

# Value policy: (cell, serial) -> value. Must be deterministic.
ValuePolicy = Callable[[GridCell, int], int]

_COIN_ID_RE = re.compile(r"^(-?\d+):(-?\d+)#(\d+)$")

def unit_value(cell: GridCell, serial: int) -> int:
    """Default policy: every coin is worth one."""
    return 1

def fixed_value(value: int) -> ValuePolicy:
    """Builds a policy that mints every coin at the given value."""
    def policy(cell: GridCell, serial: int) -> int:
        return value
    return policy

def coin_id(cell: GridCell, serial: int) -> str:
    return f"{cell.i}:{cell.j}#{serial}"

def parse_coin_id(cid: str) -> Optional[Tuple[GridCell, int]]:
    """
    Splits "i:j#serial" into (home cell, serial).
    Returns None for anything that is not a well-formed coin id.
    """
    if not isinstance(cid, str):
        return None
    match = _COIN_ID_RE.fullmatch(cid)
    if not match:
        return None
    i, j, serial = (int(g) for g in match.groups())
    return GridCell(i, j), serial

def mint_coins(cell: GridCell, count: int, value_policy: ValuePolicy = unit_value) -> Tuple[Coin, ...]:
    """
    Mints coins i:j#0 .. i:j#(count-1) for a cell.
    The same (cell, count) always yields the same ids; count <= 0 mints nothing.
    """
    return tuple(
        Coin(id=coin_id(cell, serial), value=value_policy(cell, serial))
        for serial in range(max(0, count))
    )
