"""
CoinTrail — world/geolocation.py
PositionFeed: replays raw coordinate fixes (e.g. a GPS log) as moveTo events.
"""

from __future__ import annotations
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional
import logging
import re

from engine.components import LatLng

logger = logging.getLogger(__name__)

_SEPARATOR = re.compile(r"[,\s;]+")

def parse_position(line: str) -> Optional[LatLng]:
    """
    Parses "lat,lng" (comma, semicolon or whitespace separated).
    Blank lines and '#' comments yield None, as does anything unparsable.
    """
    text = line.split("#", 1)[0].strip()
    if not text:
        return None
    parts = [p for p in _SEPARATOR.split(text) if p]
    if len(parts) != 2:
        return None
    try:
        return LatLng(float(parts[0]), float(parts[1]))
    except ValueError:
        return None

class PositionFeed:
    """
    Delivers each fix in a stream to a move_to callback.
    The callback's return value (accepted or not) is tallied.
    """
    def __init__(self, move_to: Callable[[LatLng], bool]):
        self.move_to = move_to
        self.accepted = 0
        self.rejected = 0
        self.skipped = 0

    def positions(self, lines: Iterable[str]) -> Iterator[LatLng]:
        for lineno, line in enumerate(lines, start=1):
            stripped = line.split("#", 1)[0].strip()
            if not stripped:
                continue
            fix = parse_position(line)
            if fix is None:
                logger.warning("Skipping malformed position on line %d: %r", lineno, line.rstrip())
                self.skipped += 1
                continue
            yield fix

    def replay(self, lines: Iterable[str]) -> int:
        """Feeds every fix; returns how many moves were accepted."""
        before = self.accepted
        for fix in self.positions(lines):
            if self.move_to(fix):
                self.accepted += 1
            else:
                self.rejected += 1
        return self.accepted - before

    def replay_file(self, path: Path) -> int:
        with open(path, "r", encoding="utf-8") as f:
            return self.replay(f)
