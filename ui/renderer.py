"""
CoinTrail — ui/renderer.py
Pygame Renderer: off-screen frame buffer plus the map render sink.
==================================================================
Version:     0.2
Stack:       Python 3.14.3 | pygame
Status:      Production-ready.
"""

from __future__ import annotations
from typing import Dict, List, Optional, Tuple
import pygame

from engine.components import GridCell, LatLng
from engine.events import RenderSink
from world.grid import GridCoder

BACKGROUND = (18, 20, 26)
GRID_LINE = (34, 38, 46)
CACHE_FULL = (222, 184, 65)
CACHE_EMPTY = (95, 95, 105)
PLAYER = (90, 200, 255)
TRAIL = (60, 120, 160)
TEXT = (230, 230, 230)
SURVEY = (170, 90, 220)

class Renderer:
    """
    Owns the off-screen frame. Drawing never touches the display, so the
    renderer works headless; present() copies the frame to a window.
    """
    def __init__(self, width: int, height: int, title: str = "CoinTrail"):
        self.width = width
        self.height = height
        self.title = title
        pygame.font.init()
        self.surface = pygame.Surface((width, height))
        self.font = pygame.font.Font(None, 20)

    def clear(self) -> None:
        self.surface.fill(BACKGROUND)

    def print(self, x: int, y: int, text: str, fg: Tuple[int, int, int] = TEXT) -> None:
        self.surface.blit(self.font.render(text, True, fg), (x, y))

    def present(self, screen: pygame.Surface) -> None:
        screen.blit(self.surface, (0, 0))
        pygame.display.flip()

class MapRenderer(RenderSink):
    """
    Mirrors what the core has announced: visible cache markers, the player
    and the trail. Knows nothing the events did not tell it.

    The view is centred on the player, or on focus while one is set. The
    next move clears the focus.
    """
    def __init__(self, coder: GridCoder, tile_pixels: int = 24):
        self.coder = coder
        self.tile_pixels = tile_pixels
        self.markers: Dict[GridCell, Tuple[str, ...]] = {}
        self.player: Optional[LatLng] = None
        self.trail: List[LatLng] = []
        self.balance = 0
        self.focus: Optional[LatLng] = None

    # ----------------------------------------------------------
    # Sink hooks
    # ----------------------------------------------------------

    def on_cache_appear(self, cell: GridCell, coins: tuple) -> None:
        self.markers[cell] = coins

    def on_cache_update(self, cell: GridCell, coins: tuple) -> None:
        if cell in self.markers:
            self.markers[cell] = coins

    def on_cache_disappear(self, cell: GridCell) -> None:
        self.markers.pop(cell, None)

    def on_player_moved(self, location: LatLng) -> None:
        self.player = location
        self.focus = None
        if not self.trail or self.trail[-1] != location:
            self.trail.append(location)

    def on_balance_changed(self, balance: int) -> None:
        self.balance = balance

    def reset_trail(self) -> None:
        self.trail = [self.player] if self.player is not None else []

    # ----------------------------------------------------------
    # Drawing
    # ----------------------------------------------------------

    def _grid_position(self, location: LatLng) -> Tuple[float, float]:
        """Fractional (i, j) of a location."""
        return (
            (location.lat + self.coder.lat_offset) * self.coder.scale,
            (location.lng + self.coder.lng_offset) * self.coder.scale,
        )

    def to_screen(self, fi: float, fj: float, surface: pygame.Surface) -> Tuple[int, int]:
        """North is up: i grows upward, j grows to the right."""
        anchor = self.focus or self.player
        pi, pj = self._grid_position(anchor) if anchor else (0.0, 0.0)
        cx, cy = surface.get_width() // 2, surface.get_height() // 2
        return (
            int(cx + (fj - pj) * self.tile_pixels),
            int(cy - (fi - pi) * self.tile_pixels),
        )

    def cell_rect(self, cell: GridCell, surface: pygame.Surface) -> pygame.Rect:
        x, y = self.to_screen(cell.i + 1, cell.j, surface)
        return pygame.Rect(x, y, self.tile_pixels, self.tile_pixels)

    def draw(self, renderer: Renderer) -> None:
        surface = renderer.surface
        area = surface.get_rect()

        if len(self.trail) >= 2:
            points = [self.to_screen(*self._grid_position(p), surface) for p in self.trail]
            pygame.draw.lines(surface, TRAIL, False, points, 2)

        for cell, coins in self.markers.items():
            rect = self.cell_rect(cell, surface)
            if not area.colliderect(rect):
                continue
            pygame.draw.rect(surface, CACHE_FULL if coins else CACHE_EMPTY, rect.inflate(-4, -4))
            pygame.draw.rect(surface, GRID_LINE, rect, 1)
            renderer.print(rect.x + 4, rect.y + 4, str(len(coins)), fg=BACKGROUND)

        if self.player is not None:
            center = self.to_screen(*self._grid_position(self.player), surface)
            pygame.draw.circle(surface, PLAYER, center, max(3, self.tile_pixels // 4))

    def draw_survey(self, renderer: Renderer, cells: Dict[GridCell, int]) -> None:
        """Outlines the cells the spawner picks, with their initial coin counts."""
        surface = renderer.surface
        area = surface.get_rect()
        for cell, count in cells.items():
            rect = self.cell_rect(cell, surface)
            if not area.colliderect(rect):
                continue
            pygame.draw.rect(surface, SURVEY, rect, 2)
            renderer.print(rect.x + 2, rect.bottom - 14, str(count), fg=SURVEY)
