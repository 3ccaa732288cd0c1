"""
CoinTrail — ui/screens.py
Implementations of the UI Screen States.
"""
from typing import Any, Dict, List, Optional, Tuple
import pygame

from ui.states import BaseState, Engine
from ui.renderer import Renderer, MapRenderer
from engine.loop import SimulationLoop
from engine.components import GridCell
from engine.narrative import NarrativeGenerator
from engine.spawner import survey
from engine.events import (
    GameEvent,
    EVT_BALANCE_CHANGED,
    EVT_SESSION_SAVED,
    EVT_SESSION_SAVE_FAILED,
    EVT_SESSION_LOADED,
    EVT_SESSION_RESET,
)

LOG_LINES = 4

MOVE_KEYS = {
    pygame.K_UP: (1, 0), pygame.K_w: (1, 0),
    pygame.K_DOWN: (-1, 0), pygame.K_s: (-1, 0),
    pygame.K_LEFT: (0, -1), pygame.K_a: (0, -1),
    pygame.K_RIGHT: (0, 1), pygame.K_d: (0, 1),
}


class MapState(BaseState):
    """The main gameplay screen."""

    def __init__(self, engine: Engine, sim: SimulationLoop, map_renderer: MapRenderer):
        super().__init__(engine)
        self.sim = sim
        self.map_renderer = map_renderer
        self.log: List[str] = []
        self.show_survey = False
        self._survey: Optional[Tuple[GridCell, Dict[GridCell, int]]] = None
        for key in (EVT_BALANCE_CHANGED, EVT_SESSION_SAVED, EVT_SESSION_SAVE_FAILED,
                    EVT_SESSION_LOADED, EVT_SESSION_RESET):
            sim.bus.subscribe(key, self._on_event)

    def _on_event(self, event: GameEvent) -> None:
        if event.event_key == EVT_BALANCE_CHANGED and event.data.get("delta", 0) == 0:
            return
        self.add_message(NarrativeGenerator.event_to_text(event))

    def add_message(self, text: str) -> None:
        self.log.append(text)
        del self.log[:-LOG_LINES]

    def survey_cells(self) -> Dict[GridCell, int]:
        """Spawner picks around the player, recomputed only when the player changes cell."""
        here = self.sim.player_cell
        if self._survey is None or self._survey[0] != here:
            config = self.sim.config
            self._survey = (here, survey(config.world_seed, here, config.neighborhood_size,
                                         config.cache_spawn_probability))
        return self._survey[1]

    def locate_coin(self) -> bool:
        """Centres the view on the home cell of the nearest cache's first coin."""
        nearby = self.sim.nearby_caches(reach=1)
        if not nearby or nearby[0].is_empty:
            self.add_message("No coin here to locate.")
            return False
        cid = nearby[0].coins[0].id
        self.map_renderer.focus = self.sim.coin_home(cid)
        self.add_message(f"Showing the home of coin {cid}.")
        return True

    def on_render(self, renderer: Renderer) -> None:
        self.map_renderer.draw(renderer)
        if self.show_survey:
            self.map_renderer.draw_survey(renderer, self.survey_cells())

        # HUD
        renderer.print(8, 8, NarrativeGenerator.status_text(self.sim.player), fg=(255, 230, 120))
        nearby = self.sim.nearby_caches(reach=1)
        if nearby:
            cache = nearby[0]
            renderer.print(8, 28, NarrativeGenerator.cache_text(cache))
            renderer.print(8, 46, NarrativeGenerator.coin_list([c.id for c in cache.coins]), fg=(180, 180, 180))

        for n, line in enumerate(self.log):
            renderer.print(8, renderer.height - 40 - 18 * (len(self.log) - n), line, fg=(200, 200, 200))
        renderer.print(8, renderer.height - 24,
                       "[Arrows/WASD] Move  [C] Collect  [E] Deposit  [H] Coin home  [V] Spawns  [F5] Save  [F9] Load  [R] Reset  [ESC] Quit",
                       fg=(150, 150, 150))

    def ev_keydown(self, event: Any) -> None:
        key = event.key
        if key in MOVE_KEYS:
            di, dj = MOVE_KEYS[key]
            self.sim.step(di, dj)
        elif key == pygame.K_c:
            nearby = self.sim.nearby_caches(reach=1)
            if nearby:
                self.sim.collect(nearby[0].cell)
        elif key == pygame.K_e:
            nearby = self.sim.nearby_caches(reach=1)
            if nearby:
                self.sim.deposit(nearby[0].cell)
        elif key == pygame.K_h:
            self.locate_coin()
        elif key == pygame.K_v:
            self.show_survey = not self.show_survey
        elif key == pygame.K_F5:
            self._save()
        elif key == pygame.K_F9:
            if self.sim.load():
                self.map_renderer.trail = list(self.sim.player.movement_trail)
            else:
                self.add_message("No saved session.")
        elif key == pygame.K_r:
            self.engine.change_state(ConfirmResetState(self.engine, self))
        elif key == pygame.K_ESCAPE:
            self.ev_quit(event)

    def ev_quit(self, event: Any) -> None:
        self._save()
        self.engine.running = False

    def _save(self) -> None:
        try:
            self.sim.save()
        except OSError as exc:
            self.add_message(f"Save failed: {exc}")


class ConfirmResetState(BaseState):
    """Asks before throwing the world away."""

    def __init__(self, engine: Engine, parent_state: MapState):
        super().__init__(engine)
        self.parent_state = parent_state

    def on_render(self, renderer: Renderer) -> None:
        self.parent_state.on_render(renderer)
        renderer.print(renderer.width // 2 - 150, renderer.height // 2,
                       "Reset the world and lose all coins? [Y/N]", fg=(255, 120, 120))

    def ev_keydown(self, event: Any) -> None:
        if event.key == pygame.K_y:
            try:
                self.parent_state.sim.reset()
                self.parent_state.map_renderer.reset_trail()
            except OSError as exc:
                self.parent_state.add_message(f"Reset failed: {exc}")
            self.engine.change_state(self.parent_state)
        elif event.key in (pygame.K_n, pygame.K_ESCAPE):
            self.engine.change_state(self.parent_state)

    def ev_quit(self, event: Any) -> None:
        self.parent_state.ev_quit(event)
