import os
os.environ.setdefault("SDL_VIDEODRIVER", "dummy")

import pygame
import pytest

from engine.components import GridCell
from engine.data_loader import WorldConfig
from engine.loop import SimulationLoop
from engine.spawner import survey
from ui.renderer import BACKGROUND, PLAYER, SURVEY, MapRenderer, Renderer
from ui.screens import ConfirmResetState, MapState
from ui.states import Engine
from world.persistence import MemoryStorage

CONFIG = WorldConfig(seed="viewer", neighborhood_size=4, cache_spawn_probability=0.5)

def make_viewer(storage=None, **kwargs):
    sim = SimulationLoop(config=CONFIG, storage=storage or MemoryStorage(), **kwargs)
    renderer = Renderer(width=200, height=160, title="Test Window")
    map_renderer = MapRenderer(sim.coder, tile_pixels=10)
    map_renderer.attach(sim.bus)
    sim.open_session()
    engine = Engine(renderer=renderer)
    state = MapState(engine, sim, map_renderer)
    engine.change_state(state)
    return sim, renderer, map_renderer, engine, state

def press(state, key):
    state.dispatch(pygame.event.Event(pygame.KEYDOWN, key=key))

def test_renderer_initialization():
    r = Renderer(width=80, height=50, title="Test Window")
    assert r.width == 80
    assert r.height == 50
    assert r.title == "Test Window"
    assert r.surface.get_size() == (80, 50)

def test_renderer_clear():
    r = Renderer(width=80, height=50)
    r.surface.fill((255, 0, 0))
    r.clear()
    assert tuple(r.surface.get_at((0, 0)))[:3] == BACKGROUND

def test_markers_mirror_visible_caches():
    sim, _, map_renderer, _, _ = make_viewer()
    assert set(map_renderer.markers) == set(sim.store.visible_cells())

    sim.step(0, 30)
    assert set(map_renderer.markers) == set(sim.store.visible_cells())
    assert map_renderer.player == sim.player.location
    assert len(map_renderer.trail) == 2

def test_marker_follows_collect():
    sim, _, map_renderer, _, _ = make_viewer()
    cache = next(c for c in sim.store if c.visible and c.coin_count)
    sim.collect(cache.cell)
    assert map_renderer.markers[cache.cell] == ()
    assert map_renderer.balance == sim.player.coin_balance

def test_player_drawn_at_frame_centre():
    _, renderer, map_renderer, _, _ = make_viewer()
    renderer.clear()
    map_renderer.draw(renderer)
    assert tuple(renderer.surface.get_at((100, 80)))[:3] == PLAYER

def test_cell_rect_of_player_cell_touches_centre():
    sim, renderer, map_renderer, _, _ = make_viewer()
    rect = map_renderer.cell_rect(GridCell(0, 0), renderer.surface)
    assert rect.size == (10, 10)
    assert rect.bottomleft == (100, 80)

def test_arrow_keys_move_one_tile():
    sim, _, _, _, state = make_viewer()
    press(state, pygame.K_UP)
    press(state, pygame.K_d)
    assert sim.player_cell == GridCell(1, 1)
    assert len(sim.player.movement_trail) == 3

def test_collect_key_and_message_log():
    sim, _, _, _, state = make_viewer()
    nearby = sim.nearby_caches(reach=1)
    if not nearby or nearby[0].is_empty:
        pytest.skip("no reachable cache with coins at the origin for this seed")
    press(state, pygame.K_c)
    assert sim.player.coin_balance > 0
    assert state.log[-1].startswith("Collected")

def test_on_render_draws_without_display():
    _, renderer, _, engine, state = make_viewer()
    renderer.clear()
    state.on_render(renderer)
    assert engine.running

def test_reset_asks_for_confirmation():
    sim, _, _, engine, state = make_viewer()
    press(state, pygame.K_UP)
    press(state, pygame.K_r)
    assert isinstance(engine.active_state, ConfirmResetState)

    press(engine.active_state, pygame.K_n)
    assert engine.active_state is state
    assert sim.player_cell == GridCell(1, 0)

    press(state, pygame.K_r)
    press(engine.active_state, pygame.K_y)
    assert engine.active_state is state
    assert sim.player_cell == GridCell(0, 0)
    assert sim.player.movement_trail == [CONFIG.origin]

def test_escape_saves_and_stops():
    sim, _, _, engine, state = make_viewer()
    press(state, pygame.K_ESCAPE)
    assert not engine.running
    assert sim.persistence.has_saved_session()

def test_window_close_saves():
    sim, _, _, engine, state = make_viewer()
    state.dispatch(pygame.event.Event(pygame.QUIT))
    assert not engine.running
    assert sim.persistence.has_saved_session()

class FailingStorage(MemoryStorage):
    def update(self, values, removed=()):
        raise OSError("disk full")

def test_autosave_failure_keeps_viewer_running():
    sim, _, _, engine, state = make_viewer(FailingStorage(), autosave=True)
    press(state, pygame.K_UP)
    assert engine.running
    assert sim.player_cell == GridCell(1, 0)
    assert state.log[-1] == "Save failed: disk full"

def test_failed_reset_is_reported():
    sim, _, _, engine, state = make_viewer(FailingStorage())
    press(state, pygame.K_UP)
    press(state, pygame.K_r)
    press(engine.active_state, pygame.K_y)
    assert engine.active_state is state
    assert sim.player_cell == GridCell(1, 0)
    assert state.log[-1] == "Reset failed: disk full"

def test_coin_home_key_recentres_until_next_move():
    sim, renderer, map_renderer, _, state = make_viewer()
    nearby = sim.nearby_caches(reach=1)
    if not nearby or nearby[0].is_empty:
        pytest.skip("no reachable cache with coins at the origin for this seed")
    cache = nearby[0]

    press(state, pygame.K_h)
    assert map_renderer.focus == sim.coder.cell_center(cache.cell)
    assert state.log[-1] == f"Showing the home of coin {cache.coins[0].id}."
    # The focused cell now sits under the frame centre
    rect = map_renderer.cell_rect(cache.cell, renderer.surface)
    assert rect.collidepoint(100, 80)

    press(state, pygame.K_UP)
    assert map_renderer.focus is None

def test_coin_home_key_without_coins():
    sim, _, map_renderer, _, state = make_viewer()
    sim.step(500, 500)
    for cache in sim.nearby_caches(reach=1):
        sim.collect(cache.cell)
    press(state, pygame.K_h)
    assert map_renderer.focus is None
    assert state.log[-1] == "No coin here to locate."

def test_survey_overlay_toggle():
    sim, renderer, map_renderer, engine, state = make_viewer()
    press(state, pygame.K_v)
    assert state.show_survey

    expected = survey(CONFIG.world_seed, GridCell(0, 0), CONFIG.neighborhood_size,
                      CONFIG.cache_spawn_probability)
    assert state.survey_cells() == expected
    assert state.survey_cells() is state.survey_cells()

    renderer.clear()
    state.on_render(renderer)
    assert engine.running

    cell = next(iter(expected))
    renderer.clear()
    map_renderer.draw_survey(renderer, {cell: expected[cell]})
    rect = map_renderer.cell_rect(cell, renderer.surface)
    assert tuple(renderer.surface.get_at(rect.topleft))[:3] == SURVEY

    press(state, pygame.K_v)
    assert not state.show_survey
