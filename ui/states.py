"""
CoinTrail — ui/states.py
Screen state machine and the pygame frame loop that drives it.
"""

from __future__ import annotations
from typing import Any, Optional
import pygame

from ui.renderer import Renderer

class BaseState:
    """
    One screen of the viewer. The Engine routes every pygame event here
    and asks it to paint the frame once per tick.
    """
    def __init__(self, engine: "Engine"):
        self.engine = engine

    def dispatch(self, event: Any) -> None:
        if event.type == pygame.QUIT:
            self.ev_quit(event)
        elif event.type == pygame.KEYDOWN:
            self.ev_keydown(event)

    def ev_quit(self, event: Any) -> None:
        self.engine.running = False

    def ev_keydown(self, event: Any) -> None:
        pass

    def on_render(self, renderer: Renderer) -> None:
        pass


class Engine:
    """Owns the window and the active screen state."""
    def __init__(self, renderer: Renderer, initial_state: Optional[BaseState] = None, fps: int = 30):
        self.renderer = renderer
        self.active_state: BaseState = initial_state if initial_state is not None else BaseState(self)
        self.running = True
        self.fps = fps

    def change_state(self, new_state: BaseState) -> None:
        self.active_state = new_state

    def run(self) -> None:
        """Blocks until a state clears self.running."""
        pygame.init()
        screen = pygame.display.set_mode((self.renderer.width, self.renderer.height))
        pygame.display.set_caption(self.renderer.title)
        clock = pygame.time.Clock()
        try:
            while self.running:
                self.renderer.clear()
                self.active_state.on_render(self.renderer)
                self.renderer.present(screen)

                for event in pygame.event.get():
                    self.active_state.dispatch(event)
                    if not self.running:
                        break

                clock.tick(self.fps)
        finally:
            pygame.quit()
