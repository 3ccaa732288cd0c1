"""
CoinTrail — run.py
Main entry point for the CoinTrail interactive viewer.
"""

import argparse
import logging
import sys
from pathlib import Path

# Ensure we can import the project packages
project_root = Path(__file__).parent.resolve()
sys.path.insert(0, str(project_root))

from engine.data_loader import WORLD_CONFIG_PATH, get_viewer_config, get_world_config
from engine.loop import SimulationLoop
from world.geolocation import PositionFeed
from world.persistence import JsonFileStorage
from ui.renderer import MapRenderer, Renderer
from ui.screens import MapState
from ui.states import Engine

def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="CoinTrail: collect coins from caches around you.")
    parser.add_argument("--config", type=Path, default=WORLD_CONFIG_PATH, help="world TOML file")
    parser.add_argument("--save-file", type=Path, default=Path("sessions/session.json"))
    parser.add_argument("--new", action="store_true", help="ignore any saved session")
    parser.add_argument("--autosave", action="store_true", help="save after every change")
    parser.add_argument("--replay", type=Path, help="file of 'lat,lng' fixes to walk first")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)

def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    world_config = get_world_config(args.config)
    viewer_config = get_viewer_config(args.config)

    sim = SimulationLoop(
        config=world_config,
        storage=JsonFileStorage(args.save_file),
        autosave=args.autosave,
    )
    renderer = Renderer(width=viewer_config.width, height=viewer_config.height, title="CoinTrail")
    map_renderer = MapRenderer(sim.coder, tile_pixels=viewer_config.tile_pixels)
    map_renderer.attach(sim.bus)

    if args.new:
        sim.open_session()
    else:
        sim.resume_session()
    map_renderer.trail = list(sim.player.movement_trail)

    if args.replay:
        feed = PositionFeed(sim.move_to)
        accepted = feed.replay_file(args.replay)
        logging.getLogger(__name__).info(
            "Replayed %d fixes (%d rejected, %d malformed)", accepted, feed.rejected, feed.skipped
        )

    engine = Engine(renderer=renderer)
    engine.change_state(MapState(engine, sim, map_renderer))
    engine.run()

if __name__ == "__main__":
    main()
