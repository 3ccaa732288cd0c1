"""
CoinTrail — engine/data_loader.py
JIT loader for the TOML world configuration, validated by Pydantic.
=============================================================================================
Version:     0.2
Stack:       Python 3.14.3 | Pydantic v2 | tomllib
Status:      Core configuration layer.

Design Variables (defaults; override in data/world.toml)
--------------------------------------------------------
  TILE_DEGREES              1e-4    — grid quantization size in degrees (~10 m)
  NEIGHBORHOOD_SIZE         8       — Manhattan radius of the visibility window
  CACHE_SPAWN_PROBABILITY   0.1     — chance that a cell hosts a cache
  COIN_VALUE                1       — value minted into every coin
  ORIGIN                    36.9995, -122.0533
"""

import math
import tomllib
from pathlib import Path
from typing import Dict, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from engine.components import LatLng

# ================================================================================
# DESIGN VARIABLE DEFAULTS
# ================================================================================

TILE_DEGREES: float = 1e-4
NEIGHBORHOOD_SIZE: int = 8
CACHE_SPAWN_PROBABILITY: float = 0.1
COIN_VALUE: int = 1
ORIGIN_LAT: float = 36.9995
ORIGIN_LNG: float = -122.0533

VIEWER_TILE_PIXELS: int = 24
VIEWER_WIDTH: int = 800
VIEWER_HEIGHT: int = 800

# ================================================================================
# SCHEMAS
# ================================================================================

class WorldConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    origin_lat: float = Field(default=ORIGIN_LAT, ge=-90.0, le=90.0)
    origin_lng: float = Field(default=ORIGIN_LNG, ge=-180.0, le=180.0)
    tile_degrees: float = Field(default=TILE_DEGREES, gt=0.0)
    neighborhood_size: int = Field(default=NEIGHBORHOOD_SIZE, ge=0)
    cache_spawn_probability: float = Field(default=CACHE_SPAWN_PROBABILITY, ge=0.0, lt=1.0)
    coin_value: int = Field(default=COIN_VALUE, ge=0)
    seed: Optional[str] = None

    @field_validator("tile_degrees")
    @classmethod
    def _finite_tile(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("tile_degrees must be finite")
        return value

    @property
    def origin(self) -> LatLng:
        return LatLng(self.origin_lat, self.origin_lng)

    @property
    def world_seed(self) -> str:
        """The explicit seed, or one derived from the origin."""
        if self.seed is not None:
            return self.seed
        return f"{self.origin_lat},{self.origin_lng}"

class ViewerConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    tile_pixels: int = Field(default=VIEWER_TILE_PIXELS, gt=0)
    width: int = Field(default=VIEWER_WIDTH, gt=0)
    height: int = Field(default=VIEWER_HEIGHT, gt=0)

# ================================================================================
# LOADERS & CACHE (JIT)
# ================================================================================

_WORLD_CACHE: Dict[Path, WorldConfig] = {}
_VIEWER_CACHE: Dict[Path, ViewerConfig] = {}

DATA_DIR = Path(__file__).parent.parent / "data"
WORLD_CONFIG_PATH = DATA_DIR / "world.toml"

def _read_toml(path: Path) -> dict:
    if not path.exists():
        return {}
    with open(path, "rb") as f:
        return tomllib.load(f)

def load_world_config(path: Path) -> WorldConfig:
    """Reads the [world] table of a TOML file. A missing file yields the defaults."""
    data = _read_toml(path)
    return WorldConfig(**data.get("world", {}))

def load_viewer_config(path: Path) -> ViewerConfig:
    data = _read_toml(path)
    return ViewerConfig(**data.get("viewer", {}))

def get_world_config(path: Optional[Path] = None) -> WorldConfig:
    """JIT loads the world configuration. Cached per file."""
    path = path or WORLD_CONFIG_PATH
    if path in _WORLD_CACHE:
        return _WORLD_CACHE[path]

    config = load_world_config(path)
    _WORLD_CACHE[path] = config
    return config

def get_viewer_config(path: Optional[Path] = None) -> ViewerConfig:
    """JIT loads the viewer configuration. Cached per file."""
    path = path or WORLD_CONFIG_PATH
    if path in _VIEWER_CACHE:
        return _VIEWER_CACHE[path]

    config = load_viewer_config(path)
    _VIEWER_CACHE[path] = config
    return config
