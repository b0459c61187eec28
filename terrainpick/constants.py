"""Configuration constants, paths, and rendering defaults."""

import os
import pathlib

from dotenv import load_dotenv

# Load environment variables (.env in the working directory, if any)
load_dotenv()

# Configure base paths
BASE_DIR = pathlib.Path(__file__).parent.parent.absolute()
DATA_DIR = pathlib.Path(os.environ.get("TERRAINPICK_DATA_DIR", BASE_DIR / "data"))
OUTPUT_DIR = pathlib.Path(os.environ.get("TERRAINPICK_OUTPUT_DIR", BASE_DIR / "output"))
CACHE_DIR = BASE_DIR / "cache"
DEM_CACHE_DIR = CACHE_DIR / "dem"

DEFAULT_DB_NAME = "terrain.db"

# ── Elevation sources ────────────────────────────────────────────────
GOOGLE_MAPS_API_KEY = os.environ.get("GOOGLE_MAPS_API_KEY", "").strip()
GOOGLE_ELEVATION_URL = "https://maps.googleapis.com/maps/api/elevation/json"
ELEVATION_REQUEST_TIMEOUT = 30

# Default lattice: a small block in Waterloo, ON sampled at ~1 m spacing
DEFAULT_LATTICE = {
    "south": 43.45135,
    "west": -80.49600,
    "north": 43.45245,
    "east": -80.49400,
    "rows": 111,
    "cols": 201,
}

# ── Rendering ────────────────────────────────────────────────────────
WINDOW_WIDTH = 1280
WINDOW_HEIGHT = 720
FOV_Y = 86.0            # vertical field of view in degrees
NEAR_PLANE = 0.001
FAR_PLANE = 10.0
SUPERSAMPLE = 1         # render at N x resolution, downsized for the image

FILL_COLOR = "#ffb5b5"                 # every covered pixel
BACKGROUND_COLOR = (0, 0, 0, 0)        # transparent where nothing is drawn

# ── Query service ────────────────────────────────────────────────────
BROADCAST_TIMEOUT = float(os.environ.get("TERRAINPICK_BROADCAST_TIMEOUT", "1.0"))
NOT_SELECTED_MESSAGE = "picking: primitive not selected."
# Websocket queries a client may have waiting for the worker; extras are dropped
MAX_PENDING_QUERIES = int(os.environ.get("TERRAINPICK_MAX_PENDING_QUERIES", "8"))
# Worker queue bound; submitters wait once it is full
QUERY_QUEUE_SIZE = 256
