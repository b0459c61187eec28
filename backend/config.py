import os
import pathlib

from terrainpick.constants import BROADCAST_TIMEOUT, DATA_DIR, DEFAULT_DB_NAME

DB_PATH = pathlib.Path(os.environ.get("TERRAINPICK_DB", DATA_DIR / DEFAULT_DB_NAME))

HOST = os.environ.get("TERRAINPICK_HOST", "127.0.0.1")
PORT = int(os.environ.get("TERRAINPICK_PORT", "8000"))

CORS_ORIGINS = [
    "http://localhost:5174",
    "http://127.0.0.1:5174",
]

# Seconds a client gets to accept a broadcast before it is evicted
DELIVERY_TIMEOUT = BROADCAST_TIMEOUT


def _optional_float(name: str):
    value = os.environ.get(name, "").strip()
    return float(value) if value else None


# Startup camera. Without TERRAINPICK_CAMERA_LAT/LNG the scene looks straight
# down on the whole lattice.
CAMERA_LAT = _optional_float("TERRAINPICK_CAMERA_LAT")
CAMERA_LNG = _optional_float("TERRAINPICK_CAMERA_LNG")
CAMERA_HEIGHT = float(os.environ.get("TERRAINPICK_CAMERA_HEIGHT", "30.0"))
CAMERA_YAW = float(os.environ.get("TERRAINPICK_CAMERA_YAW", "0.0"))
CAMERA_PITCH = float(os.environ.get("TERRAINPICK_CAMERA_PITCH", "-30.0"))
