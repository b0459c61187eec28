import logging
import pathlib
import sys
from contextlib import asynccontextmanager
from typing import Optional

# Ensure the project root (parent of backend/) is on sys.path so that
# ``import terrainpick`` resolves when the app is started from backend/.
_project_root = str(pathlib.Path(__file__).parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend import config
from backend.hub import ConnectionHub
from backend.routers import frame, query
from terrainpick.database import ModelDatabase
from terrainpick.errors import ModelNotFoundError
from terrainpick.scene import TerrainScene

logger = logging.getLogger(__name__)


def load_scene() -> Optional[TerrainScene]:
    """Scene for the stored model, or None when the database holds none."""
    try:
        mesh = ModelDatabase(config.DB_PATH).load_mesh()
    except ModelNotFoundError as exc:
        logger.warning(f"Starting without a terrain model: {exc}")
        return None

    scene = TerrainScene(mesh)
    if config.CAMERA_LAT is not None and config.CAMERA_LNG is not None:
        scene.set_camera(scene.camera_at(
            config.CAMERA_LAT, config.CAMERA_LNG, height=config.CAMERA_HEIGHT,
            yaw=config.CAMERA_YAW, pitch=config.CAMERA_PITCH))
    return scene


def create_app(scene: Optional[TerrainScene] = None) -> FastAPI:
    """Build the API around *scene* (loaded from the model database if omitted)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.scene = scene if scene is not None else load_scene()
        app.state.hub = None
        if app.state.scene is not None:
            app.state.hub = ConnectionHub(app.state.scene, timeout=config.DELIVERY_TIMEOUT)
            app.state.hub.start()
        yield
        if app.state.hub is not None:
            await app.state.hub.stop()

    app = FastAPI(
        title="TerrainPick API",
        description="Pixel to latitude/longitude/elevation picking on rendered terrain",
        version="0.1.0",
        lifespan=lifespan,
    )

    # -----------------------------------------------------------------------
    # CORS -- allow the Vite dev server
    # -----------------------------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -----------------------------------------------------------------------
    # Routers
    # -----------------------------------------------------------------------
    app.include_router(query.router)
    app.include_router(frame.router)

    @app.get("/")
    async def root():
        return {"status": "ok", "service": "TerrainPick API",
                "model_loaded": app.state.scene is not None}

    return app


app = create_app()
