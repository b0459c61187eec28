from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from terrainpick.constants import FOV_Y


class PixelQuery(BaseModel):
    """Incoming websocket query: ``{"pixelX": int, "pixelY": int}``."""
    model_config = ConfigDict(populate_by_name=True)

    x: int = Field(alias="pixelX")
    y: int = Field(alias="pixelY")


class PickMessage(BaseModel):
    """Outgoing websocket message."""
    messageprocessed: str


class PickResponse(BaseModel):
    pixelX: int
    pixelY: int
    selected: bool
    message: str
    triangle_id: Optional[int] = None
    weights: Optional[List[float]] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    elevation: Optional[float] = None


class CameraRequest(BaseModel):
    latitude: float
    longitude: float
    height: float = 0.0                 # metres above the lowest sample
    yaw: float = 0.0                    # 0 looks east, 90 north
    pitch: float = Field(-30.0, ge=-90.0, le=90.0)
    fov_y: float = Field(FOV_Y, gt=0.0, lt=180.0)


class CameraResponse(BaseModel):
    position: List[float]
    yaw: float
    pitch: float
    render_seconds: float
