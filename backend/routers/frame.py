import asyncio
import io
import logging

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import Response

from backend.models import CameraRequest, CameraResponse, PickResponse
from terrainpick.models import PickResult
from terrainpick.picking import format_pick_message

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["frame"])


def _scene(request: Request):
    scene = request.app.state.scene
    if scene is None:
        raise HTTPException(status_code=404, detail="No terrain model loaded")
    return scene


@router.get("/frame.png")
async def get_frame(request: Request):
    """The current broad-pass image as PNG."""
    scene = _scene(request)
    image = await asyncio.to_thread(scene.image)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return Response(content=buffer.getvalue(), media_type="image/png")


@router.get("/pick", response_model=PickResponse)
async def pick_pixel(request: Request, x: int = Query(...), y: int = Query(...)):
    """Resolve one pixel through the shared picking worker."""
    _scene(request)
    outcome = await request.app.state.hub.pick(x, y)
    response = PickResponse(pixelX=x, pixelY=y,
                            selected=isinstance(outcome, PickResult),
                            message=format_pick_message(x, y, outcome))
    if isinstance(outcome, PickResult):
        geo = outcome.interpolated_geo
        response.triangle_id = outcome.triangle_id
        response.weights = list(outcome.barycentric_weights)
        response.latitude = geo.latitude
        response.longitude = geo.longitude
        response.elevation = geo.elevation
    return response


@router.put("/camera", response_model=CameraResponse)
async def put_camera(request: Request, camera: CameraRequest):
    """Move the camera and re-render."""
    scene = _scene(request)
    pose = scene.camera_at(camera.latitude, camera.longitude, height=camera.height,
                           yaw=camera.yaw, pitch=camera.pitch, fov_y=camera.fov_y)
    frame = await asyncio.to_thread(scene.set_camera, pose)
    return CameraResponse(position=list(pose.position), yaw=pose.yaw,
                          pitch=pose.pitch, render_seconds=frame.render_seconds)
