"""Resolve a screen pixel back to a triangle and a geodetic position."""

import logging
from typing import List, Union

from .constants import NOT_SELECTED_MESSAGE
from .models import NoPrimitiveAtPixel, PickResult
from .raster import Frame, narrow_pass

logger = logging.getLogger(__name__)

PickOutcome = Union[PickResult, NoPrimitiveAtPixel]


class PickResolver:
    """Picks against one broad-pass :class:`Frame`.

    The frame is only read, so repeated picks on an unchanged frame give
    identical results.
    """

    def __init__(self, frame: Frame):
        self.frame = frame

    def candidates(self, x: int, y: int) -> List[int]:
        """Broad-pass triangle ids at (*x*, *y*), deduplicated, first seen first."""
        return list(dict.fromkeys(self.frame.candidates.at(x, y)))

    def pick(self, x: int, y: int) -> PickOutcome:
        if not (0 <= x < self.frame.width and 0 <= y < self.frame.height):
            return NoPrimitiveAtPixel((x, y), "pixel outside the image")

        triangle_ids = self.candidates(x, y)
        if not triangle_ids:
            return NoPrimitiveAtPixel((x, y), "no candidate triangles")

        hit = narrow_pass(self.frame.projected, x, y, triangle_ids)
        if hit is None:
            logger.debug(f"Pixel ({x}, {y}): {len(triangle_ids)} candidates, none covering")
            return NoPrimitiveAtPixel((x, y), "no triangle covers the pixel")

        geo = hit.interpolated_geo
        logger.info(f"Picked triangle {hit.triangle_id} at ({x}, {y}) -> "
                    f"lat={geo.latitude:.7f}, lng={geo.longitude:.7f}, "
                    f"elev={geo.elevation:.2f}")
        return hit


def format_pick_message(x: int, y: int, outcome: PickOutcome) -> str:
    """Human-readable result line sent to query clients."""
    if not isinstance(outcome, PickResult):
        return NOT_SELECTED_MESSAGE
    geo = outcome.interpolated_geo
    return (f"Raster: X: {x}  Y: {y} <===> GCS: "
            f"Latitude: {geo.latitude:.7f}  "
            f"Longitude: {geo.longitude:.7f}  "
            f"Elevation: {geo.elevation:.7f}")
