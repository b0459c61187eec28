"""Tests for pixel -> triangle -> geodetic resolution."""
import numpy as np
import pytest

from terrainpick.constants import NOT_SELECTED_MESSAGE
from terrainpick.models import GeoSample, NoPrimitiveAtPixel, PickResult
from terrainpick.picking import PickResolver, format_pick_message
from terrainpick.raster import CandidateIndex, Frame


class TestPickResolver:
    def test_uncovered_pixel(self, top_down_scene):
        resolver = PickResolver(top_down_scene.frame)
        outcome = resolver.pick(0, 0)
        assert isinstance(outcome, NoPrimitiveAtPixel)
        assert outcome.pixel == (0, 0)

    @pytest.mark.parametrize("x,y", [(-1, 0), (0, -1), (64, 10), (10, 48)])
    def test_out_of_bounds(self, top_down_scene, x, y):
        outcome = PickResolver(top_down_scene.frame).pick(x, y)
        assert isinstance(outcome, NoPrimitiveAtPixel)

    def test_candidates_deduplicated(self, top_down_scene):
        frame = top_down_scene.frame
        key = np.array([24 * frame.width + 32])
        duplicated = Frame(projected=frame.projected, buffer=frame.buffer,
                           candidates=CandidateIndex.from_chunks(
                               frame.width, frame.height, [(3, key), (1, key), (3, key)]))
        assert PickResolver(duplicated).candidates(32, 24) == [3, 1]

    def test_candidates_that_do_not_cover(self, top_down_scene):
        frame = top_down_scene.frame
        key = np.array([10 * frame.width + 40])
        # Triangle 0 lies in the south-west cell, nowhere near this pixel
        stale = Frame(projected=frame.projected, buffer=frame.buffer,
                      candidates=CandidateIndex.from_chunks(
                          frame.width, frame.height, [(0, key)]))
        outcome = PickResolver(stale).pick(40, 10)
        assert isinstance(outcome, NoPrimitiveAtPixel)
        assert outcome.reason == "no triangle covers the pixel"

    def test_repeated_picks_identical(self, top_down_scene):
        resolver = PickResolver(top_down_scene.frame)
        first = resolver.pick(30, 20)
        for _ in range(3):
            assert resolver.pick(30, 20) == first

    def test_geo_inside_triangle(self, top_down_scene):
        frame = top_down_scene.frame
        hit = PickResolver(frame).pick(40, 10)
        assert isinstance(hit, PickResult)
        corners = frame.mesh.provenance(hit.triangle_id)
        lats = [s.latitude for s in corners]
        lngs = [s.longitude for s in corners]
        assert min(lats) <= hit.interpolated_geo.latitude <= max(lats)
        assert min(lngs) <= hit.interpolated_geo.longitude <= max(lngs)


class TestFormatPickMessage:
    def test_selected(self):
        hit = PickResult(triangle_id=3, barycentric_weights=(0.2, 0.3, 0.5),
                         interpolated_geo=GeoSample(43.4514, -80.4959, 331.25),
                         pixel=(12, 34))
        assert format_pick_message(12, 34, hit) == (
            "Raster: X: 12  Y: 34 <===> GCS: Latitude: 43.4514000  "
            "Longitude: -80.4959000  Elevation: 331.2500000")

    def test_not_selected(self):
        assert format_pick_message(1, 2, NoPrimitiveAtPixel((1, 2))) == NOT_SELECTED_MESSAGE
        assert NOT_SELECTED_MESSAGE == "picking: primitive not selected."
