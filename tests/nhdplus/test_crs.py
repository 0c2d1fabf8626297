# tests/nhdplus/test_crs.py
import math

import pyproj
import pytest
import shapely

from common.nhdplus.crs import (
    get_laea_crs_for_point,
    harmonize_point,
    make_input_point,
    reproject_geometry,
    resolve_crs,
)
from common.nhdplus.exceptions import InvalidCRSError


@pytest.mark.parametrize("crs", [4326, 4326.0, "EPSG:4326", "epsg:4326"])
def test_resolve_crs_accepts_common_forms(crs):
    assert resolve_crs(crs).to_epsg() == 4326


def test_resolve_crs_passes_crs_objects_through():
    crs = pyproj.CRS.from_epsg(4269)
    assert resolve_crs(crs) is crs


@pytest.mark.parametrize("crs", [None, math.nan, "not-a-crs", "EPSG:999999"])
def test_resolve_crs_rejects_invalid(crs):
    with pytest.raises(InvalidCRSError):
        resolve_crs(crs)


def test_make_input_point_is_immutable():
    point = make_input_point("-122.3813", 42.09359, 4326)
    assert point.x == pytest.approx(-122.3813)
    with pytest.raises(AttributeError):
        point.x = 0.0


def test_harmonize_point_reprojects_web_mercator():
    transformer = pyproj.Transformer.from_crs(4326, 3857, always_xy=True)
    mx, my = transformer.transform(-122.3813, 42.09359)
    point = make_input_point(mx, my, 3857)

    harmonized = harmonize_point(point, "EPSG:4326")

    assert harmonized.x == pytest.approx(-122.3813, abs=1e-7)
    assert harmonized.y == pytest.approx(42.09359, abs=1e-7)
    # The derived copy is reprojected, the input point is untouched.
    assert point.x == mx and point.y == my


def test_harmonize_point_same_crs_is_identity():
    point = make_input_point(-122.3813, 42.09359, 4326)
    harmonized = harmonize_point(point, 4326)
    assert harmonized.equals(point.geometry)


def test_reproject_geometry_rejects_invalid_target():
    point = make_input_point(-122.3813, 42.09359, 4326)
    with pytest.raises(InvalidCRSError):
        harmonize_point(point, "bogus")


def test_laea_crs_is_centered_on_point():
    laea = get_laea_crs_for_point(-122.3813, 42.09359)
    center = reproject_geometry(
        shapely.Point(-122.3813, 42.09359), pyproj.CRS.from_epsg(4326), laea
    )
    assert center.x == pytest.approx(0.0, abs=1e-6)
    assert center.y == pytest.approx(0.0, abs=1e-6)


LOCAL_CS_WKT = (
    'LOCAL_CS["arbitrary",LOCAL_DATUM["arbitrary",0],UNIT["metre",1],'
    'AXIS["X",EAST],AXIS["Y",NORTH]]'
)


def test_untransformable_crs_raises_invalid_crs():
    point = shapely.Point(10.0, 20.0)
    with pytest.raises(InvalidCRSError):
        reproject_geometry(point, resolve_crs(LOCAL_CS_WKT), pyproj.CRS.from_epsg(4326))


def test_vertical_crs_point_is_rejected():
    # EPSG:5703 parses but has no horizontal axes.
    point = make_input_point(-122.3813, 42.09359, 5703)
    with pytest.raises(InvalidCRSError):
        harmonize_point(point, "EPSG:4326")


def test_laea_crs_rejects_out_of_range_center():
    with pytest.raises(InvalidCRSError):
        get_laea_crs_for_point(42.09359, -122.3813)
