# tests/conftest.py
import pyproj
import pytest
import shapely
from shapely.geometry import shape

from common.nhdplus.crs import harmonize_point
from common.nhdplus.feature_service import parse_flowlines_geojson
from common.nhdplus.geometry import GeodesicGeometryEngine

# Klamath River area, southern Oregon.
SITE = (-122.3813, 42.09359)

# Open water in the Pacific, far from any flowline.
OPEN_WATER = (-130.0, 40.0)


def _flowline_feature(coords, **properties):
    """A GeoJSON feature as the NHDPlus HR service returns it (3D coords)."""
    attributes = {
        "OBJECTID": 1,
        "REACHCODE": "18010206000123",
        "GNIS_NAME": "Klamath River",
        "FROMMEAS": 0.0,
        "TOMEAS": 100.0,
        "HWTYPE": "0",
        "HWNODESQKM": "12.5",
        "STREAMORDE": 3,
        "LENGTHKM": 0.33,
        "NHDPLUSID": 55000900012345.0,
    }
    attributes.update(properties)
    return {
        "type": "Feature",
        "geometry": {
            "type": "LineString",
            "coordinates": [[x, y, 0.0] for x, y in coords],
        },
        "properties": attributes,
    }


def _feature_collection(*features):
    return {"type": "FeatureCollection", "features": list(features)}


class FakeFlowlineService:
    """
    Stands in for the feature service: answers with the configured features
    that lie within the search distance, in configured order.
    """

    def __init__(self, features):
        self.features = list(features)
        self.engine = GeodesicGeometryEngine()
        self.calls = []

    def query(self, point, search_dist):
        self.calls.append((point.x, point.y, point.crs.to_epsg(), search_dist))
        point_ll = harmonize_point(point, "EPSG:4326")
        wgs84 = pyproj.CRS.from_epsg(4326)
        in_range = [
            f
            for f in self.features
            if self.engine.distance(
                point_ll, shapely.force_2d(shape(f["geometry"])), wgs84
            )
            <= search_dist
        ]
        return parse_flowlines_geojson(
            _feature_collection(*in_range), request_url="fake://nhdplus/query"
        )


@pytest.fixture
def site():
    return SITE


@pytest.fixture
def open_water():
    return OPEN_WATER


@pytest.fixture
def flowline_feature():
    return _flowline_feature


@pytest.fixture
def feature_collection():
    return _feature_collection


@pytest.fixture
def near_flowline():
    # North-to-south flowline ~25 m east of the site, digitized upstream to downstream.
    return _flowline_feature(
        [(-122.3810, 42.0950), (-122.3810, 42.0920)],
        OBJECTID=101,
        REACHCODE="18010206000101",
    )


@pytest.fixture
def far_flowline():
    # Parallel flowline ~250 m east of the site.
    return _flowline_feature(
        [(-122.3783, 42.0950), (-122.3783, 42.0920)],
        OBJECTID=202,
        REACHCODE="18010206000202",
    )


@pytest.fixture
def make_service():
    return FakeFlowlineService


@pytest.fixture
def flowline_service(near_flowline, far_flowline):
    return FakeFlowlineService([near_flowline, far_flowline])


@pytest.fixture
def engine():
    return GeodesicGeometryEngine()
