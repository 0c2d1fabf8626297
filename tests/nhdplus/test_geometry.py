# tests/nhdplus/test_geometry.py
import pyproj
import pytest
import shapely

from common.nhdplus.geometry import line_parts

WGS84 = pyproj.CRS.from_epsg(4326)
UTM_10N = pyproj.CRS.from_epsg(32610)


def test_geographic_distance_is_in_meters(engine):
    point = shapely.Point(-122.3813, 42.09359)
    line = shapely.LineString([(-122.3810, 42.0950), (-122.3810, 42.0920)])

    distance = engine.distance(point, line, WGS84)

    # 0.0003 degrees of longitude at ~42.1 N.
    assert distance == pytest.approx(24.8, abs=0.5)


def test_distance_is_to_nearest_point_on_line_not_vertex(engine):
    point = shapely.Point(-122.3813, 42.0935)
    # Vertices are ~170 m away; the segment passes ~25 m from the point.
    line = shapely.LineString([(-122.3810, 42.0950), (-122.3810, 42.0920)])

    assert engine.distance(point, line, WGS84) < 30


def test_point_on_line_has_zero_distance(engine):
    line = shapely.LineString([(500000, 4600000), (500100, 4600000)])
    assert engine.distance(shapely.Point(500050, 4600000), line, UTM_10N) == 0.0


def test_projected_crs_projection(engine):
    line = shapely.LineString([(500000, 4600000), (500100, 4600000)])
    point = shapely.Point(500025, 4600010)

    assert engine.distance(point, line, UTM_10N) == pytest.approx(10.0)

    projected = engine.project(point, line, UTM_10N)
    assert projected.snapped_point.equals(shapely.Point(500025, 4600000))
    assert projected.distance_along_m == pytest.approx(25.0)
    assert projected.line_length_m == pytest.approx(100.0)
    assert projected.fraction_along == pytest.approx(0.25)


def test_geographic_projection_fraction_along(engine):
    point = shapely.Point(-122.3813, 42.09359)
    line = shapely.LineString([(-122.3810, 42.0950), (-122.3810, 42.0920)])

    projected = engine.project(point, line, WGS84)

    assert projected.snapped_point.x == pytest.approx(-122.3810, abs=1e-7)
    assert projected.snapped_point.y == pytest.approx(42.09359, abs=1e-5)
    assert projected.line_length_m == pytest.approx(333.1, abs=1.0)
    assert projected.fraction_along == pytest.approx(0.47, abs=0.005)


def test_projection_beyond_line_end_clamps_to_endpoint(engine):
    point = shapely.Point(-122.3810, 42.0900)
    line = shapely.LineString([(-122.3810, 42.0950), (-122.3810, 42.0920)])

    projected = engine.project(point, line, WGS84)

    assert projected.fraction_along == pytest.approx(1.0)
    assert projected.snapped_point.y == pytest.approx(42.0920, abs=1e-7)


def test_line_parts_keeps_parts_in_order():
    multi = shapely.MultiLineString([[(0, 0), (1, 0)], [(5, 0), (6, 0)]])

    parts = line_parts(multi)

    assert [list(p.coords) for p in parts] == [[(0, 0), (1, 0)], [(5, 0), (6, 0)]]


def test_line_parts_rejects_points():
    with pytest.raises(TypeError):
        line_parts(shapely.Point(0, 0))


def test_planar_multipart_gap_adds_no_length(engine):
    multi = shapely.MultiLineString(
        [[(500000, 4600000), (500100, 4600000)], [(500300, 4600000), (500400, 4600000)]]
    )
    # Nearest to the gap between the parts, a little closer to the second one.
    point = shapely.Point(500210, 4600050)

    projected = engine.project(point, multi, UTM_10N)

    assert projected.snapped_point.equals(shapely.Point(500300, 4600000))
    assert projected.line_length_m == pytest.approx(200.0)
    assert projected.distance_along_m == pytest.approx(100.0)


def test_geographic_multipart_snaps_onto_a_real_part(engine):
    multi = shapely.MultiLineString(
        [
            [(-122.381, 42.095), (-122.381, 42.094)],
            [(-122.379, 42.094), (-122.379, 42.093)],
        ]
    )
    # Slightly closer to the end of the first part than to the start of the second.
    point = shapely.Point(-122.3801, 42.094)

    projected = engine.project(point, multi, WGS84)

    # The snapped point lies on the flowline itself, not in the gap.
    assert engine.distance(projected.snapped_point, multi, WGS84) < 0.01
    assert projected.snapped_point.x == pytest.approx(-122.381, abs=1e-7)
    assert projected.snapped_point.y == pytest.approx(42.094, abs=1e-7)
    # End of the first part: half of the two equal-length parts.
    assert projected.line_length_m == pytest.approx(222.1, abs=1.0)
    assert projected.fraction_along == pytest.approx(0.5, abs=1e-4)
