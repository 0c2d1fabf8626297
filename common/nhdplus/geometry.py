# common/nhdplus/geometry.py
"""
Geometry capabilities used by flowline selection and linear referencing.

Selection and measurement never call shapely/pyproj directly; they receive a
`GeometryEngine`, so synthetic engines can stand in for tests. The default
`GeodesicGeometryEngine` works in meters:

    - geographic CRS: geometries are projected into a Lambert Azimuthal Equal
      Area CRS centered on the input point for point-to-line distance and
      snapping; lengths along the line are geodesic (WGS84 ellipsoid).
    - projected CRS: planar shapely operations, scaled to meters by the CRS's
      linear unit.
"""

import logging
from dataclasses import dataclass
from typing import List, Protocol

import pyproj
import shapely
from shapely.ops import substring

from .crs import get_laea_crs_for_point, reproject_geometry

logger = logging.getLogger(__name__)

WGS84 = pyproj.CRS.from_epsg(4326)


@dataclass(frozen=True)
class ProjectedPoint:
    """
    Result of projecting a point orthogonally onto a line.

    Attributes:
        snapped_point: The nearest point on the line, in the line's CRS.
        distance_along_m: Length along the line from its first vertex to
            `snapped_point`, in meters.
        line_length_m: Total length of the line in meters.
    """

    snapped_point: shapely.Point
    distance_along_m: float
    line_length_m: float

    @property
    def fraction_along(self) -> float:
        return self.distance_along_m / self.line_length_m


class GeometryEngine(Protocol):
    def distance(
        self, point: shapely.Point, line: shapely.Geometry, crs: pyproj.CRS
    ) -> float:
        """Distance in meters from `point` to the nearest point of `line`."""
        ...

    def project(
        self, point: shapely.Point, line: shapely.Geometry, crs: pyproj.CRS
    ) -> ProjectedPoint:
        """Projects `point` onto `line` and locates it along the line."""
        ...


def line_parts(
    geometry: shapely.MultiLineString | shapely.LineString,
) -> List[shapely.LineString]:
    """
    Splits a LineString or MultiLineString into its parts, in order.

    Parts that did not merge stay separate; the gap between two parts is not
    part of the flowline and carries no length.

    Raises:
        TypeError: If input geometry is not a LineString or MultiLineString.
    """
    if isinstance(geometry, shapely.LineString):
        return [geometry]
    elif isinstance(geometry, shapely.MultiLineString):
        return [part for part in geometry.geoms if not part.is_empty]
    else:
        raise TypeError("Input must be a shapely MultiLineString or LineString")


def _nearest_part_index(point: shapely.Point, parts: List[shapely.LineString]) -> int:
    # First part wins ties.
    distances = [shapely.distance(point, part) for part in parts]
    return distances.index(min(distances))


class GeodesicGeometryEngine:
    """Meter-based distance and projection for geographic or projected CRSs."""

    def __init__(self, ellps: str = "WGS84"):
        self.geod = pyproj.Geod(ellps=ellps)

    def distance(
        self, point: shapely.Point, line: shapely.Geometry, crs: pyproj.CRS
    ) -> float:
        if crs.is_geographic:
            laea_crs = get_laea_crs_for_point(point.x, point.y)
            point_m = reproject_geometry(point, crs, laea_crs)
            line_m = reproject_geometry(line, crs, laea_crs)
            return float(shapely.distance(point_m, line_m))

        return float(shapely.distance(point, line)) * _unit_factor(crs)

    def project(
        self, point: shapely.Point, line: shapely.Geometry, crs: pyproj.CRS
    ) -> ProjectedPoint:
        """
        Snaps `point` onto the nearest part of `line`. The distance along is
        the length of every earlier part plus the position within that part.
        """
        parts = line_parts(line)

        if not crs.is_geographic:
            factor = _unit_factor(crs)
            idx = _nearest_part_index(point, parts)
            part = parts[idx]
            within = shapely.line_locate_point(part, point)
            earlier = sum(p.length for p in parts[:idx])
            return ProjectedPoint(
                snapped_point=part.interpolate(within),
                distance_along_m=float(earlier + within) * factor,
                line_length_m=float(sum(p.length for p in parts)) * factor,
            )

        # Snap in a point-centered LAEA plane, then measure geodesically in lon/lat.
        laea_crs = get_laea_crs_for_point(point.x, point.y)
        point_m = reproject_geometry(point, crs, laea_crs)
        parts_m = [reproject_geometry(p, crs, laea_crs) for p in parts]
        idx = _nearest_part_index(point_m, parts_m)
        part, part_m = parts[idx], parts_m[idx]

        snapped_m = part_m.interpolate(shapely.line_locate_point(part_m, point_m))
        snapped = reproject_geometry(snapped_m, laea_crs, crs)

        part_lengths = [self.geod.geometry_length(p) for p in parts]
        within_deg = shapely.line_locate_point(part, snapped)
        if within_deg <= 0:
            within_m = 0.0
        elif within_deg >= part.length:
            within_m = part_lengths[idx]
        else:
            within_m = self.geod.geometry_length(substring(part, 0, within_deg))

        return ProjectedPoint(
            snapped_point=snapped,
            distance_along_m=float(sum(part_lengths[:idx]) + within_m),
            line_length_m=float(sum(part_lengths)),
        )


def _unit_factor(crs: pyproj.CRS) -> float:
    return crs.axis_info[0].unit_conversion_factor if crs.axis_info else 1.0
