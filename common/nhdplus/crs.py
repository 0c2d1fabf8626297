# common/nhdplus/crs.py
"""
Coordinate harmonization for input points.

Input rows may each declare a different CRS. Points are parsed into an
immutable `InputPoint` and reprojected into whatever CRS the candidate
flowlines arrive in before any distance is computed. The caller's row data is
never touched; all work happens on derived shapely geometries.
"""

import logging
import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import pyproj
import shapely
from pyproj.exceptions import CRSError, ProjError

from .exceptions import InvalidCRSError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InputPoint:
    """
    One input location.

    Attributes:
        x: Easting or longitude, in `crs` units.
        y: Northing or latitude, in `crs` units.
        crs: The point's coordinate reference system.
    """

    x: float
    y: float
    crs: pyproj.CRS

    @property
    def geometry(self) -> shapely.Point:
        return shapely.Point(self.x, self.y)

    @property
    def is_finite(self) -> bool:
        return math.isfinite(self.x) and math.isfinite(self.y)


def resolve_crs(crs: Any) -> pyproj.CRS:
    """
    Parses a CRS identifier in any form pyproj accepts (EPSG integer,
    "EPSG:4326", WKT, PROJ string, pyproj.CRS).

    Integral floats are accepted, since EPSG codes read from a table with
    missing values come back as floats (e.g. 4326.0).

    Raises:
        InvalidCRSError: If the identifier is missing or cannot be parsed.
    """
    if isinstance(crs, pyproj.CRS):
        return crs

    if crs is None or (isinstance(crs, float) and not math.isfinite(crs)):
        raise InvalidCRSError("CRS identifier is missing.", crs=crs)

    if isinstance(crs, float) and crs.is_integer():
        crs = int(crs)

    try:
        return _cached_crs(crs)
    except (CRSError, TypeError, ValueError) as e:
        raise InvalidCRSError(f"Unsupported CRS identifier {crs!r}: {e}", crs=crs) from e


@lru_cache(maxsize=128)
def _cached_crs(crs: Any) -> pyproj.CRS:
    return pyproj.CRS.from_user_input(crs)


@lru_cache(maxsize=128)
def _cached_transformer(src: pyproj.CRS, dst: pyproj.CRS) -> pyproj.Transformer:
    return pyproj.Transformer.from_crs(src, dst, always_xy=True)


def make_input_point(x: Any, y: Any, crs: Any) -> InputPoint:
    """
    Builds an `InputPoint` from raw row values.

    Raises:
        InvalidCRSError: If `crs` cannot be resolved.
        ValueError: If `x` or `y` is not a number.
    """
    resolved = resolve_crs(crs)
    return InputPoint(x=float(x), y=float(y), crs=resolved)


def reproject_geometry(
    geometry: shapely.Geometry,
    src_crs: pyproj.CRS,
    dst_crs: pyproj.CRS,
) -> shapely.Geometry:
    """
    Returns a copy of `geometry` reprojected from `src_crs` to `dst_crs`.

    Raises:
        InvalidCRSError: If the transformation fails or yields non-finite coordinates.
    """
    if src_crs == dst_crs:
        return geometry

    try:
        transformer = _cached_transformer(src_crs, dst_crs)
        reprojected = shapely.transform(
            geometry, lambda coords: _transform_coords(transformer, coords)
        )
    except (CRSError, ProjError) as e:
        raise InvalidCRSError(
            f"Could not reproject from {src_crs.to_string()} to {dst_crs.to_string()}: {e}",
            crs=src_crs,
        ) from e

    if not reprojected.is_empty and not all(
        math.isfinite(c) for c in shapely.get_coordinates(reprojected).ravel()
    ):
        raise InvalidCRSError(
            f"Reprojection from {src_crs.to_string()} to {dst_crs.to_string()} "
            "produced non-finite coordinates.",
            crs=src_crs,
        )

    return reprojected


def _transform_coords(transformer: pyproj.Transformer, coords):
    xs, ys = transformer.transform(coords[:, 0], coords[:, 1], errcheck=True)
    coords = coords.copy()
    coords[:, 0] = xs
    coords[:, 1] = ys
    return coords


def harmonize_point(point: InputPoint, target_crs: Any) -> shapely.Point:
    """
    Reprojects an input point into `target_crs` (typically the CRS of the
    candidate flowlines returned by the feature service).

    Raises:
        InvalidCRSError: If `target_crs` is invalid or the reprojection fails,
            or lands outside longitude/latitude bounds.
    """
    dst_crs = resolve_crs(target_crs)
    logger.debug(
        f"Harmonizing point ({point.x}, {point.y}) from {point.crs.to_string()} "
        f"to {dst_crs.to_string()}"
    )
    harmonized = reproject_geometry(point.geometry, point.crs, dst_crs)

    # A CRS without horizontal axes (e.g. vertical-only) can "reproject" with
    # swapped or meaningless axes.
    if dst_crs.is_geographic and (abs(harmonized.x) > 180 or abs(harmonized.y) > 90):
        raise InvalidCRSError(
            f"Point ({point.x}, {point.y}) in {point.crs.to_string()} reprojects "
            f"outside geographic bounds: ({harmonized.x}, {harmonized.y}).",
            crs=point.crs,
        )

    return harmonized


def get_laea_crs_for_point(lon: float, lat: float) -> pyproj.CRS:
    """
    Lambert Azimuthal Equal Area projection centered on (lon, lat).

    Distances measured from the projection center are close to true geodesic
    distances over the few-kilometer extents of a proximity search.
    """
    laea_proj = (
        f"+proj=laea +lat_0={lat} +lon_0={lon} +datum=WGS84 +units=m +no_defs"
    )
    try:
        return pyproj.CRS.from_proj4(laea_proj)
    except CRSError as e:
        raise InvalidCRSError(f"Cannot center a projection on ({lon}, {lat}): {e}") from e
