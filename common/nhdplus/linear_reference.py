# common/nhdplus/linear_reference.py
"""
Linear referencing of a snapped point on an NHDPlus flowline.

NHDPlus measures are percent-along-reach: 0 at the downstream end of the
reach and 100 at the upstream end. A flowline covers the sub-range
[FROMMEAS, TOMEAS] of its reach. Flowlines are digitized in the direction of
flow, so the first vertex sits at TOMEAS and the last at FROMMEAS:

    measure = TOMEAS - (TOMEAS - FROMMEAS) * (distance_along / line_length)

The measure is reported in the units the flowline declares. It is never
clamped: a value outside [FROMMEAS, TOMEAS] signals a degenerate geometry.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any

import pyproj
import shapely

from .crs import reproject_geometry
from .exceptions import DegenerateGeometryError
from .geometry import WGS84, GeometryEngine
from .schema import FROM_MEASURE_FIELD, REACH_ID_FIELD, TO_MEASURE_FIELD
from .selection import SelectedMatch

logger = logging.getLogger(__name__)

MEASURE_TOLERANCE = 1e-9
NHDPLUS_MEASURE_RANGE = (0.0, 100.0)


@dataclass(frozen=True)
class LinearReference:
    """
    Attributes:
        measure: Position of the snap point in the flowline's measure units.
        snap_latitude: Latitude of the snap point (EPSG:4326).
        snap_longitude: Longitude of the snap point (EPSG:4326).
    """

    measure: float
    snap_latitude: float
    snap_longitude: float


def _get_attribute(attributes: dict, name: str) -> Any:
    for key, value in attributes.items():
        if str(key).upper() == name:
            return value
    return None


def get_measure_range(attributes: dict) -> tuple[float, float]:
    """
    Returns (from_measure, to_measure) declared by a flowline.

    Raises:
        DegenerateGeometryError: If either bound is missing or outside [0, 100].
    """
    reach_id = _get_attribute(attributes, REACH_ID_FIELD)
    bounds = []
    for field_name in (FROM_MEASURE_FIELD, TO_MEASURE_FIELD):
        raw = _get_attribute(attributes, field_name)
        try:
            value = float(raw)
        except (TypeError, ValueError):
            value = math.nan
        if math.isnan(value):
            raise DegenerateGeometryError(
                f"Flowline {reach_id} has no usable {field_name} ({raw!r}).",
                reach_id=reach_id,
            )
        bounds.append(value)

    from_meas, to_meas = bounds
    lo, hi = NHDPLUS_MEASURE_RANGE
    if not (lo <= from_meas <= hi and lo <= to_meas <= hi):
        raise DegenerateGeometryError(
            f"Flowline {reach_id} declares measure range [{from_meas}, {to_meas}] "
            f"outside [{lo}, {hi}].",
            reach_id=reach_id,
        )
    return from_meas, to_meas


def interpolate_measure(
    from_meas: float, to_meas: float, fraction_along: float
) -> float:
    """Measure at `fraction_along` (0 = first vertex, 1 = last vertex)."""
    return to_meas - (to_meas - from_meas) * fraction_along


def measure_flowline(
    match: SelectedMatch,
    point: shapely.Point,
    crs: pyproj.CRS,
    engine: GeometryEngine,
) -> LinearReference:
    """
    Snaps `point` onto the matched flowline and computes its measure.

    Args:
        match: The selected flowline.
        point: The input point, in `crs`.
        crs: CRS shared by `point` and the flowline geometry.
        engine: Supplies the projection primitive.

    Raises:
        DegenerateGeometryError: For a zero-length flowline, a missing measure
            range, or a measure outside the declared range.
    """
    attributes = match.flowline.attributes
    reach_id = _get_attribute(attributes, REACH_ID_FIELD)
    from_meas, to_meas = get_measure_range(attributes)

    projected = engine.project(point, match.flowline.geometry, crs)

    if not projected.line_length_m > 0:
        raise DegenerateGeometryError(
            f"Flowline {reach_id} has zero length.", reach_id=reach_id
        )

    measure = interpolate_measure(from_meas, to_meas, projected.fraction_along)

    lo, hi = min(from_meas, to_meas), max(from_meas, to_meas)
    if not (lo - MEASURE_TOLERANCE <= measure <= hi + MEASURE_TOLERANCE):
        raise DegenerateGeometryError(
            f"Computed measure {measure} for flowline {reach_id} is outside "
            f"its declared range [{lo}, {hi}].",
            reach_id=reach_id,
        )

    snapped_ll = reproject_geometry(projected.snapped_point, crs, WGS84)

    logger.debug(
        f"Snapped to {reach_id} at measure {measure:.4f} "
        f"({projected.distance_along_m:.2f} of {projected.line_length_m:.2f} m)"
    )

    return LinearReference(
        measure=float(measure),
        snap_latitude=float(snapped_ll.y),
        snap_longitude=float(snapped_ll.x),
    )
