# common/nhdplus/records.py
"""
Builds output records for matched and unmatched points.

Both builders start from `schema.FALLBACK_TEMPLATE`, so a matched record and
a fallback record always carry the same keys, and their values always have
the dtype `schema.OUTPUT_DTYPES` declares for that key.
"""

import logging
from typing import Any, Dict, List, Optional

import shapely

from .exceptions import AttributeCoercionError
from .linear_reference import LinearReference
from .schema import (
    FALLBACK_TEMPLATE,
    GEOMETRY_COLUMN,
    SnapStatus,
    coerce_field_value,
    lookup_flowline_field,
)
from .selection import SelectedMatch

logger = logging.getLogger(__name__)


def build_fallback_record(
    point_geometry: Optional[shapely.Point],
    status: str,
    message: str,
) -> Dict[str, Any]:
    """
    All-missing record for a point that could not be matched.

    Args:
        point_geometry: The input point in EPSG:4326, or None when the point
            could not be reprojected.
        status: A `SnapStatus` code.
        message: Diagnostic message for the row.
    """
    record = dict(FALLBACK_TEMPLATE)
    record[GEOMETRY_COLUMN] = point_geometry
    record["snap_status"] = status
    record["snap_message"] = message
    return record


def coerce_flowline_attributes(
    attributes: Dict[str, Any],
) -> tuple[Dict[str, Any], List[AttributeCoercionError]]:
    """
    Maps raw service attributes onto the flowline template fields.

    Attribute names are matched case-insensitively. Attributes without a
    template field are dropped. A value that fails numeric coercion is set
    missing and its error is returned, so one bad attribute never discards
    the match.
    """
    coerced: Dict[str, Any] = {}
    errors: List[AttributeCoercionError] = []
    dropped = []

    for name, value in attributes.items():
        field = lookup_flowline_field(name)
        if field is None:
            dropped.append(name)
            continue
        try:
            coerced[field.name] = coerce_field_value(field, value)
        except AttributeCoercionError as e:
            errors.append(e)

    if dropped:
        logger.debug(f"Dropped flowline attributes not in output schema: {dropped}")

    return coerced, errors


def build_matched_record(
    point_geometry: shapely.Point,
    match: SelectedMatch,
    linear_reference: LinearReference,
) -> Dict[str, Any]:
    """
    Record for a point matched to a flowline.

    Args:
        point_geometry: The input point in EPSG:4326.
        match: The selected flowline and snap distance.
        linear_reference: Measure and snap coordinates.
    """
    record = dict(FALLBACK_TEMPLATE)

    attributes, coercion_errors = coerce_flowline_attributes(match.flowline.attributes)
    record.update(attributes)

    record[GEOMETRY_COLUMN] = point_geometry
    record["measure"] = linear_reference.measure
    record["snap_latitude"] = linear_reference.snap_latitude
    record["snap_longitude"] = linear_reference.snap_longitude
    record["snap_distance"] = float(match.snap_distance_m)

    if coercion_errors:
        record["snap_status"] = SnapStatus.MATCHED_WITH_WARNINGS
        record["snap_message"] = "; ".join(str(e) for e in coercion_errors)
    else:
        record["snap_status"] = SnapStatus.MATCHED

    return record
