# common/nhdplus/schema.py
"""
The single output-record schema shared by matched and fallback rows.

Every row produced by `common.nhdplus.records` is a dict keyed by exactly
`OUTPUT_COLUMNS`, and `apply_output_dtypes` pins the column dtypes, so a batch
of matched and unmatched rows always concatenates into one table with stable
column types.

Flowline attribute names follow the NHDPlus HR `NetworkNHDFlowline` layer
(flowline core attributes joined with the value-added attributes, VAA).
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Tuple

import pandas as pd

from .exceptions import AttributeCoercionError

# Column dtypes. Numeric columns use NaN for missing, everything else pd.NA.
FLOAT = "float64"
INT = "Int64"
TEXT = "string"

GEOMETRY_COLUMN = "geometry"

# Reach identifier and the attributes that carry the flowline's measure range.
REACH_ID_FIELD = "REACHCODE"
FROM_MEASURE_FIELD = "FROMMEAS"
TO_MEASURE_FIELD = "TOMEAS"


@dataclass(frozen=True)
class OutputField:
    name: str
    dtype: str
    description: str


class SnapStatus:
    """Per-row outcome codes written to the `snap_status` column."""

    MATCHED = "MATCHED"
    MATCHED_WITH_WARNINGS = "MATCHED_WITH_WARNINGS"
    NO_MATCH = "NO_MATCH"
    QUERY_FAILED = "QUERY_FAILED"
    INVALID_CRS = "INVALID_CRS"
    DEGENERATE_GEOMETRY = "DEGENERATE_GEOMETRY"


SNAP_FIELDS: Tuple[OutputField, ...] = (
    OutputField(
        "measure",
        FLOAT,
        "Linear-referenced position of the snap point on the matched reach, "
        "in the flowline's own measure units (NHDPlus: percent, 0 at the "
        "downstream end of the reach, 100 at the upstream end).",
    ),
    OutputField(
        "snap_latitude",
        FLOAT,
        "Latitude (EPSG:4326) of the point on the matched flowline nearest the input point.",
    ),
    OutputField(
        "snap_longitude",
        FLOAT,
        "Longitude (EPSG:4326) of the point on the matched flowline nearest the input point.",
    ),
    OutputField(
        "snap_distance",
        FLOAT,
        "Distance in meters from the input point to the matched flowline. "
        "Missing when no flowline was found within the search distance.",
    ),
    OutputField(
        "snap_status",
        TEXT,
        "Outcome code: MATCHED, MATCHED_WITH_WARNINGS, NO_MATCH, QUERY_FAILED, "
        "INVALID_CRS or DEGENERATE_GEOMETRY.",
    ),
    OutputField(
        "snap_message",
        TEXT,
        "Diagnostic message for any outcome other than MATCHED.",
    ),
)

FLOWLINE_FIELDS: Tuple[OutputField, ...] = (
    OutputField("OBJECTID", INT, "Feature-service object identifier."),
    OutputField("PERMANENT_IDENTIFIER", TEXT, "NHD permanent feature identifier."),
    OutputField("FDATE", INT, "Feature date, epoch milliseconds."),
    OutputField("RESOLUTION", INT, "Source resolution code."),
    OutputField("GNIS_ID", TEXT, "Geographic Names Information System identifier."),
    OutputField("GNIS_NAME", TEXT, "Geographic Names Information System name."),
    OutputField("LENGTHKM", FLOAT, "Flowline length in kilometers."),
    OutputField(REACH_ID_FIELD, TEXT, "14-digit reach code; unique reach identifier."),
    OutputField("FLOWDIR", INT, "Flow direction code."),
    OutputField(
        "WBAREA_PERMANENT_IDENTIFIER",
        TEXT,
        "Permanent identifier of the waterbody the flowline runs through.",
    ),
    OutputField("FTYPE", INT, "NHD feature type."),
    OutputField("FCODE", INT, "NHD feature code."),
    OutputField("MAINPATH", INT, "Main path flag."),
    OutputField("INNETWORK", INT, "In-network flag."),
    OutputField("VISIBILITYFILTER", INT, "Cartographic visibility filter."),
    OutputField("NHDPLUSID", FLOAT, "NHDPlus feature identifier."),
    OutputField("VPUID", TEXT, "Vector processing unit identifier."),
    OutputField("STREAMLEVE", INT, "Stream level."),
    OutputField("STREAMORDE", INT, "Modified Strahler stream order."),
    OutputField("STREAMCALC", INT, "Calculated stream order."),
    OutputField("FROMNODE", FLOAT, "Node identifier at the upstream end."),
    OutputField("TONODE", FLOAT, "Node identifier at the downstream end."),
    OutputField("HYDROSEQ", FLOAT, "Hydrologic sequence number."),
    OutputField("LEVELPATHI", FLOAT, "Level path identifier."),
    OutputField("PATHLENGTH", FLOAT, "Distance to the network terminal, km."),
    OutputField("TERMINALPA", FLOAT, "Terminal path identifier."),
    OutputField("ARBOLATESU", FLOAT, "Arbolate sum, km."),
    OutputField("DIVERGENCE", INT, "Divergence code."),
    OutputField("STARTFLAG", INT, "Headwater flag."),
    OutputField("TERMINALFL", INT, "Terminal flag."),
    OutputField("UPHYDROSEQ", FLOAT, "Upstream mainstem hydrologic sequence."),
    OutputField("DNHYDROSEQ", FLOAT, "Downstream mainstem hydrologic sequence."),
    OutputField(FROM_MEASURE_FIELD, FLOAT, "Measure at the downstream end of the flowline."),
    OutputField(TO_MEASURE_FIELD, FLOAT, "Measure at the upstream end of the flowline."),
    OutputField("AREASQKM", FLOAT, "Incremental catchment area, sq km."),
    OutputField("TOTDASQKM", FLOAT, "Total upstream drainage area, sq km."),
    OutputField("DIVDASQKM", FLOAT, "Divergence-routed drainage area, sq km."),
    OutputField("SLOPE", FLOAT, "Flowline slope."),
    OutputField("SLOPELENKM", FLOAT, "Length over which slope was computed, km."),
    OutputField("MAXELEVSMO", FLOAT, "Maximum smoothed elevation, cm."),
    OutputField("MINELEVSMO", FLOAT, "Minimum smoothed elevation, cm."),
    OutputField("HWTYPE", FLOAT, "Headwater node type."),
    OutputField("HWNODESQKM", FLOAT, "Headwater node drainage area, sq km."),
    OutputField("QAMA", FLOAT, "Mean annual flow, cfs."),
    OutputField("VAMA", FLOAT, "Mean annual velocity, fps."),
)

OUTPUT_FIELDS: Tuple[OutputField, ...] = SNAP_FIELDS + FLOWLINE_FIELDS

OUTPUT_COLUMNS: Tuple[str, ...] = (GEOMETRY_COLUMN,) + tuple(
    f.name for f in OUTPUT_FIELDS
)

FLOWLINE_FIELD_NAMES: Tuple[str, ...] = tuple(f.name for f in FLOWLINE_FIELDS)

OUTPUT_DTYPES: Dict[str, str] = {f.name: f.dtype for f in OUTPUT_FIELDS}

_FLOWLINE_FIELDS_BY_UPPER_NAME: Dict[str, OutputField] = {
    f.name.upper(): f for f in FLOWLINE_FIELDS
}


def missing_value(dtype: str) -> Any:
    return math.nan if dtype == FLOAT else pd.NA


# Precomputed all-missing record. Fallback rows are copies of this, so their
# key set can never drift from the matched-row key set.
FALLBACK_TEMPLATE: Dict[str, Any] = {GEOMETRY_COLUMN: None}
FALLBACK_TEMPLATE.update({f.name: missing_value(f.dtype) for f in OUTPUT_FIELDS})


def lookup_flowline_field(attribute_name: str) -> OutputField | None:
    """Case-insensitive lookup of a feature-service attribute in the flowline template."""
    return _FLOWLINE_FIELDS_BY_UPPER_NAME.get(str(attribute_name).upper())


def _is_missing(value: Any) -> bool:
    if value is None or value is pd.NA:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def coerce_field_value(field: OutputField, value: Any) -> Any:
    """
    Coerces one raw feature-service attribute to its template dtype.

    Some NHDPlus HR attributes (HWTYPE, HWNODESQKM among them) arrive as text
    on the wire; numeric template fields are parsed from text here.

    Raises:
        AttributeCoercionError: If a numeric field holds a non-numeric value.
    """
    if _is_missing(value):
        return missing_value(field.dtype)

    if field.dtype == TEXT:
        return str(value)

    if isinstance(value, bool):
        raise AttributeCoercionError(
            f"Field {field.name} expects a number, got boolean {value!r}",
            field_name=field.name,
            value=value,
        )

    try:
        number = float(value.strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError) as e:
        raise AttributeCoercionError(
            f"Field {field.name} expects a number, got {value!r}",
            field_name=field.name,
            value=value,
        ) from e

    if field.dtype == FLOAT:
        return number

    if not number.is_integer():
        raise AttributeCoercionError(
            f"Field {field.name} expects an integer, got {value!r}",
            field_name=field.name,
            value=value,
        )
    return int(number)


def apply_output_dtypes(df: pd.DataFrame) -> pd.DataFrame:
    """Casts the schema columns of `df` to their declared dtypes."""
    return df.astype({name: dtype for name, dtype in OUTPUT_DTYPES.items()})


def data_dictionary() -> pd.DataFrame:
    """
    Describes every column this package appends to an input table.

    Returns:
        pd.DataFrame with columns `column_name`, `description`, `data_type`.
    """
    rows = [
        {
            "column_name": GEOMETRY_COLUMN,
            "description": "Input point, reprojected to EPSG:4326.",
            "data_type": "geometry (Point)",
        }
    ]
    rows.extend(
        {"column_name": f.name, "description": f.description, "data_type": f.dtype}
        for f in OUTPUT_FIELDS
    )
    return pd.DataFrame(rows, columns=["column_name", "description", "data_type"])
