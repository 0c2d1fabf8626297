# common/nhdplus/__init__.py

from .enrich import get_nhdplus_df, snap_point_to_flowline
from .exceptions import (
    AttributeCoercionError,
    DegenerateGeometryError,
    InvalidCRSError,
    MismatchedColumnLengthsError,
    NhdplusLogicError,
    NoMatchError,
    QueryFailedError,
)
from .feature_service import NhdplusHrApiClient
from .geometry import GeodesicGeometryEngine
from .schema import OUTPUT_COLUMNS, SnapStatus, data_dictionary

__all__ = [
    "get_nhdplus_df",  #
    "snap_point_to_flowline",
    "NhdplusHrApiClient",
    "GeodesicGeometryEngine",
    "OUTPUT_COLUMNS",
    "SnapStatus",
    "data_dictionary",
    "NhdplusLogicError",
    "MismatchedColumnLengthsError",
    "InvalidCRSError",
    "NoMatchError",
    "QueryFailedError",
    "DegenerateGeometryError",
    "AttributeCoercionError",
]
