# common/nhdplus/exceptions.py
"""
Error taxonomy for NHDPlus HR point-to-flowline snapping.

Only `MismatchedColumnLengthsError` (and plain `ValueError` for malformed
arguments) escapes a batch call. Every other error is row-level: the per-row
pipeline catches it, logs a warning and emits the fallback record.
"""

from typing import Any, Optional


class NhdplusLogicError(Exception):
    """Base exception for errors occurring within the NHDPlus snapping logic."""

    pass


class MismatchedColumnLengthsError(NhdplusLogicError, ValueError):
    """
    Raised before any network activity when the x, y and crs inputs are not
    columns of one table (different lengths, or a named column is missing).
    """

    def __init__(self, message: str, lengths: Optional[dict] = None):
        super().__init__(message)
        self.lengths = lengths if lengths else {}


class InvalidCRSError(NhdplusLogicError):
    """Raised when a CRS identifier cannot be parsed or a point cannot be reprojected."""

    def __init__(self, message: str, crs: Any = None):
        super().__init__(message)
        self.crs = crs


class NoMatchError(NhdplusLogicError):
    """
    The feature service answered with an HTTP error or an empty feature
    collection. An expected, common outcome; never aborts a batch.
    """

    def __init__(
        self, message: str, url: Optional[str] = None, status: Optional[str] = None
    ):
        super().__init__(message)
        self.url = url
        self.status = status


class QueryFailedError(NhdplusLogicError):
    """
    Raised for transport failures (DNS, refused connection, timeout) and for
    responses that cannot be decoded or parsed as a GeoJSON feature collection.
    """

    def __init__(
        self, message: str, url: Optional[str] = None, details: Optional[Any] = None
    ):
        super().__init__(message)
        self.url = url
        self.details = details


class DegenerateGeometryError(NhdplusLogicError):
    """
    Raised when a flowline cannot be linearly referenced: zero length, missing
    measure range, or a computed measure outside the range the flowline declares.
    """

    def __init__(self, message: str, reach_id: Optional[str] = None):
        super().__init__(message)
        self.reach_id = reach_id


class AttributeCoercionError(NhdplusLogicError):
    """Raised when a flowline attribute declared numeric holds a non-numeric value."""

    def __init__(self, message: str, field_name: str, value: Any = None):
        super().__init__(message)
        self.field_name = field_name
        self.value = value
