# common/nhdplus/feature_service.py
"""
Client for the NHDPlus High Resolution flowline feature service.

One proximity query is issued per input point:

    GET {query_url}?geometryType=esriGeometryPoint&geometry={x},{y}&inSR={crs}
        &distance={search_dist}&units=esriSRUnit_Meter&outFields=*
        &returnGeometry=true&returnIdsOnly=false&f=GeoJSON

The service answers with a GeoJSON FeatureCollection of flowlines in
EPSG:4326, each feature carrying the flowline's full attribute set. The
response order is kept as-is: it is the order used to break distance ties.

Outcome classification:
    - HTTP-level error, or an empty collection  -> NoMatchError
    - transport, decode or parse failure         -> QueryFailedError

There is no retry policy here. Each call performs exactly one request.
"""

import json
import logging
import math
import numbers
import socket
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import geopandas as gpd
import pyproj
import shapely

from .config import FEATURE_SERVICE_CRS, NhdplusQueryConfig
from .crs import InputPoint
from .exceptions import NoMatchError, QueryFailedError

logger = logging.getLogger(__name__)


def validate_search_dist(search_dist: Any) -> None:
    """
    Raises:
        ValueError: If `search_dist` is not a finite, non-negative number of meters.
    """
    if isinstance(search_dist, bool) or not isinstance(search_dist, numbers.Real):
        raise ValueError(f"search_dist must be a number, got {search_dist!r}")
    if not math.isfinite(search_dist) or search_dist < 0:
        raise ValueError(f"search_dist must be non-negative and finite, got {search_dist}")


@dataclass(frozen=True)
class FlowlineCandidate:
    """
    One flowline returned by a proximity query.

    Attributes:
        geometry: 2D LineString (MultiLineStrings are merged where possible).
        attributes: The feature's attribute map, exactly as the service sent it.
        response_index: Position of the feature in the service response.
    """

    geometry: shapely.LineString | shapely.MultiLineString
    attributes: Dict[str, Any]
    response_index: int


@dataclass(frozen=True)
class FlowlineCandidates:
    """
    The parsed response of one proximity query.

    Attributes:
        candidates: Flowlines in service response order.
        crs: CRS of the candidate geometries.
        request_url: The full URL used for the request.
    """

    candidates: Tuple[FlowlineCandidate, ...]
    crs: pyproj.CRS
    request_url: str

    def __len__(self) -> int:
        return len(self.candidates)

    def __iter__(self):
        return iter(self.candidates)


def _crs_query_value(crs: pyproj.CRS) -> str:
    """The `inSR` value for a CRS: the EPSG code when there is one, else WKT."""
    epsg = crs.to_epsg()
    if epsg is not None:
        return str(epsg)
    return json.dumps({"wkt": crs.to_wkt()})


def build_query_params(point: InputPoint, search_dist: float) -> Dict[str, str]:
    return {
        "geometryType": "esriGeometryPoint",
        "geometry": f"{point.x},{point.y}",
        "inSR": _crs_query_value(point.crs),
        "spatialRel": "esriSpatialRelIntersects",
        "distance": f"{search_dist}",
        "units": "esriSRUnit_Meter",
        "outFields": "*",
        "returnGeometry": "true",
        "returnIdsOnly": "false",
        "f": "GeoJSON",
    }


def _to_2d_flowline(
    geometry: shapely.Geometry,
) -> shapely.LineString | shapely.MultiLineString:
    # Z and M values are dropped; only planar position matters for snapping.
    geometry = shapely.force_2d(geometry)

    if isinstance(geometry, shapely.MultiLineString):
        merged = shapely.line_merge(geometry)
        if isinstance(merged, (shapely.LineString, shapely.MultiLineString)):
            geometry = merged

    if not isinstance(geometry, (shapely.LineString, shapely.MultiLineString)):
        raise TypeError(f"Expected a line geometry, got {geometry.geom_type}")

    return geometry


def parse_flowlines_geojson(
    response_dict: Dict[str, Any], request_url: str
) -> FlowlineCandidates:
    """
    Parses a GeoJSON FeatureCollection into `FlowlineCandidates`.

    Raises:
        QueryFailedError: If the payload is not a usable feature collection
            (including ArcGIS `{"error": ...}` bodies returned with HTTP 200).
        NoMatchError: If the collection holds no flowlines.
    """
    if not isinstance(response_dict, dict):
        raise QueryFailedError(
            "Feature service response is not a JSON object.",
            url=request_url,
            details=response_dict,
        )

    if "error" in response_dict:
        error = response_dict.get("error") or {}
        raise QueryFailedError(
            f"Feature service returned error {error.get('code')}: {error.get('message')}",
            url=request_url,
            details=response_dict,
        )

    features = response_dict.get("features")
    if features is None:
        raise QueryFailedError(
            "Feature service response has no 'features' member.",
            url=request_url,
            details=response_dict,
        )

    if not features:
        raise NoMatchError(
            "No flowlines within the search distance.", url=request_url
        )

    try:
        flowlines_gdf = gpd.GeoDataFrame.from_features(
            features, crs=FEATURE_SERVICE_CRS
        )
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise QueryFailedError(
            f"Could not parse feature collection: {type(e).__name__} - {e}",
            url=request_url,
            details=response_dict,
        ) from e

    candidates: List[FlowlineCandidate] = []
    attribute_columns = [c for c in flowlines_gdf.columns if c != "geometry"]

    for response_index, (geometry, attributes) in enumerate(
        zip(
            flowlines_gdf.geometry,
            flowlines_gdf[attribute_columns].to_dict(orient="records"),
        )
    ):
        if geometry is None or geometry.is_empty:
            logger.debug(
                f"Skipping feature {response_index} with empty geometry from {request_url}"
            )
            continue
        try:
            flowline = _to_2d_flowline(geometry)
        except TypeError as e:
            logger.debug(f"Skipping feature {response_index}: {e}")
            continue
        candidates.append(
            FlowlineCandidate(
                geometry=flowline,
                attributes=attributes,
                response_index=response_index,
            )
        )

    if not candidates:
        raise NoMatchError(
            "Feature service returned no usable flowline geometries.",
            url=request_url,
        )

    return FlowlineCandidates(
        candidates=tuple(candidates),
        crs=pyproj.CRS.from_user_input(FEATURE_SERVICE_CRS),
        request_url=request_url,
    )


class NhdplusHrApiClient:
    """HTTP client for the NHDPlus HR flowline `/query` endpoint."""

    def __init__(self, config: Optional[NhdplusQueryConfig] = None):
        self.config = config if config else NhdplusQueryConfig()
        if not self.config.query_url.startswith("http"):
            raise ValueError(
                f"Invalid feature service URL: {self.config.query_url!r}"
            )

    def build_request_url(self, point: InputPoint, search_dist: float) -> str:
        query_string = urllib.parse.urlencode(build_query_params(point, search_dist))
        return f"{self.config.query_url}?{query_string}"

    def query(self, point: InputPoint, search_dist: float) -> FlowlineCandidates:
        """
        Queries the flowlines within `search_dist` meters of `point`.

        Args:
            point: The input point, in its own CRS (sent as `inSR`).
            search_dist: Search radius in meters.

        Returns:
            The candidate flowlines, in service response order.

        Raises:
            NoMatchError: On an HTTP error status or an empty collection.
            QueryFailedError: On transport, decode or parse failures.
            ValueError: If `search_dist` is negative or not a finite number.
        """
        validate_search_dist(search_dist)

        request_url = self.build_request_url(point, search_dist)
        logger.debug(f"Requesting NHDPlus HR flowlines: {request_url}")

        try:
            with urllib.request.urlopen(
                request_url, timeout=self.config.timeout_sec
            ) as response:
                contents = response.read()
        except urllib.error.HTTPError as e:
            # Must precede URLError, of which HTTPError is a subclass.
            raise NoMatchError(
                f"Feature service request failed with HTTP status: {e.code} {e.reason}",
                url=request_url,
                status=str(e.code),
            ) from e
        except urllib.error.URLError as e:
            raise QueryFailedError(f"URL Error: {e.reason}", url=request_url) from e
        except (socket.timeout, TimeoutError) as e:
            raise QueryFailedError(
                f"Request timed out after {self.config.timeout_sec} seconds",
                url=request_url,
            ) from e
        except OSError as e:
            raise QueryFailedError(
                f"Unexpected request exception: {e}", url=request_url
            ) from e

        try:
            response_dict = json.loads(contents)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise QueryFailedError(
                f"Failed to decode JSON response: {e}", url=request_url
            ) from e

        candidates = parse_flowlines_geojson(response_dict, request_url)
        logger.debug(f"Received {len(candidates)} candidate flowlines from {request_url}")
        return candidates
