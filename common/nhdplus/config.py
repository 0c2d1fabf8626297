# common/nhdplus/config.py
"""
Environment-driven defaults for the NHDPlus HR flowline enrichment logic.

Values are read once at import time (after loading a `.env` file, if present)
and are only defaults: every public function in `common.nhdplus` accepts an
explicit override.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

# NHDPlus High Resolution flowline layer of the USGS National Map feature service.
# https://hydro.nationalmap.gov/arcgis/rest/services/NHDPlus_HR/MapServer/2/
NHDPLUS_HR_FLOWLINE_QUERY_URL = os.getenv(
    key="NHDPLUS_HR_FLOWLINE_QUERY_URL",
    default="https://hydro.nationalmap.gov/arcgis/rest/services/NHDPlus_HR/MapServer/2/query",
)

NHDPLUS_HR_REQUEST_TIMEOUT_SEC = float(
    os.getenv(key="NHDPLUS_HR_REQUEST_TIMEOUT_SEC", default="60")
)

NHDPLUS_HR_MAX_WORKERS = int(os.getenv(key="NHDPLUS_HR_MAX_WORKERS", default="4"))

NHDPLUS_HR_SEARCH_DIST_M = float(
    os.getenv(key="NHDPLUS_HR_SEARCH_DIST_M", default="100")
)

# The feature service always answers f=GeoJSON queries in WGS84.
FEATURE_SERVICE_CRS = "EPSG:4326"


@dataclass(frozen=True)
class NhdplusQueryConfig:
    """
    Connection settings for one NHDPlus HR feature-service client.

    Attributes:
        query_url: Full URL of the layer's `/query` endpoint.
        timeout_sec: Socket timeout applied to each request.
    """

    query_url: str = NHDPLUS_HR_FLOWLINE_QUERY_URL
    timeout_sec: float = NHDPLUS_HR_REQUEST_TIMEOUT_SEC
