# common/nhdplus/enrich.py
"""
Enriches point records with the nearest NHDPlus HR flowline.

For each input point the closest flowline within the search distance is
selected and the point's measure along that flowline is computed. Only the
closest flowline is kept; when two or more are equally close, the first one
the feature service returned wins. Points with no flowline within the search
distance get an all-missing record with the same columns.

`snap_point_to_flowline` handles one point and shares no state with other
calls, so `get_nhdplus_df` can run it for many rows on a bounded thread pool.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import (
    Any,
    Dict,
    Hashable,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    Union,
)

import geopandas as gpd
import pandas as pd
import pyproj
import shapely
from pyproj.exceptions import CRSError, ProjError
from shapely.errors import GEOSException
from tqdm import tqdm

from common.utils.logging import timer

from .config import (
    FEATURE_SERVICE_CRS,
    NHDPLUS_HR_MAX_WORKERS,
    NHDPLUS_HR_SEARCH_DIST_M,
)
from .crs import InputPoint, harmonize_point, make_input_point, resolve_crs
from .exceptions import (
    DegenerateGeometryError,
    InvalidCRSError,
    MismatchedColumnLengthsError,
    NhdplusLogicError,
    NoMatchError,
    QueryFailedError,
)
from .feature_service import (
    FlowlineCandidates,
    NhdplusHrApiClient,
    validate_search_dist,
)
from .geometry import GeodesicGeometryEngine, GeometryEngine
from .linear_reference import measure_flowline
from .records import build_fallback_record, build_matched_record
from .schema import (
    GEOMETRY_COLUMN,
    OUTPUT_COLUMNS,
    SnapStatus,
    apply_output_dtypes,
)
from .selection import select_nearest_flowline

logger = logging.getLogger(__name__)


class FlowlineQueryClient(Protocol):
    def query(self, point: InputPoint, search_dist: float) -> FlowlineCandidates: ...


def _canonical_point(point: InputPoint) -> Optional[shapely.Point]:
    """The input point in the feature service CRS, or None if it cannot be reprojected."""
    try:
        return harmonize_point(point, FEATURE_SERVICE_CRS)
    except InvalidCRSError as e:
        logger.debug(f"Could not reproject fallback point: {e}")
        return None


def _fallback(
    row_label: Any,
    point_geometry: Optional[shapely.Point],
    status: str,
    message: str,
) -> Dict[str, Any]:
    logger.warning(f"Row {row_label}: {status}, NA returned. {message}")
    return build_fallback_record(point_geometry, status=status, message=message)


def snap_point_to_flowline(
    x: Any,
    y: Any,
    crs: Any,
    search_dist: float = NHDPLUS_HR_SEARCH_DIST_M,
    client: Optional[FlowlineQueryClient] = None,
    engine: Optional[GeometryEngine] = None,
    row_label: Any = None,
) -> Dict[str, Any]:
    """
    Matches one point to the nearest NHDPlus HR flowline.

    Row-level problems never raise. Each one is logged as a warning and
    turned into the all-missing fallback record, with the outcome recorded
    in `snap_status` / `snap_message`:

        - INVALID_CRS:          `crs` cannot be parsed, or the point cannot be
                                reprojected (no query is issued).
        - NO_MATCH:             HTTP error, empty collection, no measurable
                                candidate, or non-finite coordinates.
        - QUERY_FAILED:         transport/decode/parse failure.
        - DEGENERATE_GEOMETRY:  the matched flowline cannot be measured, or a
                                geometry operation on it fails.

    Args:
        x: Longitude (or easting) in `crs` units.
        y: Latitude (or northing) in `crs` units.
        crs: CRS of x and y; anything `pyproj.CRS.from_user_input` accepts.
        search_dist: Search radius around the point, in meters.
        client: Flowline query client. Defaults to `NhdplusHrApiClient()`.
        engine: Geometry engine. Defaults to `GeodesicGeometryEngine()`.
        row_label: Used only in log messages.

    Returns:
        A dict keyed by `schema.OUTPUT_COLUMNS`.
    """
    client = client if client else NhdplusHrApiClient()
    engine = engine if engine else GeodesicGeometryEngine()

    try:
        point = make_input_point(x, y, crs)
    except InvalidCRSError as e:
        return _fallback(row_label, None, SnapStatus.INVALID_CRS, str(e))
    except (TypeError, ValueError) as e:
        return _fallback(
            row_label, None, SnapStatus.NO_MATCH, f"Invalid coordinates: {e}"
        )

    if not point.is_finite:
        return _fallback(
            row_label,
            None,
            SnapStatus.NO_MATCH,
            f"Missing or non-finite coordinates ({x}, {y}).",
        )

    canonical_point = _canonical_point(point)
    if canonical_point is None:
        return _fallback(
            row_label,
            None,
            SnapStatus.INVALID_CRS,
            f"Point ({x}, {y}) cannot be reprojected from {point.crs.to_string()}.",
        )

    try:
        candidates = client.query(point, search_dist)
    except NoMatchError as e:
        return _fallback(row_label, canonical_point, SnapStatus.NO_MATCH, str(e))
    except QueryFailedError as e:
        return _fallback(row_label, canonical_point, SnapStatus.QUERY_FAILED, str(e))

    try:
        harmonized_point = harmonize_point(point, candidates.crs)
    except InvalidCRSError as e:
        return _fallback(row_label, canonical_point, SnapStatus.INVALID_CRS, str(e))

    try:
        match = select_nearest_flowline(harmonized_point, candidates, engine)
        if match is None:
            return _fallback(
                row_label,
                canonical_point,
                SnapStatus.NO_MATCH,
                "No candidate flowline has a computable distance.",
            )
        linear_reference = measure_flowline(
            match, harmonized_point, candidates.crs, engine
        )
    except DegenerateGeometryError as e:
        return _fallback(
            row_label, canonical_point, SnapStatus.DEGENERATE_GEOMETRY, str(e)
        )
    except (InvalidCRSError, CRSError, ProjError) as e:
        return _fallback(row_label, canonical_point, SnapStatus.INVALID_CRS, str(e))
    except (NhdplusLogicError, GEOSException) as e:
        return _fallback(
            row_label,
            canonical_point,
            SnapStatus.DEGENERATE_GEOMETRY,
            f"Unexpected geometry error: {e}",
        )

    record = build_matched_record(canonical_point, match, linear_reference)
    if record["snap_status"] != SnapStatus.MATCHED:
        logger.warning(f"Row {row_label}: {record['snap_message']}")

    return record


def records_to_gdf(records: List[Dict[str, Any]]) -> gpd.GeoDataFrame:
    """Assembles output records into a GeoDataFrame with the fixed schema and dtypes."""
    df = pd.DataFrame.from_records(records, columns=list(OUTPUT_COLUMNS))
    df = apply_output_dtypes(df)
    return gpd.GeoDataFrame(df, geometry=GEOMETRY_COLUMN, crs=FEATURE_SERVICE_CRS)


def _column_values(
    data: Union[pd.DataFrame, Mapping[Hashable, Sequence]],
    column: Hashable,
) -> Sequence:
    if column not in data:
        raise MismatchedColumnLengthsError(f"Column {column!r} not found in input data.")
    return data[column]


def _is_crs_column(data: Union[pd.DataFrame, Mapping[Hashable, Sequence]], crs: Any) -> bool:
    return (
        isinstance(crs, Hashable)
        and not isinstance(crs, pyproj.CRS)
        and crs in data
    )


def validate_point_columns(
    data: Union[pd.DataFrame, Mapping[Hashable, Sequence]],
    x: Hashable,
    y: Hashable,
    crs: Any,
) -> None:
    """
    Checks that x, y (and crs, when it names a column) are columns of one table.

    A string `crs` that is neither a column nor a parseable CRS is taken to be
    a misspelled column name.

    Raises:
        MismatchedColumnLengthsError: If a column is missing or the lengths differ.
    """
    named = {"x": x, "y": y}
    if _is_crs_column(data, crs):
        named["crs"] = crs
    elif isinstance(crs, str):
        try:
            resolve_crs(crs)
        except InvalidCRSError as e:
            raise MismatchedColumnLengthsError(
                f"crs={crs!r} is neither a column of the input data nor a valid CRS: {e}"
            ) from e

    lengths = {
        f"{role}={column!r}": len(_column_values(data, column))
        for role, column in named.items()
    }
    if len(set(lengths.values())) > 1:
        raise MismatchedColumnLengthsError(
            f"x, y and crs must have the same number of elements: {lengths}",
            lengths=lengths,
        )


def prepare_point_inputs(
    data: Union[pd.DataFrame, Mapping[Hashable, Sequence]],
    x: Hashable,
    y: Hashable,
    crs: Any,
) -> Tuple[pd.DataFrame, List[Any], List[Any], List[Any]]:
    """
    Validates the input table and splits out per-row x, y and crs values.

    Returns:
        (input_df with a fresh RangeIndex, xs, ys, crss)

    Raises:
        MismatchedColumnLengthsError: See `validate_point_columns`.
        ValueError: If an input column collides with an output column.
    """
    validate_point_columns(data, x, y, crs)
    crs_is_column = _is_crs_column(data, crs)

    input_df = pd.DataFrame(data).reset_index(drop=True)

    collisions = [c for c in input_df.columns if c in OUTPUT_COLUMNS]
    if collisions:
        raise ValueError(
            f"Input columns collide with output columns: {collisions}. Rename them first."
        )

    xs = input_df[x].tolist()
    ys = input_df[y].tolist()
    if crs_is_column:
        crss = input_df[crs].tolist()
    else:
        # Parsed per row, so a non-string scalar that is not a CRS degrades every row alike.
        crss = [crs] * len(input_df)

    return input_df, xs, ys, crss


def join_records_to_input(
    input_df: pd.DataFrame, records: List[Dict[str, Any]]
) -> gpd.GeoDataFrame:
    """
    Appends output records (in input order) to the input rows.

    Raises:
        ValueError: If the record count does not match the row count.
    """
    if len(records) != len(input_df):
        raise ValueError(
            f"Got {len(records)} output records for {len(input_df)} input rows."
        )

    n_matched = sum(
        1
        for r in records
        if r["snap_status"] in (SnapStatus.MATCHED, SnapStatus.MATCHED_WITH_WARNINGS)
    )
    logger.info(f"Matched {n_matched} of {len(records)} points to a flowline.")

    output_gdf = records_to_gdf(records)

    result_df = pd.concat([input_df.reset_index(drop=True), output_gdf], axis=1)
    result_df.reset_index(drop=True, inplace=True)

    return gpd.GeoDataFrame(result_df, geometry=GEOMETRY_COLUMN, crs=FEATURE_SERVICE_CRS)


def get_nhdplus_df(
    data: Union[pd.DataFrame, Mapping[Hashable, Sequence]],
    x: Hashable,
    y: Hashable,
    crs: Any,
    search_dist: float = NHDPLUS_HR_SEARCH_DIST_M,
    client: Optional[FlowlineQueryClient] = None,
    engine: Optional[GeometryEngine] = None,
    max_workers: int = NHDPLUS_HR_MAX_WORKERS,
    show_progress: bool = False,
) -> gpd.GeoDataFrame:
    """
    Appends the nearest NHDPlus HR flowline and its measure to every row.

    Args:
        data: A DataFrame, or a mapping of column name to equal-length
              sequences. Columns other than x, y and crs pass through.
        x: Name of the longitude (easting) column.
        y: Name of the latitude (northing) column.
        crs: Name of the column holding each row's CRS, or a single CRS value
             (e.g. 4326) applied to every row.
        search_dist: Search radius around each point, in meters. Default 100.
        client: Flowline query client shared by all rows.
        engine: Geometry engine shared by all rows.
        max_workers: Size of the thread pool issuing queries. 1 runs serially.
        show_progress: Show a tqdm progress bar.

    Returns:
        gpd.GeoDataFrame in EPSG:4326 with one row per input row, in input
        order, and a fresh RangeIndex. Columns are the input columns followed
        by `schema.OUTPUT_COLUMNS`; `geometry` is the input point.

    Raises:
        MismatchedColumnLengthsError: If x, y (and a crs column) differ in
            length or are missing. Raised before any query is issued.
        ValueError: If an input column name collides with an output column,
            or `max_workers` < 1, or `search_dist` is negative or not finite.
    """
    if max_workers < 1:
        raise ValueError(f"max_workers must be >= 1, got {max_workers}")
    validate_search_dist(search_dist)

    input_df, xs, ys, crss = prepare_point_inputs(data, x, y, crs)
    n_rows = len(input_df)

    client = client if client else NhdplusHrApiClient()
    engine = engine if engine else GeodesicGeometryEngine()

    def snap_row(row_idx: int) -> Dict[str, Any]:
        return snap_point_to_flowline(
            x=xs[row_idx],
            y=ys[row_idx],
            crs=crss[row_idx],
            search_dist=search_dist,
            client=client,
            engine=engine,
            row_label=row_idx,
        )

    with timer(f"Snapping {n_rows} points to NHDPlus HR flowlines", log=logger):
        if max_workers == 1 or n_rows <= 1:
            records = [
                snap_row(row_idx)
                for row_idx in tqdm(
                    range(n_rows), disable=not show_progress, desc="Snapping points"
                )
            ]
        else:
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                # executor.map yields results in submission order.
                records = list(
                    tqdm(
                        executor.map(snap_row, range(n_rows)),
                        total=n_rows,
                        disable=not show_progress,
                        desc="Snapping points",
                    )
                )

    return join_records_to_input(input_df, records)
