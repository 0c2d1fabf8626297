from os import PathLike
from typing import Any, Dict, List, Optional

import geopandas as gpd
import pandas as pd
from prefect import get_run_logger, task, unmapped
from prefect.cache_policies import NO_CACHE

from common.nhdplus.enrich import (
    FlowlineQueryClient,
    join_records_to_input,
    prepare_point_inputs,
    snap_point_to_flowline,
)
from common.nhdplus.feature_service import validate_search_dist
from common.nhdplus.geometry import GeometryEngine


@task(name="Read Points CSV")
def read_points_task(input_csv: PathLike) -> pd.DataFrame:
    logger = get_run_logger()
    df = pd.read_csv(input_csv)
    logger.info(f"Read {len(df)} points from {input_csv}")
    return df


@task(name="Snap Point to NHDPlus HR Flowline", cache_policy=NO_CACHE)
def snap_point_task(
    x: Any,
    y: Any,
    crs: Any,
    row_label: int,
    search_dist: float,
    client: Optional[FlowlineQueryClient] = None,
    engine: Optional[GeometryEngine] = None,
) -> Dict[str, Any]:
    """
    Matches one point to its nearest flowline. Row-level failures come back
    as fallback records, so this task never fails for a bad row.
    """
    return snap_point_to_flowline(
        x=x,
        y=y,
        crs=crs,
        search_dist=search_dist,
        client=client,
        engine=engine,
        row_label=row_label,
    )


def submit_snap_points(
    points_df: pd.DataFrame,
    x: str,
    y: str,
    crs: Any,
    search_dist: float,
    client: Optional[FlowlineQueryClient] = None,
    engine: Optional[GeometryEngine] = None,
) -> gpd.GeoDataFrame:
    """
    Maps `snap_point_task` over every row on the flow's task runner and joins
    the results back onto the rows in input order.

    Must be called from within a flow.
    """
    logger = get_run_logger()

    # Fails fast, before any task is submitted.
    validate_search_dist(search_dist)
    input_df, xs, ys, crss = prepare_point_inputs(points_df, x, y, crs)

    logger.info(f"Submitting {len(input_df)} snap tasks (search_dist={search_dist} m)")

    futures = snap_point_task.map(
        x=xs,
        y=ys,
        crs=crss,
        row_label=list(range(len(input_df))),
        search_dist=unmapped(search_dist),
        client=unmapped(client),
        engine=unmapped(engine),
    )
    # Futures are resolved in submission order, which is input order.
    records: List[Dict[str, Any]] = [future.result() for future in futures]

    return join_records_to_input(input_df, records)


@task(name="Save Enriched Points")
def save_enriched_points_task(
    enriched_gdf: gpd.GeoDataFrame, output_gpkg: PathLike, layer: str = "nhdplus_snapped_points"
) -> str:
    logger = get_run_logger()
    enriched_gdf.to_file(output_gpkg, layer=layer, driver="GPKG", engine="pyogrio")
    logger.info(f"Wrote {len(enriched_gdf)} rows to {output_gpkg} (layer={layer})")
    return str(output_gpkg)
