# tasks/nhdplus/complete_prefect_workflow.py

import argparse
import logging
import pathlib

from prefect import flow, get_run_logger
from prefect.task_runners import ThreadPoolTaskRunner

from common.nhdplus.config import (
    NHDPLUS_HR_FLOWLINE_QUERY_URL,
    NHDPLUS_HR_MAX_WORKERS,
    NHDPLUS_HR_SEARCH_DIST_M,
    NhdplusQueryConfig,
)
from common.nhdplus.feature_service import NhdplusHrApiClient
from common.utils.logging import configure_logging
from tasks.nhdplus.tasks import (
    read_points_task,
    save_enriched_points_task,
    submit_snap_points,
)


@flow(name="NHDPlus HR Flowline Enrichment Workflow", log_prints=True)
def nhdplus_enrichment_flow(
    input_csv: str,
    output_gpkg: str,
    x: str = "Longitude",
    y: str = "Latitude",
    crs: str = "crs",
    search_dist: float = NHDPLUS_HR_SEARCH_DIST_M,
    query_url: str = NHDPLUS_HR_FLOWLINE_QUERY_URL,
    verbose: bool = False,
) -> str:
    """
    Reads a CSV of points, snaps each one to its nearest NHDPlus HR flowline,
    and writes the enriched points to a GeoPackage.

    Args:
        input_csv: CSV with at least the x, y and crs columns.
        output_gpkg: Output GeoPackage path.
        x: Longitude column name.
        y: Latitude column name.
        crs: CRS column name, or a CRS (e.g. "EPSG:4326") applied to every row.
        search_dist: Search radius in meters.
        query_url: Feature service `/query` endpoint.
        verbose: If True, enable DEBUG level logging.

    Returns:
        The output GeoPackage path.
    """
    log_level = logging.DEBUG if verbose else logging.INFO
    logger = get_run_logger()
    logger.setLevel(log_level)
    logging.getLogger("common.nhdplus").setLevel(log_level)

    logger.info("--- Starting NHDPlus HR Flowline Enrichment Workflow ---")
    logger.info(f"Input CSV: {input_csv}")
    logger.info(f"Output GPKG: {output_gpkg}")
    logger.debug(f"Columns: x={x}, y={y}, crs={crs}; search_dist={search_dist} m")
    logger.debug(f"Feature service: {query_url}")

    client = NhdplusHrApiClient(config=NhdplusQueryConfig(query_url=query_url))

    points_df = read_points_task(input_csv)

    enriched_gdf = submit_snap_points(
        points_df=points_df,
        x=x,
        y=y,
        crs=crs,
        search_dist=search_dist,
        client=client,
    )

    pathlib.Path(output_gpkg).parent.mkdir(parents=True, exist_ok=True)
    output_path = save_enriched_points_task(enriched_gdf, output_gpkg)

    logger.info("--- NHDPlus HR Flowline Enrichment Workflow Complete ---")
    return output_path


def main():
    parser = argparse.ArgumentParser(
        description="Snap points to the nearest NHDPlus HR flowline and compute reach measures."
    )
    parser.add_argument("--input-csv", required=True, help="CSV of input points.")
    parser.add_argument("--output-gpkg", required=True, help="Output GeoPackage path.")
    parser.add_argument("--x", default="Longitude", help="Longitude column name.")
    parser.add_argument("--y", default="Latitude", help="Latitude column name.")
    parser.add_argument(
        "--crs",
        default="crs",
        help="CRS column name, or a CRS such as EPSG:4326 applied to every row.",
    )
    parser.add_argument(
        "--search-dist",
        type=float,
        default=NHDPLUS_HR_SEARCH_DIST_M,
        help="Search radius in meters.",
    )
    parser.add_argument(
        "--max-workers",
        type=int,
        default=NHDPLUS_HR_MAX_WORKERS,
        help="Max concurrent feature-service queries.",
    )
    parser.add_argument(
        "--verbose", action="store_true", help="Enable DEBUG level logging."
    )
    args = parser.parse_args()

    configure_logging(verbose=args.verbose)

    # --- Configure Task Runner ---
    configured_flow = nhdplus_enrichment_flow.with_options(
        task_runner=ThreadPoolTaskRunner(max_workers=args.max_workers)
    )

    configured_flow(
        input_csv=args.input_csv,
        output_gpkg=args.output_gpkg,
        x=args.x,
        y=args.y,
        crs=args.crs,
        search_dist=args.search_dist,
        verbose=args.verbose,
    )


if __name__ == "__main__":
    main()
