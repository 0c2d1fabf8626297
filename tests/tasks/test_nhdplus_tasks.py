# tests/tasks/test_nhdplus_tasks.py
import geopandas as gpd
import pandas as pd
import pytest
from prefect import flow
from prefect.task_runners import ThreadPoolTaskRunner
from prefect.testing.utilities import prefect_test_harness

from common.nhdplus.schema import SnapStatus
from tasks.nhdplus import read_points_task, save_enriched_points_task, submit_snap_points


@pytest.fixture(scope="module", autouse=True)
def prefect_harness():
    with prefect_test_harness():
        yield


def test_flow_snaps_and_saves_points(tmp_path, flowline_service, site, open_water):
    input_csv = tmp_path / "points.csv"
    output_gpkg = tmp_path / "out" / "snapped.gpkg"
    output_gpkg.parent.mkdir()
    pd.DataFrame(
        {
            "site_id": ["a", "b", "c"],
            "Longitude": [site[0], open_water[0], site[0]],
            "Latitude": [site[1], open_water[1], site[1]],
            "crs": ["EPSG:4326"] * 3,
        }
    ).to_csv(input_csv, index=False)

    @flow(task_runner=ThreadPoolTaskRunner(max_workers=2))
    def snap_flow():
        points_df = read_points_task(input_csv)
        gdf = submit_snap_points(
            points_df, "Longitude", "Latitude", "crs", 100, client=flowline_service
        )
        return gdf, save_enriched_points_task(gdf, output_gpkg)

    gdf, output_path = snap_flow()

    assert list(gdf["site_id"]) == ["a", "b", "c"]
    assert list(gdf["snap_status"]) == [
        SnapStatus.MATCHED,
        SnapStatus.NO_MATCH,
        SnapStatus.MATCHED,
    ]
    assert output_path == str(output_gpkg)

    written = gpd.read_file(output_gpkg, layer="nhdplus_snapped_points")
    assert len(written) == 3
    assert list(written["REACHCODE"].isna()) == [False, True, False]


def test_mismatched_input_fails_before_any_task(flowline_service):
    @flow
    def snap_flow():
        return submit_snap_points(
            {"x": [1.0, 2.0], "y": [1.0], "crs": [4326, 4326]},
            "x",
            "y",
            "crs",
            100,
            client=flowline_service,
        )

    with pytest.raises(ValueError):
        snap_flow()
    assert flowline_service.calls == []
