# tests/nhdplus/test_records.py
import math

import pandas as pd
import pytest
import shapely

from common.nhdplus.exceptions import AttributeCoercionError
from common.nhdplus.feature_service import FlowlineCandidate
from common.nhdplus.linear_reference import LinearReference
from common.nhdplus.records import build_fallback_record, build_matched_record
from common.nhdplus.schema import (
    FALLBACK_TEMPLATE,
    FLOAT,
    INT,
    OUTPUT_COLUMNS,
    OUTPUT_DTYPES,
    TEXT,
    OutputField,
    SnapStatus,
    coerce_field_value,
    data_dictionary,
)
from common.nhdplus.selection import SelectedMatch

POINT = shapely.Point(-122.3813, 42.09359)


def _matched(**attributes):
    base = {"REACHCODE": "18010206000101", "FROMMEAS": 0, "TOMEAS": 100}
    base.update(attributes)
    return build_matched_record(
        POINT,
        SelectedMatch(
            flowline=FlowlineCandidate(
                geometry=shapely.LineString([(0, 0), (1, 1)]),
                attributes=base,
                response_index=0,
            ),
            snap_distance_m=24.8,
        ),
        LinearReference(measure=53.0, snap_latitude=42.09359, snap_longitude=-122.381),
    )


def _has_declared_type(dtype, value):
    if dtype == FLOAT:
        return isinstance(value, float)
    if value is pd.NA:
        return True
    if dtype == INT:
        return isinstance(value, int) and not isinstance(value, bool)
    return isinstance(value, str)


def test_matched_and_fallback_records_share_keys():
    matched = _matched(GNIS_NAME="Klamath River", EXTRA_FIELD="dropped")
    fallback = build_fallback_record(POINT, SnapStatus.NO_MATCH, "nothing nearby")

    assert tuple(matched) == OUTPUT_COLUMNS
    assert tuple(fallback) == OUTPUT_COLUMNS
    assert "EXTRA_FIELD" not in matched


def test_record_values_match_declared_dtypes():
    matched = _matched(OBJECTID="101", STREAMORDE=3.0, GNIS_NAME="Klamath River")
    fallback = build_fallback_record(POINT, SnapStatus.NO_MATCH, "nothing nearby")

    for name, dtype in OUTPUT_DTYPES.items():
        for record in (matched, fallback):
            assert _has_declared_type(dtype, record[name]), name


def test_fallback_record_is_all_missing():
    record = build_fallback_record(POINT, SnapStatus.QUERY_FAILED, "timed out")

    assert record["geometry"].equals(POINT)
    assert math.isnan(record["measure"])
    assert math.isnan(record["snap_distance"])
    assert record["REACHCODE"] is pd.NA
    assert record["snap_status"] == SnapStatus.QUERY_FAILED
    assert record["snap_message"] == "timed out"


def test_fallback_does_not_mutate_template():
    build_fallback_record(POINT, SnapStatus.NO_MATCH, "x")
    assert FALLBACK_TEMPLATE["geometry"] is None
    assert FALLBACK_TEMPLATE["snap_status"] is pd.NA


def test_matched_record_fields():
    record = _matched(GNIS_name="Klamath River", hwnodesqkm=" 12.5 ")

    assert record["measure"] == 53.0
    assert record["snap_distance"] == 24.8
    assert record["REACHCODE"] == "18010206000101"
    assert record["GNIS_NAME"] == "Klamath River"
    assert record["HWNODESQKM"] == 12.5
    assert record["snap_status"] == SnapStatus.MATCHED
    assert record["snap_message"] is pd.NA
    # Template fields absent from the response are missing.
    assert math.isnan(record["QAMA"])


def test_coercion_failure_keeps_match_with_warning():
    record = _matched(HWTYPE="abc", HWNODESQKM="3.5")

    assert record["snap_status"] == SnapStatus.MATCHED_WITH_WARNINGS
    assert "HWTYPE" in record["snap_message"]
    assert math.isnan(record["HWTYPE"])
    assert record["HWNODESQKM"] == 3.5
    assert record["measure"] == 53.0


@pytest.mark.parametrize(
    "dtype, raw, expected",
    [
        (FLOAT, "1.5", 1.5),
        (FLOAT, 2, 2.0),
        (INT, "7", 7),
        (INT, 7.0, 7),
        (TEXT, 18010206000101, "18010206000101"),
    ],
)
def test_coerce_field_value(dtype, raw, expected):
    assert coerce_field_value(OutputField("F", dtype, ""), raw) == expected


@pytest.mark.parametrize("raw", [None, "", "  ", math.nan])
def test_coerce_missing_values(raw):
    assert math.isnan(coerce_field_value(OutputField("F", FLOAT, ""), raw))
    assert coerce_field_value(OutputField("F", INT, ""), raw) is pd.NA


@pytest.mark.parametrize(
    "dtype, raw", [(FLOAT, "abc"), (INT, "7.5"), (FLOAT, True), (INT, [1])]
)
def test_coerce_rejects_non_numeric(dtype, raw):
    with pytest.raises(AttributeCoercionError):
        coerce_field_value(OutputField("F", dtype, ""), raw)


def test_data_dictionary_describes_every_output_column():
    dictionary = data_dictionary()
    assert list(dictionary["column_name"]) == list(OUTPUT_COLUMNS)
    assert dictionary["description"].str.len().gt(0).all()
