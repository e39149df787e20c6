"""Unit tests for the fallback PNEZD parser."""
import pytest
from surfacegen.jobs.tabular import (
    HEADER_TOKENS,
    is_header,
    parse_row,
    parse_tabular,
    summarize_points,
    take_capped,
)


def test_header_detection_is_token_based_and_case_insensitive():
    assert is_header("Point,Northing,Easting,Elevation,Description") is True
    assert is_header("PNT,NORTHING,E,Z,D") is True
    assert is_header("id, x, EASTING") is True
    assert is_header("1,10,20,5,x") is False
    assert set(HEADER_TOKENS) == {"point", "northing", "easting"}


def test_parse_drops_non_numeric_northing():
    text = "Point,Northing,Easting,Elevation,Description\n1,100.0,200.0,10.5,A\n2,abc,200.0,10.5,B\n"
    points = parse_tabular(text)
    assert len(points) == 1
    p = points[0]
    assert p.point == 1
    assert p.northing == 100.0
    assert p.easting == 200.0
    assert p.elevation == 10.5
    assert p.description == "A"


def test_parse_without_header():
    points = parse_tabular("1,10,20,5,x\n")
    assert len(points) == 1
    assert (points[0].point, points[0].northing, points[0].easting, points[0].elevation) == (1, 10.0, 20.0, 5.0)
    assert points[0].description == "x"


def test_parse_empty():
    assert parse_tabular("") == []
    assert parse_tabular("   \n\n  ") == []
    assert parse_tabular("Point,Northing,Easting,Elevation\n") == []


def test_missing_fields_default_to_zero_and_empty_description():
    points = parse_tabular("7,1.5\n")
    assert len(points) == 1
    assert points[0].northing == 1.5
    assert points[0].easting == 0.0
    assert points[0].elevation == 0.0
    assert points[0].description == ""


def test_point_id_falls_back_to_running_index():
    text = "Point,Northing,Easting,Elevation\nx,1,2,3\n,4,5,6\n0,7,8,9\n"
    points = parse_tabular(text)
    assert [p.point for p in points] == [1, 2, 3]


def test_non_finite_values_are_dropped():
    assert parse_row("1,inf,2,3", 1) is None
    assert parse_row("1,2,nan,3", 1) is None
    assert parse_row("1,2,3,-inf", 1) is None


def test_blank_lines_and_whitespace_are_ignored():
    text = "\n  Point , Northing , Easting , Elevation , Description \n\n 1 , 10 , 20 , 5 , curb \n\n"
    points = parse_tabular(text)
    assert len(points) == 1
    assert points[0].description == "curb"


def test_cap_applies_to_valid_records():
    rows = ["bad,abc,1,1"] * 5 + [f"{i},{i}.0,1.0,2.0" for i in range(1, 80)]
    points = parse_tabular("\n".join(rows))
    assert len(points) == 50
    assert points[0].point == 1
    assert len(parse_tabular("\n".join(rows), limit=3)) == 3


def test_summary_sample_matches_parsed_records():
    rows = ["bad,abc,1,1"] * 3 + [f"{i},{i}.0,1.0,2.0" for i in range(1, 70)]
    text = "\n".join(rows)
    for limit in (None, 4):
        assert list(summarize_points(text, limit=limit).preview_points) == parse_tabular(text, limit=limit)
    assert take_capped([None, None], limit=5) == []


def test_summarize_points_statistics_cover_all_rows():
    rows = ["Point,Northing,Easting,Elevation,Description"]
    rows += [f"{i},{100 + i},{200 + 2 * i},{i},P" for i in range(1, 61)]
    rows.append("61,oops,1,1,bad")
    preview = summarize_points("\n".join(rows), filename="surface.csv", limit=50)

    assert preview.kind == "single"
    assert len(preview.preview_points) == 50
    assert preview.total_points == 60
    assert preview.has_data()

    stats = preview.elevation_stats
    assert stats.min == 1
    assert stats.max == 60
    assert stats.mean == pytest.approx(30.5)
    assert stats.median == pytest.approx(30.5)
    assert stats.q1 < stats.median < stats.q3

    cov = preview.spatial_coverage
    assert (cov.min_northing, cov.max_northing) == (101, 160)
    assert (cov.min_easting, cov.max_easting) == (202, 320)
    assert cov.area == pytest.approx(59 * 118)

    dq = preview.data_quality
    assert dq.total_rows == 61
    assert dq.valid_points == 60
    assert dq.dropped_rows == 1
    assert dq.completeness == pytest.approx(60 / 61)

    assert preview.file_info.filename == "surface.csv"
    assert preview.file_info.source == "fallback"


def test_summarize_single_point_and_empty():
    one = summarize_points("1,10,20,5,x")
    assert one.elevation_stats.q1 == one.elevation_stats.q3 == 5
    assert one.elevation_stats.std_dev == 0

    empty = summarize_points("")
    assert empty.has_data() is False
    assert empty.elevation_stats is None
    assert empty.spatial_coverage is None
    assert empty.data_quality.completeness == 0.0
