import pydantic
import pytest

from surfacegen.models.schemas import (
    DownloadManifest,
    Job,
    JobStatus,
    MultiFilePreview,
    PointRecord,
    ProcessingConfig,
    SingleFilePreview,
    parse_preview,
)


def _point(n):
    return {"point": n, "northing": 1.0, "easting": 2.0, "elevation": 3.0, "description": ""}


def test_parse_preview_single_shape():
    p = parse_preview({"job_id": "j", "preview_points": [_point(1)], "total_points": 10})
    assert isinstance(p, SingleFilePreview)
    assert p.kind == "single"
    assert p.has_data()


def test_parse_preview_multi_shape_by_files_list():
    p = parse_preview({"files": [{"preview_points": []}, {"total_points": 3}]})
    assert isinstance(p, MultiFilePreview)
    assert p.kind == "multi"
    assert p.file_count == 2
    assert p.has_data()


def test_parse_preview_empty_shell_is_not_valid():
    assert parse_preview({}).has_data() is False
    assert parse_preview({"files": []}).has_data() is False
    assert parse_preview({"preview_points": [], "total_points": 0}).has_data() is False


def test_multi_valid_when_only_third_of_five_has_points():
    files = [{"preview_points": []} for _ in range(5)]
    files[2] = {"preview_points": [_point(1)]}
    p = parse_preview({"files": files})
    assert p.has_data()


def test_multi_merged_variant_counts():
    p = parse_preview({"files": [{}, {}], "merged": {"total_points": 12}})
    assert p.has_data()


def test_preview_is_read_only():
    p = parse_preview({"preview_points": [_point(1)]})
    with pytest.raises(pydantic.ValidationError):
        p.total_points = 5
    assert isinstance(p.preview_points, tuple)


def test_point_record_rejects_non_finite():
    with pytest.raises(pydantic.ValidationError):
        PointRecord(point=1, northing=float("nan"), easting=0, elevation=0)


def test_job_status_terminal():
    assert JobStatus.COMPLETED.is_terminal
    assert JobStatus.FAILED.is_terminal
    assert JobStatus.DELETED.is_terminal
    assert not JobStatus.QUEUED.is_terminal
    assert not Job(job_id="x", status="processing").is_terminal


def test_processing_config_form_fields():
    cfg = ProcessingConfig(
        grid_spacing=50,
        threshold=0.2,
        source_epsg=2967,
        target_epsg=2968,
        output_formats=["DXF", "csv", "dxf"],
        merge_outputs=True,
        merged_output_name="site",
    )
    assert cfg.output_formats == ["dxf", "csv"]
    fields = dict(cfg.to_form_fields())
    assert fields == {
        "voxel_size": "50",
        "threshold": "0.2",
        "source_epsg": "2967",
        "target_epsg": "2968",
        "output_formats": "dxf,csv",
        "merge_outputs": "true",
        "merged_output_name": "site",
    }


def test_processing_config_defaults_and_bounds():
    cfg = ProcessingConfig()
    assert cfg.grid_spacing == 25
    assert cfg.threshold == 0.1
    assert cfg.output_formats == ["dxf"]
    assert dict(cfg.to_form_fields())["merge_outputs"] == "false"

    with pytest.raises(pydantic.ValidationError):
        ProcessingConfig(grid_spacing=30)
    with pytest.raises(pydantic.ValidationError):
        ProcessingConfig(threshold=0.5)
    with pytest.raises(pydantic.ValidationError):
        ProcessingConfig(output_formats=["las"])


def test_manifest_find_by_extension():
    m = DownloadManifest(download_urls={"a.dxf": "u1", "b.CSV": "u2"})
    assert m.find_by_extension(".csv") == ("b.CSV", "u2")
    assert m.find_by_extension(".txt") is None
