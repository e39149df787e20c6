from surfacegen.jobs.aggregator import ResultAggregator, merge
from surfacegen.models.schemas import DownloadManifest, MultiFilePreview
from tests.fakes import single

MANIFEST = DownloadManifest(
    job_id="j1",
    download_urls={"merged_output.dxf": "u1", "a.dxf": "u2", "a.csv": "u3"},
    expires_at="2026-10-19T12:00:00Z",
)


def test_merge_is_idempotent():
    preview = single(n_points=3, total=1200, filename="a.las")
    first = merge("j1", preview, MANIFEST)
    second = merge("j1", preview, MANIFEST)
    assert first == second
    assert first.total_points == 1200
    assert first.preview_available is True
    assert len(first.points) == 3
    assert first.download_urls == MANIFEST.download_urls
    assert first.expires_at == "2026-10-19T12:00:00Z"


def test_merge_single_uses_point_count_when_total_missing():
    snap = merge("j1", single(n_points=4), None)
    assert snap.total_points == 4
    assert snap.per_file[0].preview_points == 4
    assert snap.download_urls == {}


def test_merge_multi_exposes_total_and_breakdown():
    preview = MultiFilePreview(
        files=(single(2, 100, "a.las"), single(0, 0, "b.las"), single(3, 250, "c.las")),
        file_count=3,
    )
    snap = merge("j1", preview, MANIFEST)
    assert snap.total_points == 350
    assert [(f.filename, f.total_points) for f in snap.per_file] == [
        ("a.las", 100),
        ("b.las", 0),
        ("c.las", 250),
    ]
    assert len(snap.points) == 5


def test_merge_multi_prefers_merged_variant():
    preview = MultiFilePreview(
        files=(single(2, 100, "a.las"), single(2, 100, "b.las")),
        merged=single(4, 190, "merged.las"),
        file_count=2,
    )
    snap = merge("j1", preview, None)
    assert snap.total_points == 190
    assert len(snap.per_file) == 2
    assert len(snap.points) == 4


def test_merge_caps_display_points():
    preview = MultiFilePreview(files=(single(40), single(40)), file_count=2)
    assert len(merge("j1", preview, None, point_limit=50).points) == 50


def test_merge_without_preview_is_empty_state():
    snap = merge("j1", None, MANIFEST)
    assert snap.preview_available is False
    assert snap.total_points == 0
    assert snap.points == ()
    assert snap.download_urls


def test_aggregator_replaces_snapshot_wholesale():
    agg = ResultAggregator()
    empty = agg.snapshot
    loading = agg.begin_loading("j1")
    assert loading is agg.snapshot
    assert loading is not empty
    assert loading.preview_loading is True
    assert empty.preview_loading is False

    published = agg.publish("j1", single(1, 10), MANIFEST)
    assert published.preview_loading is False
    assert loading.preview_loading is True
    assert agg.snapshot.total_points == 10

    agg.reset("j2")
    assert agg.snapshot.job_id == "j2"
    assert agg.snapshot.download_urls == {}


def test_downloadable_files_filters_merged_outputs():
    agg = ResultAggregator()
    agg.publish("j1", None, MANIFEST)
    assert agg.downloadable_files() == MANIFEST.download_urls
    assert agg.downloadable_files(merge_enabled=True) == {"merged_output.dxf": "u1"}
