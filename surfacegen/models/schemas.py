from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from surfacegen.core.constants import (
    DEFAULT_GRID_SPACING,
    DEFAULT_OUTPUT_FORMATS,
    DEFAULT_THRESHOLD,
    GRID_SPACING_OPTIONS,
    MAX_THRESHOLD,
    MIN_THRESHOLD,
    OUTPUT_FORMATS,
)


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    DELETED = "deleted"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.DELETED})


# -------------------------
# Request side
# -------------------------

class ProcessingConfig(BaseModel):
    """Processing options sent with an upload: grid spacing, breakline threshold, coordinate systems, output formats and merge flag.
    Why available: Opaque to the orchestrator beyond being serialized into the multipart form."""

    grid_spacing: int = Field(DEFAULT_GRID_SPACING, description="Grid spacing in feet (sent as voxel_size)")
    threshold: float = Field(DEFAULT_THRESHOLD, ge=MIN_THRESHOLD, le=MAX_THRESHOLD, description="Breakline detail threshold")
    source_epsg: Optional[int] = Field(None, gt=0, description="Source coordinate system EPSG code")
    target_epsg: Optional[int] = Field(None, gt=0, description="Target coordinate system EPSG code")
    output_formats: List[str] = Field(default_factory=lambda: list(DEFAULT_OUTPUT_FORMATS))
    merge_outputs: bool = False
    merged_output_name: Optional[str] = None
    nth_point: Optional[int] = Field(None, gt=0, description="Keep every nth point when thinning")

    @field_validator("grid_spacing")
    @classmethod
    def known_grid_spacing(cls, v: int) -> int:
        if v not in GRID_SPACING_OPTIONS:
            raise ValueError(f"grid spacing must be one of {sorted(GRID_SPACING_OPTIONS)}")
        return v

    @field_validator("output_formats")
    @classmethod
    def known_output_formats(cls, v: List[str]) -> List[str]:
        """Lowercase, dedupe (order kept) and reject unknown formats. An empty list is left for upload validation to reject."""
        out: List[str] = []
        for fmt in v:
            fmt = fmt.strip().lower()
            if fmt not in OUTPUT_FORMATS:
                raise ValueError(f"unknown output format: {fmt!r}")
            if fmt not in out:
                out.append(fmt)
        return out

    def to_form_fields(self) -> List[Tuple[str, str]]:
        """Multipart form fields in the names the processing API expects."""
        fields = [
            ("voxel_size", str(self.grid_spacing)),
            ("threshold", str(self.threshold)),
        ]
        if self.nth_point:
            fields.append(("nth_point", str(self.nth_point)))
        if self.source_epsg:
            fields.append(("source_epsg", str(self.source_epsg)))
        if self.target_epsg:
            fields.append(("target_epsg", str(self.target_epsg)))
        if self.output_formats:
            fields.append(("output_formats", ",".join(self.output_formats)))
        fields.append(("merge_outputs", "true" if self.merge_outputs else "false"))
        if self.merged_output_name:
            fields.append(("merged_output_name", self.merged_output_name))
        return fields


# -------------------------
# Response side
# -------------------------

class UploadResponse(BaseModel):
    job_id: str
    status: JobStatus = JobStatus.QUEUED
    message: str = ""
    files_uploaded: int = Field(0, ge=0)


class JobStatusResponse(BaseModel):
    """Response for GET /api/v1/jobs/{job_id}: lifecycle status, optional progress and error message."""

    job_id: str
    status: JobStatus
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    completed_at: Optional[str] = None
    progress: Optional[float] = Field(None, ge=0, le=100)
    input_files: List[str] = Field(default_factory=list)
    output_files: List[str] = Field(default_factory=list)
    error_message: Optional[str] = None


class DownloadManifest(BaseModel):
    """Response for GET /api/v1/download/{job_id}: filename -> time-limited URL, plus expiry. Replaced wholesale, never merged."""

    model_config = ConfigDict(frozen=True)

    job_id: Optional[str] = None
    download_urls: Dict[str, str] = Field(default_factory=dict)
    expires_at: Optional[str] = None

    def find_by_extension(self, extension: str) -> Optional[Tuple[str, str]]:
        """First (filename, url) whose name ends with extension (case-insensitive), or None."""
        ext = extension.lower()
        for name, url in self.download_urls.items():
            if name.lower().endswith(ext):
                return name, url
        return None


class Job(BaseModel):
    """Client-side view of one server job. Replaced (never edited) by the status poller on each tick."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    status: JobStatus = JobStatus.QUEUED
    progress: Optional[float] = None
    error_message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


# -------------------------
# Preview
# -------------------------

class PointRecord(BaseModel):
    """One PNEZD row: point id, northing, easting, elevation, description."""

    model_config = ConfigDict(frozen=True)

    point: int
    northing: float = Field(..., allow_inf_nan=False)
    easting: float = Field(..., allow_inf_nan=False)
    elevation: float = Field(..., allow_inf_nan=False)
    description: str = ""


class ElevationStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    min: float
    max: float
    mean: float
    q1: float
    median: float
    q3: float
    std_dev: float


class SpatialCoverage(BaseModel):
    model_config = ConfigDict(frozen=True)

    min_northing: float
    max_northing: float
    min_easting: float
    max_easting: float
    width: float = Field(..., ge=0, description="Easting extent")
    height: float = Field(..., ge=0, description="Northing extent")
    area: float = Field(..., ge=0, description="Bounding box area in squared CRS units")


class DataQuality(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_rows: int = Field(0, ge=0)
    valid_points: int = Field(0, ge=0)
    dropped_rows: int = Field(0, ge=0)
    completeness: float = Field(0.0, ge=0, le=1)


class FileInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    filename: Optional[str] = None
    size_bytes: Optional[int] = Field(None, ge=0)
    source: str = Field("preview", description="preview (structured endpoint) or fallback (parsed result file)")


class SingleFilePreview(BaseModel):
    """Preview of one output: capped sample of points plus elevation, coverage and quality statistics."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    kind: Literal["single"] = "single"
    job_id: Optional[str] = None
    preview_points: Tuple[PointRecord, ...] = ()
    total_points: int = Field(0, ge=0)
    elevation_stats: Optional[ElevationStats] = None
    spatial_coverage: Optional[SpatialCoverage] = None
    data_quality: Optional[DataQuality] = None
    file_info: Optional[FileInfo] = None

    def has_data(self) -> bool:
        return bool(self.preview_points) or self.total_points > 0


class MultiFilePreview(BaseModel):
    """Preview of a multi-file job: one single-file preview per input plus an optional merged variant."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    kind: Literal["multi"] = "multi"
    job_id: Optional[str] = None
    files: Tuple[SingleFilePreview, ...] = ()
    merged: Optional[SingleFilePreview] = None
    file_count: int = Field(0, ge=0)

    def has_data(self) -> bool:
        if any(f.has_data() for f in self.files):
            return True
        return self.merged is not None and self.merged.has_data()


PreviewSnapshot = Annotated[Union[SingleFilePreview, MultiFilePreview], Field(discriminator="kind")]

_preview_adapter: TypeAdapter = TypeAdapter(PreviewSnapshot)


def parse_preview(payload: Dict[str, Any]) -> Union[SingleFilePreview, MultiFilePreview]:
    """Tag a raw preview payload with its kind and validate it.

    The service tells the two shapes apart only by the presence of a per-file
    ``files`` list; that check happens here, once, and everything downstream
    switches on ``kind``.
    """
    data = dict(payload or {})
    if data.get("kind") not in ("single", "multi"):
        data["kind"] = "multi" if isinstance(data.get("files"), list) else "single"
    if data["kind"] == "multi" and not data.get("file_count"):
        data["file_count"] = len(data.get("files") or [])
    return _preview_adapter.validate_python(data)


# -------------------------
# Presentation
# -------------------------

class FileBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    filename: Optional[str] = None
    total_points: int = 0
    preview_points: int = 0


class ResultSnapshot(BaseModel):
    """Presentation-ready merge of the latest preview and download manifest for one job.
    Why available: The view reads only this; it is swapped wholesale so preview and downloads never disagree."""

    model_config = ConfigDict(frozen=True)

    job_id: Optional[str] = None
    preview_loading: bool = False
    preview: Optional[PreviewSnapshot] = None
    preview_available: bool = False
    total_points: int = 0
    per_file: Tuple[FileBreakdown, ...] = ()
    points: Tuple[PointRecord, ...] = ()
    download_urls: Dict[str, str] = Field(default_factory=dict)
    expires_at: Optional[str] = None
