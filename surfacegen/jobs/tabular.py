import io
import math
import statistics
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional, Tuple

from surfacegen.core.config import settings
from surfacegen.models.schemas import (
    DataQuality,
    ElevationStats,
    FileInfo,
    PointRecord,
    SingleFilePreview,
    SpatialCoverage,
)

# A first line containing any of these (case-insensitive) is a header
HEADER_TOKENS = ("point", "northing", "easting")


def is_header(line: str) -> bool:
    lower = line.lower()
    return any(tok in lower for tok in HEADER_TOKENS)


def _coord(fields: List[str], idx: int) -> float:
    """Missing or empty field -> 0.0; present but not a number -> NaN (the row is then dropped)."""
    if idx >= len(fields) or fields[idx] == "":
        return 0.0
    try:
        return float(fields[idx])
    except ValueError:
        return math.nan


def _point_id(fields: List[str], running_index: int) -> int:
    raw = fields[0] if fields else ""
    try:
        value = int(raw)
    except ValueError:
        try:
            f = float(raw)
            value = int(f) if math.isfinite(f) else 0
        except ValueError:
            value = 0
    return value or running_index


def parse_row(line: str, running_index: int) -> Optional[PointRecord]:
    """Parse one comma-separated PNEZD row. Returns None when northing, easting or elevation is not a finite number."""
    fields = [v.strip() for v in line.split(",")]
    northing = _coord(fields, 1)
    easting = _coord(fields, 2)
    elevation = _coord(fields, 3)
    if not all(math.isfinite(v) for v in (northing, easting, elevation)):
        return None
    return PointRecord(
        point=_point_id(fields, running_index),
        northing=northing,
        easting=easting,
        elevation=elevation,
        description=fields[4] if len(fields) > 4 else "",
    )


def parse_rows_stream(lines: Iterable[str]) -> Iterator[Tuple[int, Optional[PointRecord]]]:
    """Streaming parser: yields (running_index, record or None) for each non-empty data line.
    Why available: Lets the fallback compute statistics over every row while materializing only a capped sample."""
    first = True
    index = 0
    for line in lines:
        line = line.strip()
        if not line:
            continue
        if first:
            first = False
            if is_header(line):
                continue
        index += 1
        yield index, parse_row(line, index)


def take_capped(records: Iterable[Optional[PointRecord]], limit: Optional[int] = None) -> List[PointRecord]:
    """First `limit` valid records (default: the preview display budget); None entries are skipped, not counted."""
    cap = settings.preview_point_limit if limit is None else limit
    out: List[PointRecord] = []
    for record in records:
        if record is None:
            continue
        if len(out) >= cap:
            break
        out.append(record)
    return out


def parse_tabular(text: str, limit: Optional[int] = None) -> List[PointRecord]:
    """Parse raw PNEZD text into at most `limit` valid records. Empty input -> []."""
    return take_capped((record for _, record in parse_rows_stream(io.StringIO(text or ""))), limit)


@dataclass
class _Accumulator:
    """Running totals for one pass over a result file."""

    records: List[PointRecord] = field(default_factory=list)
    total_rows: int = 0
    min_n: float = math.inf
    max_n: float = -math.inf
    min_e: float = math.inf
    max_e: float = -math.inf

    def add(self, record: Optional[PointRecord]) -> None:
        self.total_rows += 1
        if record is None:
            return
        self.records.append(record)
        self.min_n = min(self.min_n, record.northing)
        self.max_n = max(self.max_n, record.northing)
        self.min_e = min(self.min_e, record.easting)
        self.max_e = max(self.max_e, record.easting)


def elevation_stats(values: List[float]) -> Optional[ElevationStats]:
    if not values:
        return None
    if len(values) == 1:
        q1 = median = q3 = values[0]
    else:
        q1, median, q3 = statistics.quantiles(values, n=4, method="inclusive")
    return ElevationStats(
        min=min(values),
        max=max(values),
        mean=statistics.fmean(values),
        q1=q1,
        median=median,
        q3=q3,
        std_dev=statistics.pstdev(values),
    )


def summarize_points(text: str, filename: Optional[str] = None, limit: Optional[int] = None) -> SingleFilePreview:
    """Build a single-file preview from a raw result file: capped point sample plus elevation, coverage and quality stats over all rows."""
    acc = _Accumulator()
    for _, record in parse_rows_stream(io.StringIO(text or "")):
        acc.add(record)

    valid = len(acc.records)
    coverage = None
    if valid:
        width = acc.max_e - acc.min_e
        height = acc.max_n - acc.min_n
        coverage = SpatialCoverage(
            min_northing=acc.min_n,
            max_northing=acc.max_n,
            min_easting=acc.min_e,
            max_easting=acc.max_e,
            width=width,
            height=height,
            area=width * height,
        )

    return SingleFilePreview(
        preview_points=tuple(take_capped(acc.records, limit)),
        total_points=valid,
        elevation_stats=elevation_stats([r.elevation for r in acc.records]),
        spatial_coverage=coverage,
        data_quality=DataQuality(
            total_rows=acc.total_rows,
            valid_points=valid,
            dropped_rows=acc.total_rows - valid,
            completeness=(valid / acc.total_rows) if acc.total_rows else 0.0,
        ),
        file_info=FileInfo(
            filename=filename,
            size_bytes=len((text or "").encode("utf-8")),
            source="fallback",
        ),
    )
