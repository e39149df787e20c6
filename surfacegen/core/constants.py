"""Static processing options offered by the surface generation service."""

# Grid spacing in feet (sent as voxel_size)
GRID_SPACING_OPTIONS = {25: "25 feet", 50: "50 feet"}
DEFAULT_GRID_SPACING = 25

# Breakline threshold slider bounds
MIN_THRESHOLD = 0.1
MAX_THRESHOLD = 0.3
THRESHOLD_STEP = 0.01
DEFAULT_THRESHOLD = 0.1

OUTPUT_FORMATS = ("dxf", "csv")
DEFAULT_OUTPUT_FORMATS = ("dxf",)

# Result file the preview fallback reads points from
TABULAR_RESULT_EXTENSION = ".csv"

ALLOWED_EXTENSIONS = (".las", ".laz")
UPLOAD_MIME_TYPE = "application/octet-stream"

# Indiana statewide LiDAR reference systems
EPSG_REFERENCES = {
    2967: "NAD83(HARN) / Indiana East (ftUS)",
    2968: "NAD83(HARN) / Indiana West (ftUS)",
}

# Download entries kept when merged outputs were requested
MERGED_OUTPUT_MARKERS = ("merged", "output")
