"""Terminal driver: submit LAS/LAZ files (or watch an existing job), show progress and preview, save outputs."""
import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

import pydantic

from surfacegen.core.config import settings
from surfacegen.core.constants import EPSG_REFERENCES, GRID_SPACING_OPTIONS, OUTPUT_FORMATS
from surfacegen.errors import JobFailed, PollingStopped, TransportError, ValidationError
from surfacegen.jobs.events import EventKind, JobEvent
from surfacegen.jobs.orchestrator import JobOrchestrator
from surfacegen.models.schemas import ProcessingConfig, ResultSnapshot
from surfacegen.observability.log_format import configure_logging

EXIT_OK = 0
EXIT_JOB_FAILED = 1
EXIT_USAGE = 2


def print_event(event: JobEvent) -> None:
    """Render lifecycle events as short status lines (stands in for the progress bar and toasts)."""
    if event.kind == EventKind.UPLOAD_PROGRESS:
        print(f"\rUploading... {event.progress}%", end="", flush=True)
        if event.progress == 100:
            print()
    elif event.kind == EventKind.STATUS and event.job is not None:
        job = event.job
        if job.progress is not None:
            print(f"{job.status.value}... {job.progress:.0f}%")
        else:
            print(f"{job.status.value}...")
    elif event.kind == EventKind.COMPLETED:
        print("Processing completed successfully!")
    elif event.kind == EventKind.FAILED:
        print(f"Error: {event.error}", file=sys.stderr)
    elif event.kind == EventKind.PREVIEW_UNAVAILABLE:
        print("No preview available.")


def format_preview(snapshot: ResultSnapshot) -> str:
    """Preview table: totals, per-file breakdown, then the sampled PNEZD points."""
    if not snapshot.preview_available:
        return "No preview available."
    lines = [f"Total points: {snapshot.total_points}"]
    if len(snapshot.per_file) > 1:
        for fb in snapshot.per_file:
            lines.append(f"  {fb.filename or '(unnamed)'}: {fb.total_points} points")
    lines.append(f"{'Point':>7} {'Northing':>14} {'Easting':>14} {'Elevation':>10}  Description")
    for p in snapshot.points:
        lines.append(f"{p.point:>7} {p.northing:>14.3f} {p.easting:>14.3f} {p.elevation:>10.3f}  {p.description}")
    return "\n".join(lines)


async def _run(args: argparse.Namespace) -> int:
    async with JobOrchestrator() as orch:
        orch.subscribe(print_event)
        merge = False
        if args.command == "process":
            try:
                config = ProcessingConfig(
                    grid_spacing=args.grid_spacing,
                    threshold=args.threshold,
                    source_epsg=args.source_epsg,
                    target_epsg=args.target_epsg,
                    output_formats=args.formats or ["dxf"],
                    merge_outputs=args.merge,
                    merged_output_name=args.merged_name,
                )
            except pydantic.ValidationError as e:
                print(f"Invalid configuration: {e}", file=sys.stderr)
                return EXIT_USAGE
            merge = config.merge_outputs
            try:
                job = await orch.submit(args.files, config)
            except ValidationError as e:
                print(str(e), file=sys.stderr)
                return EXIT_USAGE
            except TransportError as e:
                print(f"Upload failed: {e.user_message()}", file=sys.stderr)
                return EXIT_USAGE
            print(f"Files uploaded successfully! Job {job.job_id} queued.")
        else:
            orch.watch(args.job_id)

        try:
            await orch.wait()
        except (JobFailed, PollingStopped):
            return EXIT_JOB_FAILED

        print(format_preview(orch.snapshot))
        if args.out:
            try:
                for path in await orch.download_all(args.out, merge_enabled=merge):
                    print(f"Downloaded {path}")
            except TransportError as e:
                print(f"Download failed: {e.user_message()}", file=sys.stderr)
                return EXIT_USAGE
        else:
            for name, url in orch.snapshot.download_urls.items():
                print(f"{name}: {url}")
    return EXIT_OK


def print_settings() -> None:
    """Print effective client settings and processing options."""
    print("Client settings")
    print("---------------")
    for name, value in settings.model_dump().items():
        print(f"  {name:<30} = {value}")
    print("")
    print(f"Grid spacing (ft): {', '.join(str(v) for v in GRID_SPACING_OPTIONS)}")
    print(f"Output formats:    {', '.join(OUTPUT_FORMATS)}")
    for code, name in EPSG_REFERENCES.items():
        print(f"  EPSG:{code}  {name}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="surfacegen", description="LiDAR surface generator client")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("process", help="Upload LAS/LAZ files and wait for results")
    p.add_argument("files", nargs="+", type=Path)
    p.add_argument("--grid-spacing", type=int, default=25, choices=sorted(GRID_SPACING_OPTIONS))
    p.add_argument("--threshold", type=float, default=0.1, help="Breakline threshold (0.1-0.3)")
    p.add_argument("--source-epsg", type=int)
    p.add_argument("--target-epsg", type=int)
    p.add_argument("--format", dest="formats", action="append", choices=OUTPUT_FORMATS, help="Repeat for several")
    p.add_argument("--merge", action="store_true", help="Merge outputs into one file set")
    p.add_argument("--merged-name")
    p.add_argument("--out", type=Path, help="Directory to save outputs into")

    w = sub.add_parser("watch", help="Track an existing job")
    w.add_argument("job_id")
    w.add_argument("--out", type=Path, help="Directory to save outputs into")

    sub.add_parser("settings", help="Print effective configuration")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(settings.log_level)
    if args.command == "settings":
        print_settings()
        return EXIT_OK
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
