"""CLI: fetch the latest CGM readings and print or export them."""

from __future__ import annotations

import argparse
import logging
from datetime import datetime
from pathlib import Path

from cgm_sync.checkpoint import CheckpointStore
from cgm_sync.config import Settings
from cgm_sync.export import records_to_frame, write_export_json, write_records_xlsx
from cgm_sync.merge import SeriesMerger
from cgm_sync.model import SyncOptions, SyncResult
from cgm_sync.sources.glooko import GlookoFetcher, StaticSessionAuthenticator
from cgm_sync.sync import SyncOrchestrator
from cgm_sync.transform import RecordTransformer
from cgm_sync.window import WindowPlanner

_PREVIEW_ROWS = 10


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed argparse namespace.
    """
    parser = argparse.ArgumentParser(
        description="Fetch CGM readings from Glooko in Nightscout entry format."
    )
    parser.add_argument(
        "--hours",
        type=float,
        default=None,
        help="Hours of data for a full fetch (default: GLOOKO_LOOKBACK_HOURS or 24).",
    )
    parser.add_argument(
        "--full", action="store_true", help="Force a full fetch, ignore checkpoint."
    )
    parser.add_argument(
        "--export",
        nargs="?",
        const="",
        default=None,
        metavar="FILE",
        help="Export entries to a JSON file (default: cgm-readings-<date>.json).",
    )
    parser.add_argument("--xlsx", default=None, metavar="FILE", help="Write an Excel sheet.")
    parser.add_argument(
        "--checkpoint-file", default=None, help="Checkpoint path override."
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    return parser.parse_args(argv)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_orchestrator(settings: Settings) -> SyncOrchestrator:
    """Wire the Glooko collaborators and the sync core from settings."""
    authenticator = StaticSessionAuthenticator(
        settings.patient_id, settings.session_cookie
    )
    fetcher = GlookoFetcher(
        api_url=settings.api_url,
        web_url=settings.web_url,
        external_api_url=settings.external_api_url if settings.use_external_api else None,
        timeout=settings.http_timeout_seconds,
    )
    return SyncOrchestrator(
        authenticator,
        fetcher,
        CheckpointStore(Path(settings.checkpoint_file).expanduser()),
        planner=WindowPlanner(full_policy=settings.full_window_policy),
        merger=SeriesMerger(source=settings.source_name),
        transformer=RecordTransformer(settings.transform_config()),
        max_retries=settings.max_retries,
        retry_base_delay=settings.retry_base_delay_seconds,
    )


def print_summary(result: SyncResult) -> None:
    """Print the cycle outcome with a preview of the newest readings."""
    seconds = result.duration_millis / 1000
    if not result.success:
        print(f"FAILED: {result.error}")
        print(f"Execution time: {seconds:.2f}s")
        return
    if not result.records:
        print("No new readings available")
        return
    latest, oldest = result.records[0], result.records[-1]
    print(f"OK: {result.count} readings ({result.mode.value if result.mode else '-'})")
    print(f"Execution time: {seconds:.2f}s")
    print(f"Latest: {latest.value_native_unit} mmol/L @ {latest.local_display_time}")
    print(f"Oldest: {oldest.value_native_unit} mmol/L @ {oldest.local_display_time}")
    print(f"Trend: {latest.direction.value}")
    for i, record in enumerate(result.records[:_PREVIEW_ROWS], start=1):
        print(
            f"  {i}. {record.value_native_unit} mmol/L "
            f"({record.value_target_unit} mg/dL) @ {record.local_display_time}"
        )
    if result.count > _PREVIEW_ROWS:
        print(f"  ... and {result.count - _PREVIEW_ROWS} more")
    for warning in result.warnings:
        print(f"WARNING: {warning}")


def main(argv: list[str] | None = None) -> int:
    """Run one sync cycle.

    Returns:
        Exit code (0 on success, 1 on failure).
    """
    ns = parse_args(argv)
    overrides: dict[str, object] = {}
    if ns.checkpoint_file:
        overrides["checkpoint_file"] = Path(ns.checkpoint_file)
    settings = Settings(**overrides)  # type: ignore[arg-type]
    configure_logging("DEBUG" if ns.debug else settings.log_level)

    orchestrator = build_orchestrator(settings)
    options = SyncOptions(
        lookback_hours=ns.hours if ns.hours is not None else settings.lookback_hours,
        force_full=ns.full,
    )
    result = orchestrator.run_cycle(options)
    print_summary(result)
    if not result.success:
        return 1

    identity = result.session.identity if result.session else settings.patient_id
    if ns.export is not None:
        if result.records:
            name = ns.export or f"cgm-readings-{datetime.now().date().isoformat()}.json"
            out = write_export_json(result.records, Path(name), identity)
            print(f"OK: Exported {result.count} readings to {out}")
        else:
            print("No data to export")
    if ns.xlsx:
        frame = records_to_frame(result.records, settings.display_timezone)
        out = write_records_xlsx(frame, Path(ns.xlsx))
        print(f"OK: Output: {out}")
    return 0
