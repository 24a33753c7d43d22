"""Tests for CLI entrypoints."""

from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path
from typing import Any

import pytest
from conftest import NOW, FakeAuthenticator, FakeFetcher, make_point
from openpyxl import load_workbook

from cgm_sync import cli
from cgm_sync.checkpoint import CheckpointStore
from cgm_sync.config import Settings
from cgm_sync.model import Band, FetchMode, SyncOptions, SyncResult
from cgm_sync.sync import SyncOrchestrator
from cgm_sync.transform import RecordTransformer
from cgm_sync.window import FullWindowPolicy


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    for key in ("GLOOKO_PATIENT_ID", "GLOOKO_SESSION_COOKIE", "GLOOKO_LOOKBACK_HOURS"):
        monkeypatch.delenv(key, raising=False)


def _result() -> SyncResult:
    points = [make_point(NOW - timedelta(minutes=5 * i), 5.0 + i) for i in range(12)]
    records = RecordTransformer().transform(points).records
    return SyncResult(success=True, records=records, mode=FetchMode.FULL)


class _Orchestrator:
    def __init__(self, result: SyncResult) -> None:
        self.result = result
        self.options: list[SyncOptions] = []

    def run_cycle(self, options: SyncOptions) -> SyncResult:
        self.options.append(options)
        return self.result


def test_parse_args_defaults() -> None:
    ns = cli.parse_args([])
    assert ns.hours is None
    assert ns.full is False
    assert ns.export is None
    assert ns.xlsx is None


def test_parse_args_custom_values() -> None:
    ns = cli.parse_args(["--hours", "6", "--full", "--export", "--debug"])
    assert ns.hours == 6.0
    assert ns.full is True
    assert ns.export == ""
    assert ns.debug is True


def test_settings_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GLOOKO_PATIENT_ID", "patient-9")
    monkeypatch.setenv("GLOOKO_LOOKBACK_HOURS", "6")
    monkeypatch.setenv("GLOOKO_FULL_WINDOW_POLICY", "calendar_day")
    monkeypatch.setenv("GLOOKO_TIMESTAMP_CORRECTION_HOURS", "0")

    settings = Settings()

    assert settings.patient_id == "patient-9"
    assert settings.lookback_hours == 6
    assert settings.full_window_policy is FullWindowPolicy.CALENDAR_DAY
    assert settings.transform_config().timestamp_correction == timedelta(0)


def test_build_orchestrator_from_settings() -> None:
    orchestrator = cli.build_orchestrator(Settings(patient_id="p", session_cookie="c"))
    assert isinstance(orchestrator, SyncOrchestrator)


def test_main_happy_path(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    fake = _Orchestrator(_result())
    captured: dict[str, Any] = {}

    def _build(settings: Settings) -> _Orchestrator:
        captured["settings"] = settings
        return fake

    monkeypatch.setattr(cli, "build_orchestrator", _build)
    export = tmp_path / "out.json"
    xlsx = tmp_path / "out.xlsx"

    code = cli.main(
        [
            "--hours",
            "6",
            "--export",
            str(export),
            "--xlsx",
            str(xlsx),
            "--checkpoint-file",
            str(tmp_path / "cp.json"),
        ]
    )

    assert code == 0
    assert fake.options == [SyncOptions(lookback_hours=6.0, force_full=False)]
    assert captured["settings"].checkpoint_file == tmp_path / "cp.json"

    data = json.loads(export.read_text(encoding="utf-8"))
    assert data["count"] == 12
    assert data["entries"][0]["sgv"] == 90
    assert load_workbook(xlsx).sheetnames == ["CGM readings", "Daily summary"]

    out = capsys.readouterr().out
    assert "OK: 12 readings (FULL)" in out
    assert "... and 2 more" in out


def test_main_failure_returns_one(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    fake = _Orchestrator(SyncResult(success=False, error="HTTP 500"))
    monkeypatch.setattr(cli, "build_orchestrator", lambda settings: fake)

    assert cli.main([]) == 1
    assert "FAILED: HTTP 500" in capsys.readouterr().out


def test_main_with_fakes_end_to_end(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    bands = {Band.NORMAL: [make_point(NOW, 6.0)]}

    def _build(settings: Settings) -> SyncOrchestrator:
        return SyncOrchestrator(
            FakeAuthenticator(),
            FakeFetcher(bands),
            CheckpointStore(settings.checkpoint_file),
            clock=lambda: NOW,
            sleep=lambda _: None,
        )

    monkeypatch.setattr(cli, "build_orchestrator", _build)

    assert cli.main(["--checkpoint-file", str(tmp_path / "cp.json")]) == 0
    saved = json.loads((tmp_path / "cp.json").read_text(encoding="utf-8"))
    assert saved["lastReadingTime"] == "2026-10-19T12:00:00.000Z"
