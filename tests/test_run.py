"""Tests for the command-line entry point: exit codes and the run log pack."""
from __future__ import annotations

import json
import logging
import os

import pytest

from poa_sync import run
from poa_sync.config import SyncSettings
from poa_sync.errors import (
    ConfigError,
    DestinationMutationError,
    ResponseShapeError,
    SourceFetchError,
)
from poa_sync.run_logger import RunLogger

ENV = {
    "POA_SPREADSHEET_ID": "sheet-1",
    "POA_SENDER": "forms@example.edu",
    "POA_LINK_BASE_URL": "https://poa.example.edu/pdf",
}


@pytest.fixture
def harness(tmp_path, monkeypatch, restore_root_logging):
    """Patch main's collaborators; returns the RunLoggers it built and the run_sync calls."""
    loggers, calls = [], []

    def make_logger(console_level=logging.INFO):
        rl = RunLogger(base_dir=str(tmp_path), console_level=logging.WARNING)
        loggers.append(rl)
        return rl

    monkeypatch.setattr(run, "load_env", lambda: dict(ENV))
    monkeypatch.setattr(run, "RunLogger", make_logger)
    monkeypatch.delenv("DEBUG", raising=False)
    for key in ENV:
        monkeypatch.delenv(key, raising=False)

    def install(behaviour):
        async def fake_run_sync(settings, env, observer, report, start_date=None, reprocess_csv=None):
            calls.append({"settings": settings, "start_date": start_date, "reprocess_csv": reprocess_csv})
            return behaviour(report)
        monkeypatch.setattr(run, "run_sync", fake_run_sync)

    return loggers, calls, install


def _summary(rl):
    with open(os.path.join(rl.run_dir, "run_summary.json"), encoding="utf-8") as f:
        return json.load(f)


def _pack_written(rl):
    return all(os.path.exists(os.path.join(rl.run_dir, name))
               for name in ("tasks.csv", "run_summary.json", "HELD_REVIEW.txt"))


# =====================================================================
# main(): exit codes and the run log pack
# =====================================================================

class TestMain:

    def test_success(self, harness):
        loggers, calls, install = harness

        def ok(report):
            report.candidates, report.processed, report.batches = 3, 3, 1
            return report
        install(ok)

        assert run.main([]) == 0
        assert calls[0]["settings"].spreadsheet_id == "sheet-1"
        summary = _summary(loggers[0])
        assert (summary["processed"], summary["error"]) == (3, "")

    def test_partial_totals_survive_destination_abort(self, harness):
        loggers, _, install = harness

        def abort_in_second_batch(report):
            report.candidates, report.processed, report.batches = 20, 7, 1
            raise DestinationMutationError("Quota exceeded", status=429)
        install(abort_in_second_batch)

        assert run.main([]) == 1
        summary = _summary(loggers[0])
        assert (summary["processed"], summary["batches"]) == (7, 1)
        assert summary["error"] == "Quota exceeded"
        with open(os.path.join(loggers[0].run_dir, "HELD_REVIEW.txt"), encoding="utf-8") as f:
            assert "ABORTED:    Quota exceeded" in f.read()

    @pytest.mark.parametrize("exc", [
        SourceFetchError("Unable to find the server at gmail.googleapis.com"),
        ResponseShapeError("messages.list: messages.0.id: Field required"),
    ])
    def test_other_sync_errors_abort_with_pack(self, harness, exc):
        loggers, _, install = harness

        def fail(report):
            raise exc
        install(fail)

        assert run.main([]) == 1
        assert _pack_written(loggers[0])
        assert _summary(loggers[0])["error"] == str(exc)

    def test_config_error_during_run(self, harness):
        loggers, _, install = harness

        def bad_csv(report):
            raise ConfigError("held.csv: missing column(s) end_date")
        install(bad_csv)

        assert run.main(["--reprocess", "held.csv"]) == 2
        assert _pack_written(loggers[0])

    def test_missing_required_settings(self, harness, monkeypatch):
        loggers, calls, install = harness
        install(lambda report: report)
        monkeypatch.setattr(run, "load_env", lambda: {})

        assert run.main([]) == 2
        assert calls == []

    def test_cli_values_reach_run_sync(self, harness):
        _, calls, install = harness
        install(lambda report: report)

        run.main(["--start-date", "2025-07-01", "--reprocess", "held.csv", "--sender", "other@example.edu"])
        call = calls[0]
        assert call["start_date"] == "2025-07-01"
        assert call["reprocess_csv"] == "held.csv"
        assert call["settings"].sender == "other@example.edu"


# =====================================================================
# Argument handling
# =====================================================================

class TestApplyArgs:

    def test_unset_flags_leave_settings_alone(self):
        settings = SyncSettings(spreadsheet_id="a", sender="s", use_date_filter=True, log_errors=False)
        run.apply_args(settings, run.build_parser().parse_args([]))
        assert (settings.spreadsheet_id, settings.sender) == ("a", "s")
        assert settings.use_date_filter is True
        assert settings.log_errors is False

    def test_flags_override(self):
        settings = SyncSettings(spreadsheet_id="a", sender="s")
        args = run.build_parser().parse_args(
            ["--spreadsheet-id", "b", "--no-date-filter", "--log-errors"]
        )
        run.apply_args(settings, args)
        assert settings.spreadsheet_id == "b"
        assert settings.use_date_filter is False
        assert settings.log_errors is True
