"""
Run Logger – creates a "RUN LOG PACK" per run in logs/runs/<run_id>/
Artifacts produced:
  - raw_debug.log     (via Python logging)
  - run_summary.json
  - tasks.csv         (final state of every task)
  - HELD_REVIEW.txt   (single human-readable file for the reviewer)
"""

import csv
import json
import logging
import os
import sys
from datetime import datetime

from poa_sync.observers import TaskBoard


class RunLogger(TaskBoard):
    """Task board that also owns the per-run log directory and artifacts."""

    TASK_FIELDS = ["id", "subject", "status", "error"]

    def __init__(self, base_dir: str | None = None, console_level=logging.INFO):
        super().__init__(echo_status=True)
        self.run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
        if base_dir is None:
            base_dir = os.path.join(os.path.dirname(__file__), "..", "logs", "runs")
        self.run_dir = os.path.join(base_dir, self.run_id)
        os.makedirs(self.run_dir, exist_ok=True)
        self._summary: dict = {}
        self._setup_file_logging(console_level)

    # ------------------------------------------------------------------
    # Logging setup
    # ------------------------------------------------------------------
    def _setup_file_logging(self, console_level):
        log_path = os.path.join(self.run_dir, "raw_debug.log")
        root = logging.getLogger()
        root.setLevel(logging.DEBUG)
        for h in root.handlers[:]:
            root.removeHandler(h)
        # File handler: everything (DEBUG+)
        fh = logging.FileHandler(log_path, encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        root.addHandler(fh)
        # Console handler: INFO+ only
        ch = logging.StreamHandler(sys.stderr)
        ch.setLevel(console_level)
        ch.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
        root.addHandler(ch)

        logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)
        logging.getLogger("googleapiclient.discovery").setLevel(logging.WARNING)

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------
    def set_summary(self, report, duration_sec: float = 0, args: dict | None = None, error: str = ""):
        self._summary = {
            "run_id": self.run_id,
            "timestamp": datetime.now().isoformat(),
            **report.to_dict(),
            "task_counts": dict(self.counts()),
            "duration_sec": round(duration_sec, 2),
            "error": error,
            "args": args or {},
        }

    # ------------------------------------------------------------------
    # Flush all artifacts to disk
    # ------------------------------------------------------------------
    def flush(self):
        self._write_csv("tasks.csv", self.TASK_FIELDS, [t.to_dict() for t in self.tasks.values()])
        self._write_json("run_summary.json", self._summary)
        self._write_held_review()
        logging.info("Run log pack written to %s", self.run_dir)

    def _write_csv(self, filename: str, fieldnames: list[str], rows: list[dict]):
        path = os.path.join(self.run_dir, filename)
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames, extrasaction="ignore")
            writer.writeheader()
            for row in rows:
                writer.writerow(row)

    def _write_json(self, filename: str, data):
        path = os.path.join(self.run_dir, filename)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)

    # ------------------------------------------------------------------
    # HELD_REVIEW.txt
    # ------------------------------------------------------------------
    def _write_held_review(self):
        s = self._summary
        lines = []
        lines.append("=" * 70)
        lines.append(f"  HELD REVIEW — Run {s.get('run_id', self.run_id)}")
        lines.append("=" * 70)
        lines.append("")
        lines.append(f"  query:      {s.get('query', '')}")
        lines.append(f"  candidates: {s.get('candidates', 0)}")
        lines.append(f"  processed:  {s.get('processed', 0)}")
        lines.append(f"  held:       {s.get('held', 0)}")
        lines.append(f"  errors:     {s.get('errors', 0)}")
        lines.append(f"  batches:    {s.get('batches', 0)}")
        lines.append(f"  duration:   {s.get('duration_sec', 0):.1f}s")
        if s.get("error"):
            lines.append(f"  ABORTED:    {s['error']}")
        lines.append("")

        held = self.with_status("held")
        lines.append("-" * 50)
        lines.append(f"  HELD THIS RUN ({len(held)})")
        lines.append("-" * 50)
        for i, t in enumerate(held, 1):
            lines.append(f"  [H{i}] {t.subject[:70]}")
            lines.append(f"       Message ID: {t.id}")
            lines.append(f"       Reason: {t.error or 'dates need review'}")
        if not held:
            lines.append("  (none)")
        lines.append("")

        errors = self.with_status("error")
        lines.append("-" * 50)
        lines.append(f"  ERRORS THIS RUN ({len(errors)})")
        lines.append("-" * 50)
        for i, t in enumerate(errors, 1):
            lines.append(f"  [E{i}] {t.subject[:70]}")
            lines.append(f"       Message ID: {t.id}")
            lines.append(f"       Error: {t.error or ''}")
        if not errors:
            lines.append("  (none)")
        lines.append("")

        if s.get("held_report"):
            lines.append("-" * 50)
            lines.append("  OUTSTANDING HELD ITEMS (all runs)")
            lines.append("-" * 50)
            lines.append(s["held_report"])
            lines.append("")

        path = os.path.join(self.run_dir, "HELD_REVIEW.txt")
        with open(path, "w", encoding="utf-8") as f:
            f.write("\n".join(lines) + "\n")
