"""
Result Storage
==============
Persistence of a job's results.  The orchestrator calls ``save_results``
exactly once per terminal transition that has results.

``JsonCsvResultStore`` writes, per call::

    {results_dir}/{job_id}_results_{timestamp}.json   # config, metadata, progress, logs, results
    {results_dir}/{job_id}_results_{timestamp}.csv    # results only, ';'-separated, UTF-8 BOM

The CSV opens cleanly in spreadsheet tools configured for a comma decimal
separator, hence ``;`` and the BOM.
"""

from __future__ import annotations

import csv
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)


class ResultStore(ABC):
    @abstractmethod
    def save_results(
        self,
        job_id: str,
        config: Dict[str, Any],
        progress: Dict[str, Any],
        logs: Sequence[Dict[str, Any]],
        results: Sequence[Dict[str, Any]],
    ) -> Optional[str]:
        """Persist one job's results; return a location (path/URI) or None."""
        ...


def _flatten(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value if v not in (None, ""))
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def _fieldnames(rows: Sequence[Dict[str, Any]]) -> List[str]:
    """Union of keys in first-seen order."""
    names: List[str] = []
    for row in rows:
        for key in row:
            if key not in names:
                names.append(key)
    return names


class JsonCsvResultStore(ResultStore):
    """Writes a JSON document plus a CSV export into *results_dir*."""

    def __init__(self, results_dir: str = "results", write_csv: bool = True):
        self.results_dir = Path(results_dir)
        self.write_csv = write_csv

    def save_results(self, job_id, config, progress, logs, results) -> Optional[str]:
        self.results_dir.mkdir(parents=True, exist_ok=True)
        now = datetime.now(timezone.utc)
        stamp = now.strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        base = self.results_dir / f"{job_id}_results_{stamp}"

        json_path = base.with_suffix(".json")
        data = {
            "config": config,
            "metadata": {
                "jobId": job_id,
                "endTime": now.isoformat(),
                "totalResults": len(results),
            },
            "progress": progress,
            "logs": list(logs),
            "results": list(results),
        }
        with open(json_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        if self.write_csv and results:
            self.export_csv(results, base.with_suffix(".csv"))

        logger.info(f"[STORE] Saved {len(results)} results for job {job_id} -> {json_path}")
        return str(json_path.absolute())

    @staticmethod
    def export_csv(results: Sequence[Dict[str, Any]], filepath) -> str:
        path = Path(filepath)
        path.parent.mkdir(parents=True, exist_ok=True)
        rows = [{k: _flatten(v) for k, v in r.items()} for r in results]
        with open(path, "w", newline="", encoding="utf-8-sig") as f:
            writer = csv.DictWriter(
                f, fieldnames=_fieldnames(rows), delimiter=";", extrasaction="ignore",
            )
            writer.writeheader()
            writer.writerows(rows)
        return str(path.absolute())
