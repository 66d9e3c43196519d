from __future__ import annotations

import json
import logging
import os
import tempfile
from collections import Counter
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from pricing_pdf_web.utils.clock import parse_iso, utc_now

logger = logging.getLogger(__name__)

RETENTION_DAYS = 90
MAX_LIST_LIMIT = 500
TOP_N = 20
PDF_STATUSES = ("success", "fail")


def _event_time(event: Mapping[str, Any]) -> Optional[datetime]:
    return parse_iso(event.get("completed_at") or event.get("created_at"))


def _is_well_formed(event: Any) -> bool:
    """Shape check for fields the aggregates rely on."""
    if not isinstance(event, dict):
        return False
    if event.get("pdf_status") not in PDF_STATUSES:
        return False
    if not isinstance(event.get("user_id"), str):
        return False
    domains = event.get("domains")
    if not isinstance(domains, list) or not all(isinstance(d, str) for d in domains):
        return False
    count = event.get("domains_count")
    return isinstance(count, int) and not isinstance(count, bool)


class AnalyticsLog:
    """
    Append-only NDJSON log of finished runs, one JSON object per line.

    Every read and every append prunes records older than the retention
    window first, so the file never needs separate compaction. Single-process
    ownership is assumed.
    """

    def __init__(
        self,
        path: Path,
        retention_days: int = RETENTION_DAYS,
        *,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self.path = Path(path)
        self.retention_days = retention_days
        self._now = now
        self._ensure_file()
        self._prune()

    # -----------------------------
    # Storage
    # -----------------------------
    def _ensure_file(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            self.path.write_text("", encoding="utf-8")

    def _read_events(self) -> Tuple[List[Dict[str, Any]], int]:
        """(well-formed events, number of lines dropped)."""
        self._ensure_file()
        events: List[Dict[str, Any]] = []
        dropped = 0
        with self.path.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    event = json.loads(line)
                except ValueError:
                    dropped += 1
                    continue
                if not _is_well_formed(event):
                    dropped += 1
                    continue
                events.append(event)
        return events, dropped

    def _write_events(self, events: List[Mapping[str, Any]]) -> None:
        text = "".join(json.dumps(e, ensure_ascii=False) + "\n" for e in events)
        fd, tmp_name = tempfile.mkstemp(prefix=".analytics-", suffix=".tmp", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def _prune(self) -> List[Dict[str, Any]]:
        threshold = self._now() - timedelta(days=self.retention_days)
        events, dropped = self._read_events()
        kept = []
        for event in events:
            ts = _event_time(event)
            if ts is not None and ts >= threshold:
                kept.append(event)

        if dropped:
            logger.warning("Dropped %d malformed analytics line(s)", dropped)
        if dropped or len(kept) != len(events):
            self._write_events(kept)
        if len(kept) != len(events):
            logger.info("Pruned %d analytics event(s) older than %d days", len(events) - len(kept), self.retention_days)
        return kept

    # -----------------------------
    # Public API
    # -----------------------------
    def append_event(self, event: Mapping[str, Any]) -> None:
        events = self._prune()
        events.append(dict(event))
        self._write_events(events)

    def list_runs(self, user_id: Optional[str] = None, limit: int = 100) -> List[Dict[str, Any]]:
        events = self._filter(self._prune(), user_id)
        ordered = sorted(events, key=lambda e: _event_time(e), reverse=True)
        return ordered[: max(1, min(int(limit), MAX_LIST_LIMIT))]

    def get_summary(self, user_id: Optional[str] = None) -> Dict[str, Any]:
        events = self._filter(self._prune(), user_id)

        total_runs = len(events)
        pdf_success_count = sum(1 for e in events if e.get("pdf_status") == "success")
        pdf_fail_count = sum(1 for e in events if e.get("pdf_status") == "fail")
        total_domains = sum(_as_int(e.get("domains_count")) for e in events)
        average = 0 if total_runs == 0 else round(total_domains / total_runs, 2)

        status_counts: Dict[str, int] = {"success": 0, "fail": 0}
        domain_counts: Counter = Counter()
        user_counts: Counter = Counter()
        for event in events:
            status = event.get("pdf_status")
            status_counts[status] = status_counts.get(status, 0) + 1
            user_counts[event.get("user_id")] += 1
            domains = event.get("domains")
            if isinstance(domains, list):
                domain_counts.update(domains)

        return {
            "retention_days": self.retention_days,
            "total_runs": total_runs,
            "pdf_success_count": pdf_success_count,
            "pdf_fail_count": pdf_fail_count,
            "pdf_success_rate": 0 if total_runs == 0 else pdf_success_count / total_runs,
            "total_unique_domains_processed": total_domains,
            "average_domains_per_run": average,
            "pdf_status_distribution": status_counts,
            "top_domains": [
                {"domain": domain, "count": count} for domain, count in domain_counts.most_common(TOP_N)
            ],
            "top_users": [
                {"user_id": uid, "runs": runs} for uid, runs in user_counts.most_common(TOP_N)
            ],
        }

    @staticmethod
    def _filter(events: List[Dict[str, Any]], user_id: Optional[str]) -> List[Dict[str, Any]]:
        if not user_id:
            return events
        return [e for e in events if e.get("user_id") == user_id]


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0
