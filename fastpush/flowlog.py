"""Persistent history of fast-push runs, newest first."""
# ======================= STANDARDS =======================
from pathlib import Path
import logging as log
import secrets
import json
import time

# ======================== LOCALS =========================
from . import telemetry

logger = log.getLogger("fastpush.flowlog")

MAX_ENTRIES  = 150
HISTORY_FILE = "flow_history.json"
FINAL_STATES = ("success", "failed", "cancelled")


def _now_ms() -> int:
    return int(time.time() * 1000)


class FlowLog:
    """JSON-file history kept in the fastpush log directory."""

    def __init__(self, log_dir: Path | str) -> None:
        self.path = Path(log_dir) / HISTORY_FILE

    def entries(self) -> list[dict[str, object]]:
        if not self.path.exists(): return []
        try: raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("unreadable flow history %s, starting "
                "empty: %s", self.path, e)
            return []
        return [e for e in raw if isinstance(e, dict)] \
            if isinstance(raw, list) else []

    def _save(self, entries: list[dict[str, object]]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(entries[:MAX_ENTRIES],
                indent=2), encoding="utf-8")
        except OSError as e:
            logger.warning("failed to save flow history: %s", e)

    def start(self, operation: str, details: str, branch: str,
              repo_name: str, preflight_status: str | None = None
             ) -> str:
        """Record a running operation; returns its entry id."""
        entry_id = f"{_now_ms()}-{secrets.token_hex(3)}"
        entry: dict[str, object] = {
            "id": entry_id,
            "operation": operation,
            "details": details,
            "status": "running",
            "start_time": _now_ms(),
            "branch": branch,
            "repo_name": repo_name,
            "preflight_status": preflight_status,
        }
        entries = self.entries()
        entries.insert(0, entry)
        self._save(entries)
        logger.debug("flow entry %s started: %s", entry_id, operation)
        return entry_id

    def finish(self, entry_id: str, status: str,
               error: str | None = None,
               preflight_status: str | None = None) -> None:
        if status not in FINAL_STATES:
            raise ValueError(f"unknown flow status {status!r}")
        entries = self.entries()
        entry   = next((e for e in entries if e.get("id") == entry_id),
                  None)
        if entry is None: return

        end = _now_ms()
        entry.update({
            "status": status,
            "end_time": end,
            "duration_ms": end - int(entry.get("start_time") or end),
            "error": telemetry.redact_text(error) if error else None,
        })
        if preflight_status: entry["preflight_status"] = preflight_status
        self._save(entries)
        logger.debug("flow entry %s finished: %s", entry_id, status)
