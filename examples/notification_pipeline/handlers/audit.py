"""Audit trail fed by lifecycle events."""

from datetime import UTC, datetime
from typing import Any


class AuditTrail:
    """Records every finished dispatch of the pipeline.

    Attach with ``register.on(...)`` for the complete, abort and error
    events; the trail never influences the dispatch it observes.
    """

    def __init__(self) -> None:
        # Instance-level state - not shared across instances
        self.records: list[dict] = []

    def _record(self, status: str, data: dict[str, Any], detail: str | None = None) -> None:
        payload = data.get("payload") or {}
        metrics = data["metrics"]
        self.records.append(
            {
                "action": data["action"],
                "user_id": payload.get("user_id", "unknown"),
                "status": status,
                "detail": detail,
                "duration_ms": round(metrics.execution_time_ms, 2),
                "recorded_at": datetime.now(UTC).isoformat(),
            }
        )

    def on_complete(self, data: dict[str, Any]) -> None:
        self._record("delivered", data)

    def on_abort(self, data: dict[str, Any]) -> None:
        self._record("rejected", data, data.get("reason"))

    def on_error(self, data: dict[str, Any]) -> None:
        self._record("failed", data, str(data.get("error")))

    def count(self, status: str) -> int:
        return sum(1 for record in self.records if record["status"] == status)
