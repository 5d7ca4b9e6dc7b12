from __future__ import annotations

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from taxonomy.utils.observability import get_request_id


logger = logging.getLogger("taxonomy.events")


def _safe_value(value: Any):
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _safe_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_safe_value(v) for v in value]
    try:
        return str(value)
    except Exception:
        return "<unserializable>"


def _safe_json(data: Any) -> str:
    normalized = _safe_value(data if isinstance(data, dict) else {"value": data})
    try:
        return json.dumps(normalized, separators=(",", ":"), ensure_ascii=False)
    except Exception:
        return json.dumps({"raw": str(normalized)})


def log_event(
    event_type: str,
    *,
    tenant: str | None = None,
    subject_id: int | str | None = None,
    severity: str = "INFO",
    request_id: str | None = None,
    metadata: dict | None = None,
) -> dict | None:
    """Best-effort structured event line on the ``taxonomy.events`` logger.

    Never raises to the caller; the emitted record is returned for inspection.
    """
    try:
        level_name = (severity or "INFO").strip().upper()[:16] or "INFO"
        record = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "event_type": (event_type or "unknown").strip()[:80],
            "tenant": (tenant or "").strip()[:64] or None,
            "subject_id": str(subject_id)[:120] if subject_id is not None else None,
            "severity": level_name,
            "request_id": (request_id or get_request_id() or "").strip()[:80] or None,
            "metadata": json.loads(_safe_json(metadata or {})),
        }
        logger.log(getattr(logging, level_name, logging.INFO), _safe_json(record))
        return record
    except Exception:
        logger.exception("event_log_failed event_type=%s", event_type)
        return None
