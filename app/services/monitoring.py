"""
Eventos de monitoramento por adquirente (api_monitoring_events).
Recording is best effort: a failed insert is logged and never breaks the caller.
"""
import logging

logger = logging.getLogger(__name__)


def record_event(
    db,
    acquirer: str,
    event_type: str,
    response_time_ms: int | None = None,
    error_message: str | None = None,
) -> None:
    row = {
        "acquirer": acquirer,
        "event_type": event_type,
        "response_time_ms": response_time_ms,
        "error_message": error_message[:200] if error_message else None,
    }
    try:
        db.table("api_monitoring_events").insert(row).execute()
    except Exception as e:
        logger.error(f"Failed to record {event_type} event for {acquirer}: {e}")


def acquirer_health(db, acquirer: str, window: int = 50) -> dict:
    """Success rate and mean latency over the last `window` events."""
    result = (
        db.table("api_monitoring_events")
        .select("event_type, response_time_ms")
        .eq("acquirer", acquirer)
        .order("created_at", desc=True)
        .limit(window)
        .execute()
    )
    events = [e for e in (result.data or []) if e.get("event_type") in ("success", "failure")]
    if not events:
        return {"acquirer": acquirer, "events": 0, "success_rate": None, "avg_response_ms": None}
    successes = sum(1 for e in events if e["event_type"] == "success")
    latencies = [e["response_time_ms"] for e in events if e.get("response_time_ms") is not None]
    return {
        "acquirer": acquirer,
        "events": len(events),
        "success_rate": round(successes / len(events), 4),
        "avg_response_ms": round(sum(latencies) / len(latencies)) if latencies else None,
    }
