"""Validation and enrichment handlers for notification requests."""

from datetime import UTC, datetime

from actionpipe import Controller

VALID_CHANNELS = {"email", "sms", "push"}
VALID_PRIORITIES = {"low", "normal", "high", "critical"}

# Simulated user database
USER_CONTACTS = {
    "user_001": {"email": "alice@example.com", "phone": "+1555123001", "device_token": "fcm_alice"},
    "user_002": {"email": "bob@example.com", "phone": "+1555123002", "device_token": None},
    "user_003": {"email": None, "phone": "+1555123003", "device_token": "fcm_carol"},
}


def validate(payload: dict, controller: Controller) -> None:
    """Aborts the pipeline when the request is malformed.

    Checks:
    - user_id is present and non-empty
    - channels is a non-empty list of valid channels
    - message is present and non-empty
    - priority is valid (defaults to 'normal' if missing)
    """
    errors = []

    user_id = (payload.get("user_id") or "").strip()
    if not user_id:
        errors.append("user_id is required")

    channels = payload.get("channels", [])
    if not channels:
        errors.append("at least one channel is required")
    else:
        invalid_channels = set(channels) - VALID_CHANNELS
        if invalid_channels:
            errors.append(f"invalid channels: {sorted(invalid_channels)}")

    message = (payload.get("message") or "").strip()
    if not message:
        errors.append("message is required")

    priority = payload.get("priority", "normal")
    if priority not in VALID_PRIORITIES:
        errors.append(f"invalid priority: {priority}")

    if errors:
        controller.abort("; ".join(errors))


def enrich(payload: dict, controller: Controller) -> None:
    """Attaches contact details and drops channels the user cannot receive."""
    contacts = USER_CONTACTS.get(payload["user_id"], {})
    reachable = {
        "email": contacts.get("email"),
        "sms": contacts.get("phone"),
        "push": contacts.get("device_token"),
    }
    channels = [c for c in payload["channels"] if reachable.get(c)]
    if not channels:
        controller.abort(f"no reachable channel for {payload['user_id']}")
        return

    controller.modify_payload(
        lambda p: {
            **p,
            "channels": channels,
            "contacts": {c: reachable[c] for c in channels},
            "validated_at": datetime.now(UTC).isoformat(),
        }
    )
