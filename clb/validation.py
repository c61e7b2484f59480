from __future__ import annotations

import re


SERVICE_NAME_RE = re.compile(r"^[a-z][a-z0-9\-]{0,62}$")
INSTANCE_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9\-\._:]{0,190}$")


def validate_service_name(name: str) -> None:
    if not SERVICE_NAME_RE.match(name):
        raise ValueError(
            "Invalid service name. Use lowercase letters/numbers and hyphen, starting with a letter (max 63 chars)."
        )


def validate_instance_id(instance_id: str) -> None:
    # Keep ids path-safe: they appear as URL segments in heartbeat/deregister calls.
    if not INSTANCE_ID_RE.match(instance_id):
        raise ValueError("Invalid instance id. Use letters/numbers and -._: (max 191 chars).")
