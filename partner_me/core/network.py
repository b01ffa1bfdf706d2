"""Client IP resolution for rate limiting and submission records."""

from __future__ import annotations

import ipaddress
from typing import Optional

from fastapi import Request

from partner_me.core.config import get_settings
from partner_me.core.errors import ValidationError


DEVELOPMENT_FALLBACK_IP = "127.0.0.1"


def normalize_ip(value: str) -> str:
    candidate = value.strip().strip('"')
    if candidate.startswith("[") and "]" in candidate:
        candidate = candidate[1 : candidate.index("]")]
    if candidate == "::1":
        return "127.0.0.1"
    if candidate.lower().startswith("::ffff:"):
        candidate = candidate[7:]
    # IPv4 with port, e.g. 203.0.113.7:51234
    if candidate.count(":") == 1 and "." in candidate:
        candidate = candidate.split(":", 1)[0]
    return candidate


def is_valid_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def resolve_client_ip(request: Request) -> Optional[str]:
    candidates = []
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        candidates.append(forwarded_for.split(",")[0])
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        candidates.append(real_ip)
    if request.client and request.client.host:
        candidates.append(request.client.host)

    for raw in candidates:
        normalized = normalize_ip(raw)
        if normalized and is_valid_ip(normalized):
            return normalized

    if not get_settings().is_production:
        return DEVELOPMENT_FALLBACK_IP
    return None


def require_client_ip(request: Request) -> str:
    """FastAPI dependency that fails the request when no client IP is known."""

    ip = resolve_client_ip(request)
    if ip is None:
        raise ValidationError("Unable to determine client IP address", code="IP_EXTRACTION_FAILED")
    return ip
