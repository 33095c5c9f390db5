"""
Auth for scheduled (cron) endpoints.
Two modes are accepted:
- manual run: Authorization: Bearer <CRON_SECRET>
- platform cron: x-vercel-cron: 1 AND a User-Agent containing vercel-cron/1.0
Headers can be spoofed, so cron actions must stay idempotent.
"""
import hmac
from typing import Mapping

CRON_HEADER = "x-vercel-cron"
CRON_USER_AGENT = "vercel-cron/1.0"


def is_cron_request(headers: Mapping[str, str], secret: str) -> bool:
    """Return True if headers authenticate a cron caller (see module docstring)."""
    auth_header = headers.get("authorization") or ""
    if secret and secret.strip():
        if hmac.compare_digest(auth_header.encode(), f"Bearer {secret}".encode()):
            return True

    is_cron_header = headers.get(CRON_HEADER) == "1"
    is_cron_ua = CRON_USER_AGENT in (headers.get("user-agent") or "")
    return is_cron_header and is_cron_ua
