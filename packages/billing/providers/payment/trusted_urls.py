"""
Allowlist check for checkout URLs handed back by the payment provider.
"""

from typing import Iterable, Optional
from urllib.parse import urlsplit


def host_matches(hostname: str, allowed_host: str) -> bool:
    return hostname == allowed_host or hostname.endswith(f".{allowed_host}")


def is_trusted_checkout_url(url: Optional[str], allowed_hosts: Iterable[str]) -> bool:
    """
    True when ``url`` is https and its host is an allowed host or a subdomain
    of one. Anything unparsable is untrusted.
    """
    if not url or not url.strip():
        return False

    try:
        parts = urlsplit(url.strip())
        hostname = parts.hostname
    except ValueError:
        return False

    if parts.scheme != "https" or not hostname:
        return False

    hostname = hostname.lower()
    return any(
        host_matches(hostname, allowed.strip().lower())
        for allowed in allowed_hosts
        if allowed and allowed.strip()
    )
