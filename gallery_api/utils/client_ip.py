"""
Client IP extraction behind proxies and load balancers.
"""
from typing import Optional

from fastapi import Request

# Checked in order; the first non-empty value wins
_FORWARDING_HEADERS = ("X-Real-IP", "CF-Connecting-IP", "True-Client-IP")


def get_client_ip(request: Request) -> Optional[str]:
    """
    Return the originating client IP for a request.

    Order: X-Forwarded-For (first hop), X-Real-IP, CF-Connecting-IP,
    True-Client-IP, then the socket peer.

    These headers are client-controlled unless the proxy in front strips
    and re-sets them; only trust them behind such a proxy.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        client_ip = forwarded_for.split(",")[0].strip()
        if client_ip:
            return client_ip

    for header in _FORWARDING_HEADERS:
        value = request.headers.get(header)
        if value and value.strip():
            return value.strip()

    if request.client:
        return request.client.host

    return None
