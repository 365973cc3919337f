"""
Settlement key generation.

A settlement key names the (host, period) pair a settlement expense covers.
It is stored on the expense data and logged when the expense is created so
operators can correlate reruns with the expense they found.

Format: ``platform-settlement:<host_id>:<period_key>``
"""

from uuid import UUID

_PREFIX = "platform-settlement"


def generate_settlement_key(host_id: UUID | str, period_key: str) -> str:
    """
    Example:
        >>> generate_settlement_key("550e8400-e29b-41d4-a716-446655440000", "2026-09")
        'platform-settlement:550e8400-e29b-41d4-a716-446655440000:2026-09'
    """
    return f"{_PREFIX}:{host_id}:{period_key}"
