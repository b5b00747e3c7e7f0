"""Notification port — where the daily alert digest is delivered.

The scheduler hands over one rendered digest per user; splitting it to the
channel's message size is the adapter's job.
"""

from __future__ import annotations

from typing import Protocol


class NotificationPort(Protocol):
    """Push channel for per-user alert digests."""

    async def send_message(self, user_id: int, text: str) -> None:
        """Deliver ``text`` to ``user_id``. Raises on delivery failure."""
        ...
