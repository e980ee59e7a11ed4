"""Latest-request tracking for out-of-order async results.

A folder switch issued while an earlier listing is still in flight must win,
even if the earlier response arrives last. Callers take a token when they
start a request and only apply the result if the token is still current.

    >>> tracker = LatestRequestTracker()
    >>> token = tracker.begin("list", ("me@x.com", "inbox"))
    >>> messages = await client.list_messages(...)
    >>> if tracker.is_current(token):
    ...     show(messages)
"""

from dataclasses import dataclass
from typing import Dict, Hashable


@dataclass(frozen=True)
class RequestToken:
    channel: str
    sequence: int
    context: Hashable


class LatestRequestTracker:
    """Monotonic per-channel request counter."""

    def __init__(self):
        self._latest: Dict[str, RequestToken] = {}
        self._sequence = 0

    def begin(self, channel: str, context: Hashable = None) -> RequestToken:
        """Start a request on ``channel``, superseding any earlier one."""
        self._sequence += 1
        token = RequestToken(channel, self._sequence, context)
        self._latest[channel] = token
        return token

    def is_current(self, token: RequestToken) -> bool:
        return self._latest.get(token.channel) == token

    def cancel(self, channel: str) -> None:
        """Invalidate whatever is in flight on ``channel``."""
        self._latest.pop(channel, None)
