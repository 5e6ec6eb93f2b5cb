"""Load state and stale-response fencing shared by the service components.

States:
- UNINITIALIZED: nothing fetched yet
- LOADING: a fetch is in flight
- READY: last fetch succeeded
- ERRORED: last fetch failed

Every explicit re-fetch re-enters LOADING. Fetches take a token from a
RequestFence; only the holder of the latest token may write component state,
so a slow earlier response cannot overwrite a newer one.
"""

from enum import Enum


class LoadState(str, Enum):
    """Component load states."""
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    ERRORED = "errored"


class RequestFence:
    """Monotonic generation counter for one kind of fetch."""

    def __init__(self, name: str = "fetch"):
        self.name = name
        self._latest = 0

    def issue(self) -> int:
        """Start a new request and return its token."""
        self._latest += 1
        return self._latest

    def is_current(self, token: int) -> bool:
        return token == self._latest

    def invalidate(self) -> None:
        """Make every outstanding token stale (e.g. on logout)."""
        self._latest += 1

    @property
    def latest(self) -> int:
        return self._latest
