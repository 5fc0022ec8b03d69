"""Clock and host-environment capabilities injected into components."""

import time
from dataclasses import dataclass
from datetime import UTC, datetime


class SystemClock:
    """Clock backed by the system wall clock."""

    def now(self) -> float:
        """Return the current Unix timestamp in seconds."""
        return time.time()

    def iso_now(self) -> str:
        """Return the current time as an ISO-8601 UTC string."""
        return to_iso(self.now())


def to_iso(timestamp: float) -> str:
    """Render a Unix timestamp as an ISO-8601 UTC string with milliseconds."""
    moment = datetime.fromtimestamp(timestamp, tz=UTC)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def from_iso(value: str) -> float:
    """Parse an ISO-8601 string produced by to_iso() back to a Unix timestamp."""
    return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()


@dataclass(frozen=True)
class HostEnvironment:
    """What the host knows about the page or process being observed.

    Attributes:
        url: Location of the observed page or request.
        user_agent: User agent of the observed client.
        device_memory: Approximate device memory in GiB, when exposed.
        connection_type: Effective connection type (e.g. "4g"), when exposed.
    """

    url: str = "unknown"
    user_agent: str = "unknown"
    device_memory: float | None = None
    connection_type: str | None = None


DEFAULT_CLOCK = SystemClock()
DEFAULT_HOST = HostEnvironment()
