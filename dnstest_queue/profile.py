"""
Profile defaults consumed by parameter normalization.
"""

from typing import Protocol

from dnstest_queue.config import Settings, get_settings
from dnstest_queue.types.params import ProfileDefaults


class ProfileProvider(Protocol):
    """Source of the currently effective profile values."""

    def effective_defaults(self) -> ProfileDefaults: ...


class StaticProfile:
    """Profile provider returning a fixed snapshot."""

    def __init__(self, ipv4_default: bool = True, ipv6_default: bool = True):
        self._defaults = ProfileDefaults(ipv4_default=ipv4_default, ipv6_default=ipv6_default)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "StaticProfile":
        """Build the provider from the profile_ipv4 / profile_ipv6 settings."""
        settings = settings or get_settings()
        return cls(ipv4_default=settings.profile_ipv4, ipv6_default=settings.profile_ipv6)

    def effective_defaults(self) -> ProfileDefaults:
        return self._defaults
