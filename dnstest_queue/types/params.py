"""
Test request parameter type definitions.
"""

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from dnstest_queue.constants import DEFAULT_PROFILE


class DsInfo(BaseModel):
    """A DS record supplied for an undelegated test."""

    model_config = ConfigDict(frozen=True)

    algorithm: int
    digest: str
    digtype: int
    keytag: int


class Nameserver(BaseModel):
    """A nameserver supplied for an undelegated test. `ip` is absent, never empty."""

    model_config = ConfigDict(frozen=True)

    ns: str
    ip: str | None = None


class NormalizedParams(BaseModel):
    """
    Canonical projection of a raw test request.

    Two requests that differ only in key order, array order of `ds_info` and
    `nameservers`, or case of `domain` and `ns` project to equal values.
    """

    model_config = ConfigDict(frozen=True)

    domain: str = ""
    ipv4: bool
    ipv6: bool
    profile: str = DEFAULT_PROFILE
    ds_info: tuple[DsInfo, ...] = Field(default_factory=tuple)
    nameservers: tuple[Nameserver, ...] = Field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        """Plain mapping form, with unset nameserver addresses omitted."""
        return self.model_dump(mode="json", exclude_none=True)


@dataclass(frozen=True)
class ProfileDefaults:
    """Snapshot of the effective profile values consumed by normalization."""

    ipv4_default: bool = True
    ipv6_default: bool = True
