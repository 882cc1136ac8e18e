"""
Parameter normalization.

Projects a raw test request onto its canonical form so that semantically equal
requests always produce the same fingerprint. Normalization is a pure function
of the raw parameters and the effective profile snapshot passed in.
"""

from collections.abc import Iterable, Mapping
from typing import Any

from dnstest_queue.constants import DEFAULT_PROFILE
from dnstest_queue.types.params import DsInfo, Nameserver, NormalizedParams, ProfileDefaults

RawParams = Mapping[str, Any] | NormalizedParams


def _ds_sort_key(ds: DsInfo) -> tuple[int, str, int, int]:
    return (ds.algorithm, ds.digest, ds.digtype, ds.keytag)


def _nameserver_sort_key(nameserver: Nameserver) -> tuple[str, bool, str]:
    # Entries without an address sort before entries with one for the same name
    return (nameserver.ns, nameserver.ip is not None, nameserver.ip or "")


def _normalize_ds_info(entries: Iterable[Any] | None) -> tuple[DsInfo, ...]:
    ds_info = [DsInfo.model_validate(entry) for entry in entries or ()]
    return tuple(sorted(ds_info, key=_ds_sort_key))


def _normalize_nameservers(entries: Iterable[Any] | None) -> tuple[Nameserver, ...]:
    nameservers = []
    for entry in entries or ():
        parsed = Nameserver.model_validate(entry)
        nameservers.append(Nameserver(ns=parsed.ns.lower(), ip=parsed.ip or None))
    return tuple(sorted(nameservers, key=_nameserver_sort_key))


def normalize(raw_params: RawParams, profile: ProfileDefaults) -> NormalizedParams:
    """
    Normalize raw test parameters.

    Args:
        raw_params: The caller-supplied parameters. Never mutated.
        profile: Effective profile defaults for unset `ipv4` / `ipv6`.

    Returns:
        The canonical NormalizedParams.
    """
    if isinstance(raw_params, NormalizedParams):
        raw_params = raw_params.to_dict()

    domain = raw_params.get("domain")
    ipv4 = raw_params.get("ipv4")
    ipv6 = raw_params.get("ipv6")
    profile_name = raw_params.get("profile")

    return NormalizedParams(
        domain=(domain or "").lower(),
        ipv4=profile.ipv4_default if ipv4 is None else ipv4,
        ipv6=profile.ipv6_default if ipv6 is None else ipv6,
        profile=DEFAULT_PROFILE if profile_name is None else profile_name,
        ds_info=_normalize_ds_info(raw_params.get("ds_info")),
        nameservers=_normalize_nameservers(raw_params.get("nameservers")),
    )
