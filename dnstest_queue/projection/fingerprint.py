"""
Fingerprint generation and canonical encoding of test parameters.
"""

import hashlib
import json
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from dnstest_queue.constants import HASH_ID_LENGTH
from dnstest_queue.projection.normalizer import RawParams, normalize
from dnstest_queue.types.params import NormalizedParams, ProfileDefaults


def canonical_json(value: Any) -> str:
    """Serialize with sorted keys and no insignificant whitespace."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def fingerprint(raw_params: RawParams, profile: ProfileDefaults) -> str:
    """
    Compute the deduplication fingerprint of a test request.

    The fingerprint is the md5 hex digest of the canonical JSON encoding of the
    normalized parameters, so it only depends on their semantic content.

    Args:
        raw_params: The caller-supplied parameters.
        profile: Effective profile defaults.

    Returns:
        A 32 character lower-case hex string.
    """
    normalized = normalize(raw_params, profile)
    encoded = canonical_json(normalized.to_dict())
    return hashlib.md5(encoded.encode("utf-8")).hexdigest()


def encode(raw_params: RawParams, profile: ProfileDefaults) -> str:
    """
    Encode the union of the raw parameters and their normalized projection.

    Extra fields supplied by the caller are preserved; normalized fields take
    precedence over their raw counterparts. Used for the persisted audit copy.
    """
    normalized = normalize(raw_params, profile).to_dict()
    if isinstance(raw_params, NormalizedParams):
        raw_params = raw_params.to_dict()
    return canonical_json({**raw_params, **normalized})


def is_undelegated(raw_params: RawParams, profile: ProfileDefaults | None = None) -> bool:
    """Check if the request carries its own delegation (DS records or nameservers)."""
    normalized = normalize(raw_params, profile or ProfileDefaults())
    return bool(normalized.ds_info or normalized.nameservers)


def make_hash_id(fingerprint_value: str, created_at: datetime | None = None) -> str:
    """Derive a unique job identity from a fingerprint and the submission instant."""
    created_at = created_at or datetime.now(timezone.utc)
    seed = f"{fingerprint_value}{created_at.isoformat()}{uuid4().hex}"
    return hashlib.md5(seed.encode("utf-8")).hexdigest()[:HASH_ID_LENGTH]
