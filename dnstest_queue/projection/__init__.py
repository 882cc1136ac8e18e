"""
Projection module.
Contains parameter normalization and fingerprint generation.
"""

from dnstest_queue.projection.fingerprint import (
    canonical_json,
    encode,
    fingerprint,
    is_undelegated,
    make_hash_id,
)
from dnstest_queue.projection.normalizer import normalize

__all__ = [
    "normalize",
    "fingerprint",
    "encode",
    "canonical_json",
    "is_undelegated",
    "make_hash_id",
]
