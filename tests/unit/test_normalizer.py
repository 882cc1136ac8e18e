"""
Unit tests for parameter normalization.
"""

import copy

from dnstest_queue.projection import normalize
from dnstest_queue.types import DsInfo, Nameserver, NormalizedParams, ProfileDefaults


class TestNormalize:
    """Tests for normalize()."""

    def test_domain_lower_cased(self, profile_defaults: ProfileDefaults):
        """Test that the domain is case folded."""
        normalized = normalize({"domain": "ExAmPle.COM"}, profile_defaults)

        assert normalized.domain == "example.com"

    def test_missing_fields_use_defaults(self):
        """Test defaults for every unset field."""
        normalized = normalize({}, ProfileDefaults(ipv4_default=True, ipv6_default=False))

        assert normalized.domain == ""
        assert normalized.ipv4 is True
        assert normalized.ipv6 is False
        assert normalized.profile == "default"
        assert normalized.ds_info == ()
        assert normalized.nameservers == ()

    def test_explicit_address_families_win_over_profile(self, profile_defaults: ProfileDefaults):
        """Test that explicit ipv4/ipv6 values are kept."""
        normalized = normalize(
            {"domain": "example.com", "ipv4": False, "ipv6": False},
            profile_defaults,
        )

        assert normalized.ipv4 is False
        assert normalized.ipv6 is False

    def test_profile_name_kept(self, profile_defaults: ProfileDefaults):
        """Test that a named profile is carried over."""
        normalized = normalize({"domain": "example.com", "profile": "fast"}, profile_defaults)

        assert normalized.profile == "fast"

    def test_ds_info_sorted_by_algorithm_first(self, profile_defaults: ProfileDefaults):
        """Test the DS ordering on algorithm, digest, digtype, keytag."""
        normalized = normalize(
            {
                "domain": "example.com",
                "ds_info": [
                    {"algorithm": 5, "digest": "bb", "digtype": 2, "keytag": 10},
                    {"algorithm": 3, "digest": "aa", "digtype": 1, "keytag": 5},
                ],
            },
            profile_defaults,
        )

        assert normalized.ds_info == (
            DsInfo(algorithm=3, digest="aa", digtype=1, keytag=5),
            DsInfo(algorithm=5, digest="bb", digtype=2, keytag=10),
        )

    def test_ds_info_tie_breaks(self, profile_defaults: ProfileDefaults):
        """Test that digest, digtype and keytag break ties in that order."""
        entries = [
            {"algorithm": 8, "digest": "aa", "digtype": 2, "keytag": 7},
            {"algorithm": 8, "digest": "aa", "digtype": 2, "keytag": 3},
            {"algorithm": 8, "digest": "aa", "digtype": 1, "keytag": 9},
            {"algorithm": 8, "digest": "00", "digtype": 4, "keytag": 1},
        ]

        normalized = normalize({"domain": "example.com", "ds_info": entries}, profile_defaults)

        assert [(ds.digest, ds.digtype, ds.keytag) for ds in normalized.ds_info] == [
            ("00", 4, 1),
            ("aa", 1, 9),
            ("aa", 2, 3),
            ("aa", 2, 7),
        ]

    def test_nameserver_empty_ip_removed(self, profile_defaults: ProfileDefaults):
        """Test that an empty ip is treated as unset and the ns is lower-cased."""
        normalized = normalize(
            {"domain": "example.com", "nameservers": [{"ns": "NS1.Example.", "ip": ""}]},
            profile_defaults,
        )

        assert normalized.nameservers == (Nameserver(ns="ns1.example."),)
        assert normalized.to_dict()["nameservers"] == [{"ns": "ns1.example."}]

    def test_nameservers_sorted_by_name_then_ip(self, profile_defaults: ProfileDefaults):
        """Test nameserver ordering."""
        normalized = normalize(
            {
                "domain": "example.com",
                "nameservers": [
                    {"ns": "ns2.example.", "ip": "192.0.2.2"},
                    {"ns": "ns1.example.", "ip": "2001:db8::1"},
                    {"ns": "NS1.example.", "ip": "192.0.2.1"},
                    {"ns": "ns1.example."},
                ],
            },
            profile_defaults,
        )

        assert [(ns.ns, ns.ip) for ns in normalized.nameservers] == [
            ("ns1.example.", None),
            ("ns1.example.", "192.0.2.1"),
            ("ns1.example.", "2001:db8::1"),
            ("ns2.example.", "192.0.2.2"),
        ]

    def test_input_not_mutated(self, sample_params: dict, profile_defaults: ProfileDefaults):
        """Test that the caller's parameters are left untouched."""
        original = copy.deepcopy(sample_params)

        normalize(sample_params, profile_defaults)

        assert sample_params == original

    def test_order_and_case_insensitive(self, profile_defaults: ProfileDefaults):
        """Test that semantically equal requests normalize identically."""
        first = {
            "domain": "EXAMPLE.com",
            "nameservers": [
                {"ns": "NS1.example.", "ip": "192.0.2.1"},
                {"ns": "ns2.example."},
            ],
            "ds_info": [
                {"algorithm": 13, "digest": "ff", "digtype": 2, "keytag": 1},
                {"algorithm": 8, "digest": "ee", "digtype": 2, "keytag": 1},
            ],
        }
        second = {
            "ds_info": list(reversed(first["ds_info"])),
            "nameservers": [
                {"ip": "", "ns": "NS2.EXAMPLE."},
                {"ip": "192.0.2.1", "ns": "ns1.example."},
            ],
            "domain": "example.COM",
        }

        assert normalize(first, profile_defaults) == normalize(second, profile_defaults)

    def test_idempotent(self, sample_params: dict, profile_defaults: ProfileDefaults):
        """Test that normalizing a normalized request changes nothing."""
        once = normalize(sample_params, profile_defaults)

        assert normalize(once.to_dict(), profile_defaults) == once
        assert normalize(once, profile_defaults) == once

    def test_result_is_immutable_value(self, profile_defaults: ProfileDefaults):
        """Test that the projection is a value type."""
        normalized = normalize({"domain": "example.com"}, profile_defaults)

        assert isinstance(normalized, NormalizedParams)
        assert normalized == normalize({"domain": "example.com"}, profile_defaults)
