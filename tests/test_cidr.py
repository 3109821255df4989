"""Tests for IPv4 arithmetic and the datacenter classifier."""

import pytest

from app.core.cidr import (
    DATACENTER_RANGES,
    CidrRange,
    DatacenterClassifier,
    LinearRangeClassifier,
    SortedRangeClassifier,
    ip_to_number,
    is_datacenter_address,
    number_to_ip,
    parse_ranges,
)


@pytest.mark.parametrize(
    "ip,number",
    [
        ("0.0.0.0", 0),
        ("0.0.0.1", 1),
        ("1.2.3.4", 0x01020304),
        ("192.168.1.5", 0xC0A80105),
        ("255.255.255.255", 2 ** 32 - 1),
    ],
)
def test_ip_to_number(ip, number):
    assert ip_to_number(ip) == number
    assert number_to_ip(number) == ip


def test_ip_round_trip_over_octet_boundaries():
    for a in (0, 1, 127, 128, 254, 255):
        for d in (0, 9, 255):
            quad = f"{a}.{255 - a}.{d}.{a ^ d}"
            assert number_to_ip(ip_to_number(quad)) == quad


@pytest.mark.parametrize("bad", ["", "1.2.3", "1.2.3.4.5", "::1", "2001:db8::1", "abc.def.ghi.jkl"])
def test_ip_to_number_rejects_non_quads(bad):
    with pytest.raises(ValueError):
        ip_to_number(bad)


def test_number_to_ip_rejects_out_of_range():
    with pytest.raises(ValueError):
        number_to_ip(2 ** 32)


def test_every_table_range_has_expected_size():
    for rng in parse_ranges(DATACENTER_RANGES):
        assert rng.start <= rng.end
        assert rng.end - rng.start + 1 == 2 ** (32 - rng.prefix)
        assert rng.contains(ip_to_number(rng.network))


def test_unaligned_network_is_masked():
    rng = CidrRange.parse("10.1.2.3/24")
    assert number_to_ip(rng.start) == "10.1.2.0"
    assert number_to_ip(rng.end) == "10.1.2.255"


def test_prefix_edges():
    whole = CidrRange.parse("0.0.0.0/0")
    assert (whole.start, whole.end) == (0, 2 ** 32 - 1)
    single = CidrRange.parse("8.8.8.8/32")
    assert single.start == single.end == ip_to_number("8.8.8.8")


@pytest.mark.parametrize("bad", ["1.2.3.0", "1.2.3.0/33", "1.2.3/24"])
def test_invalid_cidr(bad):
    with pytest.raises(ValueError):
        CidrRange.parse(bad)


@pytest.mark.parametrize("address", ["127.0.0.1", "::1", "192.168.1.5", "10.0.0.1", "172.16.4.4", ""])
def test_local_and_private_addresses_are_never_datacenter(address):
    classifier = DatacenterClassifier(ranges=["0.0.0.0/0"])
    assert classifier.is_datacenter_address(address) is False


def test_injected_range():
    classifier = DatacenterClassifier(ranges=["203.0.113.0/24"])
    assert classifier.is_datacenter_address("203.0.113.42") is True
    assert classifier.is_datacenter_address("203.0.114.1") is False


def test_default_table():
    assert is_datacenter_address("54.12.34.56") is True  # AWS
    assert is_datacenter_address("104.131.7.8") is True  # DigitalOcean
    assert is_datacenter_address("81.2.69.160") is False


@pytest.mark.parametrize("address", ["not-an-ip", "2600:1f18::1", "unknown", "1.2.3"])
def test_malformed_and_ipv6_are_not_datacenter(address):
    assert DatacenterClassifier(ranges=["0.0.0.0/1", "128.0.0.0/1"]).is_datacenter_address(address) is False


def test_sorted_and_linear_classifiers_agree():
    ranges = parse_ranges(DATACENTER_RANGES)
    linear = LinearRangeClassifier(ranges)
    fast = SortedRangeClassifier(ranges)
    probes = [r.start for r in ranges] + [r.end for r in ranges]
    probes += [r.start - 1 for r in ranges if r.start > 0] + [r.end + 1 for r in ranges if r.end < 2 ** 32 - 1]
    probes += [ip_to_number(ip) for ip in ("81.2.69.160", "8.8.8.8", "1.1.1.1", "200.1.1.1")]
    for number in probes:
        assert linear.contains(number) == fast.contains(number), number_to_ip(number)


def test_sorted_classifier_merges_overlaps():
    classifier = SortedRangeClassifier(parse_ranges(["10.0.0.0/8", "10.1.0.0/16", "11.0.0.0/8"]))
    assert classifier.find(ip_to_number("11.200.0.1")) == (ip_to_number("10.0.0.0"), ip_to_number("11.255.255.255"))
    assert classifier.contains(ip_to_number("12.0.0.0")) is False
