"""IPv4 CIDR arithmetic and datacenter address classification.

Addresses are compared as unsigned 32-bit integers. Only dotted-quad IPv4
input is classified; anything else (IPv6, hostnames, garbage forwarded by a
proxy) never matches a range.
"""

from __future__ import annotations

import bisect
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple, Type


_MAX_IPV4 = 2 ** 32

# Major cloud / hosting provider ranges. A sample, not an exhaustive feed.
DATACENTER_RANGES: Tuple[str, ...] = (
    # AWS
    "3.0.0.0/8",
    "13.32.0.0/15",
    "13.224.0.0/14",
    "15.177.0.0/18",
    "18.130.0.0/16",
    "18.144.0.0/15",
    "23.20.0.0/14",
    "34.192.0.0/12",
    "52.0.0.0/11",
    "54.0.0.0/8",
    # Google Cloud
    "34.64.0.0/10",
    "35.184.0.0/13",
    "35.192.0.0/14",
    "35.196.0.0/15",
    "35.198.0.0/16",
    "35.199.0.0/17",
    "35.200.0.0/13",
    "35.208.0.0/12",
    "35.224.0.0/12",
    "35.240.0.0/13",
    # Microsoft Azure
    "13.64.0.0/11",
    "13.96.0.0/13",
    "13.104.0.0/14",
    "20.0.0.0/6",
    "23.96.0.0/13",
    "40.64.0.0/10",
    "52.224.0.0/11",
    "104.40.0.0/13",
    "137.116.0.0/14",
    "138.91.0.0/16",
    # DigitalOcean
    "104.131.0.0/16",
    "107.170.0.0/16",
    "128.199.0.0/16",
    "138.197.0.0/16",
    "139.59.0.0/16",
    "142.93.0.0/16",
    "143.110.0.0/16",
    "146.190.0.0/16",
    "147.182.0.0/16",
    "157.230.0.0/16",
    "159.65.0.0/16",
    "159.89.0.0/16",
    "164.90.0.0/16",
    "165.227.0.0/16",
    "167.71.0.0/16",
    "167.99.0.0/16",
    "174.138.0.0/16",
    "178.62.0.0/16",
    "188.166.0.0/16",
    "188.226.0.0/16",
    "206.189.0.0/16",
    "209.97.128.0/18",
    # Linode
    "23.239.0.0/16",
    "45.33.0.0/16",
    "45.56.0.0/16",
    "45.79.0.0/16",
    "50.116.0.0/16",
    "66.175.208.0/20",
    "69.164.192.0/19",
    "72.14.176.0/20",
    "74.207.224.0/19",
    "96.126.96.0/19",
    "97.107.128.0/18",
    "103.3.60.0/22",
    "106.187.32.0/19",
    "109.74.192.0/20",
    "139.162.0.0/16",
    "172.104.0.0/15",
    "173.230.128.0/19",
    "173.255.192.0/18",
    "176.58.96.0/19",
    "185.3.92.0/22",
    "192.155.80.0/20",
    "198.58.96.0/19",
    "212.71.224.0/19",
    # Vultr
    "45.32.0.0/16",
    "45.76.0.0/16",
    "45.77.0.0/16",
    "66.42.32.0/19",
    "104.156.224.0/19",
    "108.61.128.0/17",
    "149.28.0.0/16",
    "207.148.64.0/18",
    "216.128.128.0/17",
    # Hetzner
    "5.9.0.0/16",
    "78.46.0.0/15",
    "88.99.0.0/16",
    "94.130.0.0/16",
    "116.202.0.0/15",
    "135.181.0.0/16",
    "136.243.0.0/16",
    "138.201.0.0/16",
    "142.132.128.0/17",
    "144.76.0.0/16",
    "148.251.0.0/16",
    "159.69.0.0/16",
    "176.9.0.0/16",
    "178.63.0.0/16",
    "188.40.0.0/16",
    "195.201.0.0/16",
    "213.133.96.0/19",
    # OVH
    "5.39.0.0/16",
    "5.135.0.0/16",
    "5.196.0.0/16",
    "37.187.0.0/16",
    "37.59.0.0/16",
    "46.105.0.0/16",
    "51.254.0.0/15",
    "51.68.0.0/16",
    "51.75.0.0/16",
    "51.77.0.0/16",
    "51.79.0.0/16",
    "51.81.0.0/16",
    "51.83.0.0/16",
    "51.89.0.0/16",
    "51.91.0.0/16",
    "51.159.0.0/16",
    "51.161.0.0/16",
    "51.178.0.0/16",
    "51.195.0.0/16",
    "54.36.0.0/16",
    "54.37.0.0/16",
    "87.98.128.0/17",
    "91.121.0.0/16",
    "94.23.0.0/16",
    "137.74.0.0/16",
    "141.94.0.0/16",
    "141.95.0.0/16",
    "145.239.0.0/16",
    "146.59.0.0/16",
    "147.135.0.0/16",
    "149.202.0.0/16",
    "151.80.0.0/16",
    "152.228.128.0/17",
    "158.69.0.0/16",
    "164.132.0.0/16",
    "176.31.0.0/16",
    "178.32.0.0/15",
    "185.45.160.0/22",
    "188.165.0.0/16",
    "193.70.0.0/17",
    "198.27.64.0/18",
    "198.100.144.0/20",
    "213.186.32.0/19",
    "213.251.128.0/18",
)

# Known datacenter ASNs. Reference data only; no ASN lookup is performed.
DATACENTER_ASNS = {
    14618: "Amazon",
    15169: "Google",
    8075: "Microsoft",
    14061: "DigitalOcean",
    63949: "Linode",
    20473: "Choopa (Vultr)",
    24940: "Hetzner",
    16276: "OVH",
    13335: "Cloudflare",
    36351: "SoftLayer (IBM)",
    32613: "Rackspace",
}

_TRUSTED_EXACT = {"127.0.0.1", "::1"}
_TRUSTED_PREFIXES = ("192.168.", "10.", "172.16.")


def ip_to_number(ip: str) -> int:
    """Convert a dotted-quad IPv4 address to an unsigned 32-bit integer."""
    parts = ip.strip().split(".")
    if len(parts) != 4:
        raise ValueError(f"Not a dotted-quad IPv4 address: {ip!r}")
    o1, o2, o3, o4 = (int(part, 10) for part in parts)
    return ((o1 << 24) + (o2 << 16) + (o3 << 8) + o4) % _MAX_IPV4


def number_to_ip(number: int) -> str:
    if not 0 <= number < _MAX_IPV4:
        raise ValueError(f"Out of IPv4 range: {number}")
    return ".".join(str((number >> shift) & 0xFF) for shift in (24, 16, 8, 0))


@dataclass(frozen=True)
class CidrRange:
    network: str
    prefix: int

    def __post_init__(self):
        if not 0 <= self.prefix <= 32:
            raise ValueError(f"Invalid prefix length: {self.prefix}")
        ip_to_number(self.network)

    @classmethod
    def parse(cls, cidr: str) -> "CidrRange":
        network, _, prefix = cidr.partition("/")
        if not prefix:
            raise ValueError(f"Missing prefix length: {cidr!r}")
        return cls(network=network.strip(), prefix=int(prefix, 10))

    @property
    def mask(self) -> int:
        return ((_MAX_IPV4 - 1) << (32 - self.prefix)) % _MAX_IPV4

    @property
    def size(self) -> int:
        return 2 ** (32 - self.prefix)

    @property
    def start(self) -> int:
        return ip_to_number(self.network) & self.mask

    @property
    def end(self) -> int:
        return self.start + self.size - 1

    def contains(self, number: int) -> bool:
        return self.start <= number <= self.end

    def __str__(self) -> str:
        return f"{self.network}/{self.prefix}"


def parse_ranges(cidrs: Iterable[str]) -> List[CidrRange]:
    return [CidrRange.parse(c) for c in cidrs]


class RangeClassifier(ABC):
    """Membership test of an address number against a fixed set of ranges."""

    @abstractmethod
    def contains(self, number: int) -> bool:
        raise NotImplementedError


class LinearRangeClassifier(RangeClassifier):
    """Tests every range in turn. O(R) per lookup."""

    def __init__(self, ranges: Sequence[CidrRange]):
        self._intervals = [(r.start, r.end) for r in ranges]

    def find(self, number: int) -> Optional[Tuple[int, int]]:
        for start, end in self._intervals:
            if start <= number <= end:
                return start, end
        return None

    def contains(self, number: int) -> bool:
        return self.find(number) is not None


class SortedRangeClassifier(RangeClassifier):
    """Merges overlapping ranges and binary-searches the interval starts."""

    def __init__(self, ranges: Sequence[CidrRange]):
        merged: List[List[int]] = []
        for start, end in sorted((r.start, r.end) for r in ranges):
            if merged and start <= merged[-1][1] + 1:
                merged[-1][1] = max(merged[-1][1], end)
            else:
                merged.append([start, end])
        self._starts = [m[0] for m in merged]
        self._ends = [m[1] for m in merged]

    def find(self, number: int) -> Optional[Tuple[int, int]]:
        idx = bisect.bisect_right(self._starts, number) - 1
        if idx >= 0 and number <= self._ends[idx]:
            return self._starts[idx], self._ends[idx]
        return None

    def contains(self, number: int) -> bool:
        return self.find(number) is not None


CLASSIFIERS = {
    "linear": LinearRangeClassifier,
    "sorted": SortedRangeClassifier,
}


def is_trusted_address(address: str) -> bool:
    """Loopback and private addresses that are always allowed."""
    return address in _TRUSTED_EXACT or address.startswith(_TRUSTED_PREFIXES)


class DatacenterClassifier:
    def __init__(
        self,
        ranges: Optional[Iterable[str]] = None,
        classifier_cls: Type[RangeClassifier] = LinearRangeClassifier,
    ):
        self.ranges = parse_ranges(DATACENTER_RANGES if ranges is None else ranges)
        self._classifier = classifier_cls(self.ranges)

    def is_datacenter_address(self, address: str) -> bool:
        if not address or is_trusted_address(address):
            return False
        try:
            number = ip_to_number(address)
        except ValueError:
            # IPv6 and malformed input are never classified as datacenter.
            return False
        return self._classifier.contains(number)


_default_classifier: Optional[DatacenterClassifier] = None


def is_datacenter_address(address: str) -> bool:
    global _default_classifier
    if _default_classifier is None:
        _default_classifier = DatacenterClassifier()
    return _default_classifier.is_datacenter_address(address)
