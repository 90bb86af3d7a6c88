# Copyright 2026 Firefly Software Solutions Inc
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Address, zone and resource-name helpers."""

from __future__ import annotations

import ipaddress
from typing import Any, Iterable, List, Union

from cloudlibs_gce.exceptions import ValidationError


def ip_to_number(ip: str) -> int:
    """Convert a dotted IPv4 address to its 32-bit integer form."""
    try:
        return int(ipaddress.IPv4Address(ip))
    except (ipaddress.AddressValueError, TypeError) as e:
        raise ValidationError(f"Invalid IPv4 address: {ip}") from e


def zone_from_metadata_zone(metadata_zone: str) -> str:
    """Get the zone name from a metadata zone id.

    ``projects/734288666861/zones/us-west1-a`` becomes ``us-west1-a``.
    """
    return metadata_zone.rsplit("/", 1)[-1]


def region_from_zone(zone: str) -> str:
    """Get the region a zone belongs to: ``us-west1-a`` becomes ``us-west1``."""
    index = zone.rfind("-")
    if index == -1:
        return zone
    return zone[:index]


def resource_name(url: str) -> str:
    """Last path segment of a resource URL or partial URL."""
    return url.rstrip("/").rsplit("/", 1)[-1]


def _cidr_of(entry: Union[str, dict]) -> str:
    if isinstance(entry, dict):
        entry = entry["ipCidrRange"]
    return entry if "/" in entry else f"{entry}/32"


def _address_of(entry: Union[str, dict, Any]) -> str:
    if isinstance(entry, dict):
        entry = entry["address"]
    elif not isinstance(entry, str):
        entry = entry.address
    return entry.split("/")[0]


def match_ips(
    ips: Iterable[Union[str, dict]],
    ips_filter: Iterable[Union[str, dict, Any]],
) -> List[Union[str, dict]]:
    """Return the entries of ``ips`` that contain any address in ``ips_filter``.

    Entries of ``ips`` are CIDR ranges, either plain strings or alias range
    dicts carrying ``ipCidrRange``; a bare address is treated as a /32.
    Filter entries are host addresses (strings, dicts or objects with an
    ``address`` field); any prefix length on them is ignored.
    """
    filter_addresses = []
    for entry in ips_filter:
        try:
            filter_addresses.append(ipaddress.ip_address(_address_of(entry)))
        except ValueError as e:
            raise ValidationError(f"Invalid filter address: {entry}") from e

    matched = []
    for ip in ips:
        try:
            network = ipaddress.ip_network(_cidr_of(ip), strict=False)
        except ValueError as e:
            raise ValidationError(f"Invalid address range: {ip}") from e
        if any(address in network for address in filter_addresses):
            matched.append(ip)
    return matched
