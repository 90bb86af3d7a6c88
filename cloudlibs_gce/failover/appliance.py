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

"""
BIG-IP iControl REST client.

Only the reads needed to decide which floating addresses this device owns
are implemented, plus a readiness check used to validate credentials.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

import aiohttp
from pydantic import BaseModel, ConfigDict, Field

from cloudlibs_gce.config import DEFAULT_MGMT_PORT
from cloudlibs_gce.exceptions import ApplianceError
from cloudlibs_gce.utils.logger import logger as default_logger

ACTIVE_STATE = "active"


class TrafficGroupStat(BaseModel):
    """Failover status of one traffic group on one device."""

    traffic_group: str = Field(..., description="Traffic group path")
    device_name: str = Field("", description="Device the status belongs to")
    failover_state: str = Field("", description="e.g. active, standby")

    @classmethod
    def from_nested_stats(cls, entry: Dict[str, Any]) -> "TrafficGroupStat":
        """Build from one ``entries`` item of ``/tm/cm/traffic-group/stats``."""
        fields = entry.get("nestedStats", {}).get("entries", {})

        def description(name: str) -> str:
            return str(fields.get(name, {}).get("description", ""))

        return cls(
            traffic_group=description("trafficGroup"),
            device_name=description("deviceName"),
            failover_state=description("failoverState"),
        )


class VirtualAddress(BaseModel):
    """A configured virtual address and the traffic group that floats it."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    address: str = Field(..., description="Address, possibly with a route domain or prefix")
    traffic_group: str = Field("", alias="trafficGroup", description="Traffic group path")


def get_traffic_group_addresses(
    hostname: str,
    stats: Iterable[TrafficGroupStat],
    virtual_addresses: Iterable[VirtualAddress],
    logger: Optional[logging.Logger] = None,
) -> List[VirtualAddress]:
    """Virtual addresses in traffic groups this device is active for.

    A traffic group counts when its device name contains ``hostname`` and
    its failover state is active. A virtual address belongs to it when the
    traffic group path contains the address's traffic group. Addresses
    without a traffic group belong to none.
    """
    logger = logger or default_logger

    my_groups = [
        stat.traffic_group
        for stat in stats
        if hostname in stat.device_name and stat.failover_state == ACTIVE_STATE
    ]
    if not my_groups:
        logger.info(f"We are not active for any traffic groups: {hostname}")
        return []

    virtual_addresses = list(virtual_addresses)
    if not virtual_addresses:
        logger.info("No virtual addresses exist, create them prior to failover")
        return []

    owned = []
    for virtual_address in virtual_addresses:
        if not virtual_address.traffic_group:
            continue
        for group in my_groups:
            if virtual_address.traffic_group in group:
                owned.append(virtual_address)
    return owned


class BigIpClient:
    """Minimal async iControl REST client.

    Example:
        >>> async with BigIpClient("localhost", "admin", "admin") as bigip:
        ...     hostname = await bigip.get_hostname()
    """

    def __init__(
        self,
        host: str,
        user: str,
        password: str,
        port: int = DEFAULT_MGMT_PORT,
        http: Optional[aiohttp.ClientSession] = None,
        timeout: float = 30.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.host = host
        self.user = user
        self.password = password
        self.port = port
        self.timeout = timeout
        self.logger = logger or default_logger
        self._http = http
        self._owns_http = http is None

    @property
    def base_url(self) -> str:
        return f"https://{self.host}:{self.port}/mgmt"

    @property
    def http(self) -> aiohttp.ClientSession:
        if self._http is None:
            self._http = aiohttp.ClientSession()
        return self._http

    async def list(self, path: str) -> Any:
        """GET an iControl REST path such as ``/tm/sys/global-settings``.

        Raises:
            ApplianceError: On connection failure or a non-2xx status
        """
        url = f"{self.base_url}{path}"
        try:
            async with self.http.get(
                url,
                auth=aiohttp.BasicAuth(self.user, self.password),
                ssl=False,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                if resp.status >= 400:
                    text = await resp.text()
                    raise ApplianceError(
                        f"GET {url} failed: {resp.status} {text}", status=resp.status
                    )
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ApplianceError(f"GET {url} failed: {e}") from e
        return data

    async def ready(self) -> None:
        """Check the device answers with these credentials. Raises ApplianceError."""
        await self.list("/tm/sys/global-settings")
        self.logger.debug(f"BIG-IP {self.host}:{self.port} is ready")

    async def get_hostname(self) -> str:
        settings = await self.list("/tm/sys/global-settings")
        return settings.get("hostname", "")

    async def get_traffic_group_stats(self) -> List[TrafficGroupStat]:
        data = await self.list("/tm/cm/traffic-group/stats")
        entries = data.get("entries", {}) if isinstance(data, dict) else {}
        return [TrafficGroupStat.from_nested_stats(entry) for entry in entries.values()]

    async def get_virtual_addresses(self) -> List[VirtualAddress]:
        data = await self.list("/tm/ltm/virtual-address")
        items = data.get("items", []) if isinstance(data, dict) else []
        return [VirtualAddress.model_validate(item) for item in items]

    async def close(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.close()
        self._http = None

    async def __aenter__(self) -> "BigIpClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
