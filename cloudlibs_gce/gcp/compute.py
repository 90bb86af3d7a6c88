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
Compute Engine REST client.

Implements the inventory, tagging and network control-plane interfaces on
top of the Compute Engine v1 REST API. Mutating calls return a zone or
region operation; the client waits for that operation to finish so callers
see a completed change or an error.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from cloudlibs_gce.exceptions import ComputeError, OperationError
from cloudlibs_gce.gcp.interfaces import InstanceTagger, InventorySource, NetworkControlPlane
from cloudlibs_gce.gcp.resources import (
    ForwardingRule,
    GroupMember,
    NetworkInterface,
    TargetInstance,
    Vm,
)
from cloudlibs_gce.gcp.session import GcpSession
from cloudlibs_gce.utils.logger import logger as default_logger

COMPUTE_URL = "https://compute.googleapis.com/compute/v1"

# Polls of an operation's wait endpoint before giving up
MAX_OPERATION_POLLS = 30


class ComputeClient(InventorySource, InstanceTagger, NetworkControlPlane):
    """Compute Engine API client.

    Example:
        >>> compute = ComputeClient(session)
        >>> vm = await compute.get_vm("us-west1-a", "bigip-1")
        >>> vm.network_interfaces[0].network_ip
        '10.0.0.2'
    """

    def __init__(
        self,
        session: GcpSession,
        base_url: str = COMPUTE_URL,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.session = session
        self.base_url = base_url
        self.logger = logger or default_logger

    async def _request(
        self,
        method: str,
        path: str,
        body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        return await self.session.request(
            method, self.base_url, path, body=body, params=params, error_cls=ComputeError
        )

    async def _list(
        self,
        method: str,
        path: str,
        body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> List[Dict[str, Any]]:
        """Collect ``items`` across every page of a list call."""
        items: List[Dict[str, Any]] = []
        query = dict(params or {})
        while True:
            data = await self._request(method, path, body=body, params=query or None)
            items.extend(data.get("items") or [])
            token = data.get("nextPageToken")
            if not token:
                return items
            query["pageToken"] = token

    async def wait_for_operation(self, operation: Dict[str, Any]) -> Dict[str, Any]:
        """Block until a zone or region operation is done.

        Raises:
            OperationError: If the operation finished with errors
            ComputeError: If it does not finish in time
        """
        name = operation.get("name", "")
        for _ in range(MAX_OPERATION_POLLS):
            if operation.get("status") == "DONE":
                errors = (operation.get("error") or {}).get("errors")
                if errors:
                    raise OperationError(name, errors)
                return operation
            self_link = operation.get("selfLink")
            if not self_link:
                raise ComputeError(f"Operation {name} has no selfLink")
            operation = await self._request("POST", f"{self_link}/wait")
        raise ComputeError(f"Operation {name} did not complete")

    # ==================== Inventory ====================

    async def list_group_instances(self, zone: str, group: str) -> List[GroupMember]:
        items = await self._list(
            "POST",
            f"zones/{zone}/instanceGroups/{group}/listInstances",
            body={"instanceState": "ALL"},
        )
        return [GroupMember.from_api(item) for item in items]

    async def get_vm(self, zone: str, name: str) -> Vm:
        data = await self._request("GET", f"zones/{zone}/instances/{name}")
        return Vm.from_api(data)

    async def list_vms(self, label_filter: str) -> List[Vm]:
        """List instances across zones using ``aggregated/instances``."""
        vms: List[Vm] = []
        query: Dict[str, str] = {"filter": label_filter}
        while True:
            data = await self._request("GET", "aggregated/instances", params=query)
            for scoped in (data.get("items") or {}).values():
                vms.extend(Vm.from_api(item) for item in scoped.get("instances") or [])
            token = data.get("nextPageToken")
            if not token:
                return vms
            query["pageToken"] = token

    # ==================== Tags ====================

    async def set_tags(
        self, zone: str, name: str, tags: List[str], fingerprint: Optional[str]
    ) -> None:
        body: Dict[str, Any] = {"items": tags}
        if fingerprint:
            body["fingerprint"] = fingerprint
        operation = await self._request("POST", f"zones/{zone}/instances/{name}/setTags", body=body)
        await self.wait_for_operation(operation)

    # ==================== Network ====================

    async def update_network_interface(
        self, zone: str, vm_name: str, nic: NetworkInterface
    ) -> None:
        operation = await self._request(
            "PATCH",
            f"zones/{zone}/instances/{vm_name}/updateNetworkInterface",
            body=nic.to_update_body(),
            params={"networkInterface": nic.name},
        )
        await self.wait_for_operation(operation)

    async def list_forwarding_rules(self, region: str) -> List[ForwardingRule]:
        items = await self._list("GET", f"regions/{region}/forwardingRules")
        return [ForwardingRule.from_api(item) for item in items]

    async def list_target_instances(self, zone: str) -> List[TargetInstance]:
        items = await self._list("GET", f"zones/{zone}/targetInstances")
        return [TargetInstance.from_api(item) for item in items]

    async def set_forwarding_rule_target(self, region: str, rule: str, target: str) -> None:
        operation = await self._request(
            "POST",
            f"regions/{region}/forwardingRules/{rule}/setTarget",
            body={"target": target},
        )
        self.logger.debug(f"Forwarding rule operation name: {operation.get('name')}")
        await self.wait_for_operation(operation)
