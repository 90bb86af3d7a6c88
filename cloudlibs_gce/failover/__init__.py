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

"""Failover: move floating addresses to this device when it goes active."""

from cloudlibs_gce.failover.appliance import (
    BigIpClient,
    TrafficGroupStat,
    VirtualAddress,
    get_traffic_group_addresses,
)
from cloudlibs_gce.failover.remediator import (
    FailoverRemediator,
    FailoverReport,
    NicUpdatePlan,
    perform_failover,
    plan_forwarding_rule_updates,
    plan_nic_updates,
)

__all__ = [
    "BigIpClient",
    "FailoverRemediator",
    "FailoverReport",
    "NicUpdatePlan",
    "TrafficGroupStat",
    "VirtualAddress",
    "get_traffic_group_addresses",
    "perform_failover",
    "plan_forwarding_rule_updates",
    "plan_nic_updates",
]
