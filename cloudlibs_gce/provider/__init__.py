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
Cluster provider.

- GceCloudProvider: the facade a cluster manager drives
- InstanceReconciler: merges live inventory with persisted state
- elect_primary: picks the primary from a reconciled instance map
- PrimaryTransitionManager: applies an election outcome
- ClusterMessenger: join and sync-complete control messages
"""

from cloudlibs_gce.provider.election import elect_primary
from cloudlibs_gce.provider.inventory import (
    InstanceReconciler,
    LicenseRevoker,
    ReconciliationResult,
)
from cloudlibs_gce.provider.messaging import (
    ClusterChannels,
    ClusterMessage,
    ClusterMessenger,
    MessageAction,
)
from cloudlibs_gce.provider.provider import GceCloudProvider
from cloudlibs_gce.provider.state import ClusterStateStore
from cloudlibs_gce.provider.transition import PrimaryTransitionManager, TransitionHandle

__all__ = [
    "ClusterChannels",
    "ClusterMessage",
    "ClusterMessenger",
    "ClusterStateStore",
    "GceCloudProvider",
    "InstanceReconciler",
    "LicenseRevoker",
    "MessageAction",
    "PrimaryTransitionManager",
    "ReconciliationResult",
    "TransitionHandle",
    "elect_primary",
]
