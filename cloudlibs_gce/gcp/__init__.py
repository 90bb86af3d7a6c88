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
Google Cloud service clients.

- GcpSession: project id, bearer token and HTTP session shared by clients
- ComputeClient: instance inventory, tags, NICs and forwarding rules
- PubSubClient: topics, subscriptions, publish and pull
- CloudStorageStore: content-type aware object storage
"""

from cloudlibs_gce.gcp.compute import ComputeClient
from cloudlibs_gce.gcp.interfaces import (
    InstanceTagger,
    InventorySource,
    MessageBus,
    NetworkControlPlane,
    ObjectStore,
)
from cloudlibs_gce.gcp.pubsub import PubSubClient
from cloudlibs_gce.gcp.resources import (
    ForwardingRule,
    GroupMember,
    NetworkInterface,
    StoredObject,
    TargetInstance,
    Vm,
    VmStatus,
)
from cloudlibs_gce.gcp.session import (
    GcpSession,
    MetadataClient,
    MetadataTokenSource,
    ServiceAccountTokenSource,
)
from cloudlibs_gce.gcp.storage import CloudStorageStore, parse_gs_uri

__all__ = [
    "CloudStorageStore",
    "ComputeClient",
    "ForwardingRule",
    "GcpSession",
    "GroupMember",
    "InstanceTagger",
    "InventorySource",
    "MessageBus",
    "MetadataClient",
    "MetadataTokenSource",
    "NetworkControlPlane",
    "NetworkInterface",
    "ObjectStore",
    "PubSubClient",
    "ServiceAccountTokenSource",
    "StoredObject",
    "TargetInstance",
    "Vm",
    "VmStatus",
    "parse_gs_uri",
]
