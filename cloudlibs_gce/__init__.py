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
cloudlibs_gce - Google Compute Engine cluster provider for BIG-IP.

This package lets a cluster of BIG-IP instances on Google Cloud agree on a
primary, share state through Cloud Storage, exchange control messages over
Pub/Sub, and move floating addresses to the active device on failover.
"""

__version__ = "1.0.0"
__author__ = "Firefly Software Solutions Inc"
__license__ = "Apache-2.0"

from cloudlibs_gce.config import DeploymentConfig, ProviderOptions
from cloudlibs_gce.exceptions import (
    CloudProviderError,
    ConfigurationError,
    FailoverError,
    RemoteServiceError,
    ValidationError,
)
from cloudlibs_gce.failover import FailoverRemediator, FailoverReport, perform_failover
from cloudlibs_gce.models import InstanceRecord, PrimaryStatus, PrimaryStatusCode
from cloudlibs_gce.provider import (
    GceCloudProvider,
    LicenseRevoker,
    MessageAction,
    TransitionHandle,
    elect_primary,
)

__all__ = [
    # Provider
    "GceCloudProvider",
    "LicenseRevoker",
    "MessageAction",
    "TransitionHandle",
    "elect_primary",
    # Failover
    "FailoverRemediator",
    "FailoverReport",
    "perform_failover",
    # Models and configuration
    "DeploymentConfig",
    "InstanceRecord",
    "PrimaryStatus",
    "PrimaryStatusCode",
    "ProviderOptions",
    # Errors
    "CloudProviderError",
    "ConfigurationError",
    "FailoverError",
    "RemoteServiceError",
    "ValidationError",
]
