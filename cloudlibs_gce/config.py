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
Configuration for the Google Cloud provider and the failover command.

ProviderOptions carries the options the cluster manager hands to the
provider. DeploymentConfig is the deployment file written at provisioning
time and read by the failover command.
"""

from __future__ import annotations

import base64
import binascii
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from cloudlibs_gce.exceptions import ConfigurationError, ValidationError

DEFAULT_MGMT_PORT = 443
DEFAULT_DEPLOYMENT_FILE = "/config/cloud/.deployment"
DEFAULT_FAILOVER_LOG_FILE = "/var/log/cloud/google/failover.log"

# Pub/Sub subscription message retention
SUBSCRIPTION_RETENTION = "3600s"

# Persisted instance records older than this are expired
DEFAULT_MAX_INSTANCE_AGE_SECONDS = 3 * 24 * 60 * 60


@dataclass
class ProviderOptions:
    """Options for the Google Cloud provider.

    Attributes:
        region: Region to search for instances. Looked up from the
            metadata server when not given
        mgmt_port: BIG-IP management port
        service_account: Service account used for Pub/Sub tokens.
            Required for autoscale
        storage_bucket: Cloud Storage bucket for cluster state
        secret: Base64 encoded service account credentials. Required when
            not running inside Google Cloud
        instance_group: Instance group name, unique in the project.
            Required for autoscale
        autoscale: Whether the provider is used for autoscaling
        max_instance_age: Seconds after which a persisted record that
            the cloud no longer reports is considered expired
    """

    region: Optional[str] = None
    mgmt_port: int = DEFAULT_MGMT_PORT
    service_account: Optional[str] = None
    storage_bucket: Optional[str] = None
    secret: Optional[str] = None
    instance_group: Optional[str] = None
    autoscale: bool = False
    max_instance_age: float = DEFAULT_MAX_INSTANCE_AGE_SECONDS

    def validate(self) -> None:
        """Check option combinations.

        Raises:
            ConfigurationError: If a required option is missing
        """
        if self.autoscale:
            if not self.service_account:
                raise ConfigurationError(
                    "serviceAccount is required when used for autoscaling"
                )
            if not self.instance_group:
                raise ConfigurationError(
                    "instanceGroup is required when used for autoscaling"
                )
        if self.secret and not self.region:
            raise ConfigurationError("region is required when providing credentials")

    def decode_secret(self) -> Optional[Dict[str, Any]]:
        """Decode the base64 credentials, if any.

        Raises:
            ValidationError: If the secret is not base64 encoded JSON
        """
        if not self.secret:
            return None
        try:
            return json.loads(base64.b64decode(self.secret).decode("utf-8"))
        except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ValidationError(f"Error parsing credentials: {e}") from e

    @classmethod
    def from_env(cls) -> "ProviderOptions":
        """Create ProviderOptions from environment variables.

        Environment variables:
            GCE_REGION: Region
            GCE_MGMT_PORT: BIG-IP management port
            GCE_SERVICE_ACCOUNT: Service account name
            GCE_STORAGE_BUCKET: Storage bucket name
            GCE_SECRET: Base64 encoded credentials
            GCE_INSTANCE_GROUP: Instance group name
            GCE_AUTOSCALE: "true" to enable autoscale checks
            GCE_MAX_INSTANCE_AGE: Expiry age in seconds
        """
        return cls(
            region=os.environ.get("GCE_REGION") or None,
            mgmt_port=int(os.environ.get("GCE_MGMT_PORT", str(DEFAULT_MGMT_PORT))),
            service_account=os.environ.get("GCE_SERVICE_ACCOUNT") or None,
            storage_bucket=os.environ.get("GCE_STORAGE_BUCKET") or None,
            secret=os.environ.get("GCE_SECRET") or None,
            instance_group=os.environ.get("GCE_INSTANCE_GROUP") or None,
            autoscale=os.environ.get("GCE_AUTOSCALE", "false").lower() == "true",
            max_instance_age=float(
                os.environ.get(
                    "GCE_MAX_INSTANCE_AGE", str(DEFAULT_MAX_INSTANCE_AGE_SECONDS)
                )
            ),
        )


class DeploymentConfig(BaseModel):
    """Deployment file describing how to find the cluster's VMs."""

    model_config = ConfigDict(populate_by_name=True)

    tag_key: str = Field(..., alias="tagKey", description="Deployment label key")
    tag_value: str = Field(..., alias="tagValue", description="Deployment label value")

    @property
    def tag(self) -> Dict[str, str]:
        return {"key": self.tag_key, "value": self.tag_value}

    @classmethod
    def load(cls, path: str = DEFAULT_DEPLOYMENT_FILE) -> "DeploymentConfig":
        """Read the deployment file.

        Raises:
            ConfigurationError: If the file is missing or malformed
        """
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigurationError(f"Deployment file not found: {path}")
        try:
            return cls.model_validate_json(config_path.read_text(encoding="utf-8"))
        except ValueError as e:
            raise ConfigurationError(f"Invalid deployment file {path}: {e}") from e
