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

"""Primary election over a reconciled instance map."""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from cloudlibs_gce.models import InstanceRecord
from cloudlibs_gce.utils.logger import logger as default_logger
from cloudlibs_gce.utils.network import ip_to_number


def can_be_elected(instance: InstanceRecord) -> bool:
    """Only visible instances running an acceptable version are candidates."""
    return bool(instance.version_ok and instance.provider_visible and instance.private_ip)


def elect_primary(
    instances: Mapping[str, InstanceRecord],
    logger: Optional[logging.Logger] = None,
) -> Optional[str]:
    """Pick the primary: the candidate with the numerically lowest private IP.

    External instances (for example BYOL) are preferred: if any candidate
    is external, the lowest-IP external candidate wins even when an internal
    candidate has a lower address. Equal addresses are invalid input; the
    first one encountered wins.

    Returns:
        Instance id of the elected primary, or None if nobody is eligible

    Raises:
        ValidationError: If a candidate's private IP is malformed
    """
    logger = logger or default_logger

    primary_id: Optional[str] = None
    external_primary_id: Optional[str] = None
    lowest_ip: Optional[int] = None
    lowest_external_ip: Optional[int] = None

    for instance_id, instance in instances.items():
        if not can_be_elected(instance):
            continue
        ip_number = ip_to_number(instance.private_ip)
        if lowest_ip is None or ip_number < lowest_ip:
            lowest_ip = ip_number
            primary_id = instance_id
        if instance.external and (lowest_external_ip is None or ip_number < lowest_external_ip):
            lowest_external_ip = ip_number
            external_primary_id = instance_id

    if external_primary_id is not None:
        logger.debug("electPrimary: using external primary")
        primary_id = external_primary_id

    logger.debug(f"electPrimary: electedPrimary: {primary_id}")
    return primary_id
