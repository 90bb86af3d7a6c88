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
Cluster control messages over Pub/Sub.

Two channels exist per instance group:

- ``JOIN_<group>``: new members ask the primary to add them to the cluster.
  Only the primary subscribes, as ``JOIN_<instanceId>``.
- ``SYNC_COMPLETE_<group>``: the primary tells members a config sync is
  done. Every non-primary subscribes, as ``SYNC_COMPLETE_<instanceId>``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from cloudlibs_gce.config import SUBSCRIPTION_RETENTION
from cloudlibs_gce.gcp.interfaces import MessageBus
from cloudlibs_gce.utils.logger import logger as default_logger

JOIN_PREFIX = "JOIN_"
SYNC_COMPLETE_PREFIX = "SYNC_COMPLETE_"


class MessageAction(str, Enum):
    """Control message types."""
    ADD_TO_CLUSTER = "ADD_TO_CLUSTER"
    SYNC_COMPLETE = "SYNC_COMPLETE"


@dataclass
class ClusterMessage:
    """A control message between cluster members."""
    action: MessageAction
    to_instance_id: Optional[str] = None
    from_instance_id: Optional[str] = None
    data: Any = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "action": self.action.value,
            "toInstanceId": self.to_instance_id,
            "fromInstanceId": self.from_instance_id,
            "data": self.data,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClusterMessage":
        """Create from dictionary."""
        return cls(
            action=MessageAction(data["action"]),
            to_instance_id=data.get("toInstanceId"),
            from_instance_id=data.get("fromInstanceId"),
            data=data.get("data"),
        )


@dataclass(frozen=True)
class ClusterChannels:
    """Topic and subscription names for one instance in one group."""
    instance_group: str
    instance_id: str

    @property
    def join_topic(self) -> str:
        return JOIN_PREFIX + self.instance_group

    @property
    def sync_topic(self) -> str:
        return SYNC_COMPLETE_PREFIX + self.instance_group

    @property
    def join_subscription(self) -> str:
        return JOIN_PREFIX + self.instance_id

    @property
    def sync_subscription(self) -> str:
        return SYNC_COMPLETE_PREFIX + self.instance_id

    def topic_for(self, action: MessageAction) -> str:
        if action == MessageAction.ADD_TO_CLUSTER:
            return self.join_topic
        return self.sync_topic

    def subscription_for(self, action: MessageAction) -> str:
        if action == MessageAction.ADD_TO_CLUSTER:
            return self.join_subscription
        return self.sync_subscription


def _has_resource(names: Iterable[str], name: str) -> bool:
    """Whether a fully qualified listing contains ``name``."""
    return any(full == name or full.endswith("/" + name) for full in names)


class ClusterMessenger:
    """Sends and receives cluster control messages.

    Example:
        >>> messenger = ClusterMessenger(pubsub, ClusterChannels("grp", "bigip-1"))
        >>> await messenger.ensure_channels(is_primary=True)
        >>> messages = await messenger.get_messages([MessageAction.ADD_TO_CLUSTER])
    """

    def __init__(
        self,
        bus: MessageBus,
        channels: ClusterChannels,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.bus = bus
        self.channels = channels
        self.logger = logger or default_logger

    async def ensure_channels(self, is_primary: bool) -> None:
        """Create missing topics, then this instance's role subscription.

        Both steps list first and create only what is missing, so running
        this repeatedly converges on the same set of resources.
        """
        self.logger.debug("setting up topics and subscriptions")
        channels = self.channels

        topics = await self.bus.get_topics()
        missing_topics = [
            name for name in (channels.sync_topic, channels.join_topic)
            if not _has_resource(topics, name)
        ]
        for name in missing_topics:
            self.logger.debug(f"creating topic {name}")
        await asyncio.gather(*(self.bus.create_topic(name) for name in missing_topics))

        if is_primary:
            topic, subscription = channels.join_topic, channels.join_subscription
        else:
            topic, subscription = channels.sync_topic, channels.sync_subscription

        subscriptions = await self.bus.get_subscriptions(topic)
        if not _has_resource(subscriptions, subscription):
            self.logger.debug(f"creating subscription {subscription} on {topic}")
            await self.bus.create_subscription(
                topic, subscription, retention_duration=SUBSCRIPTION_RETENTION
            )

    async def send_message(
        self,
        action: MessageAction,
        to_instance_id: Optional[str] = None,
        from_instance_id: Optional[str] = None,
        data: Any = None,
    ) -> None:
        message = ClusterMessage(
            action=action,
            to_instance_id=to_instance_id,
            from_instance_id=from_instance_id,
            data=data,
        )
        await self.bus.publish(self.channels.topic_for(action), message.to_dict())

    async def get_messages(
        self,
        actions: Iterable[MessageAction],
        to_instance_id: Optional[str] = None,
    ) -> List[ClusterMessage]:
        """Pull messages for the given actions.

        Pulled messages are acknowledged immediately, whether or not they
        are returned.

        Args:
            actions: Actions to receive; other channels are not read
            to_instance_id: Only return messages addressed to this instance
        """
        subscriptions = []
        for action in actions:
            subscription = self.channels.subscription_for(MessageAction(action))
            if subscription not in subscriptions:
                subscriptions.append(subscription)

        results = await asyncio.gather(*(self.bus.pull(name) for name in subscriptions))

        messages = []
        for payloads in results:
            for payload in payloads:
                if not isinstance(payload, dict) or "action" not in payload:
                    self.logger.info(f"Ignoring unrecognized message: {payload!r}")
                    continue
                try:
                    message = ClusterMessage.from_dict(payload)
                except ValueError:
                    self.logger.info(f"Ignoring unrecognized message: {payload!r}")
                    continue
                if to_instance_id and message.to_instance_id != to_instance_id:
                    continue
                messages.append(message)
        return messages
