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
Pub/Sub REST client.

A thin client over the Pub/Sub v1 REST API, authenticated with the
service account token of the session.

Message envelope:
    Payloads are JSON-encoded (or sent as-is when they are strings), base64
    encoded into ``data``, and tagged with a ``contentType`` attribute of
    ``application/json`` or ``text/plain`` so the receiver can decode them.

Delivery:
    ``pull`` acknowledges every message of the batch before returning it,
    so delivery is at-most-once: a message is consumed even if the caller
    fails while processing it.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any, Dict, List, Optional

from cloudlibs_gce.exceptions import MessagingError
from cloudlibs_gce.gcp.interfaces import MessageBus
from cloudlibs_gce.gcp.session import GcpSession
from cloudlibs_gce.utils.logger import logger as default_logger

PUBSUB_URL = "https://pubsub.googleapis.com/v1"

JSON_CONTENT_TYPE = "application/json"
TEXT_CONTENT_TYPE = "text/plain"

# Messages requested per pull
MAX_PULL_MESSAGES = 10


def encode_message(message: Any) -> Dict[str, Any]:
    """Build the published envelope for a message."""
    if isinstance(message, str):
        message_data = message
        content_type = TEXT_CONTENT_TYPE
    else:
        message_data = json.dumps(message)
        content_type = JSON_CONTENT_TYPE
    return {
        "data": base64.b64encode(message_data.encode("utf-8")).decode("ascii"),
        "attributes": {"contentType": content_type},
    }


def decode_message(envelope: Dict[str, Any]) -> Any:
    """Decode a received envelope back into its payload.

    Raises:
        MessagingError: If the data is not base64 encoded UTF-8 text, or a
            JSON message cannot be parsed
    """
    attributes = envelope.get("attributes") or {}
    try:
        message_string = base64.b64decode(envelope.get("data", "")).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise MessagingError(f"Unable to decode pubsub message: {e}") from e
    if attributes.get("contentType") == JSON_CONTENT_TYPE:
        try:
            return json.loads(message_string)
        except json.JSONDecodeError as e:
            raise MessagingError(f"JSON parse failure receiving pubsub message: {e}") from e
    return message_string


class PubSubClient(MessageBus):
    """Pub/Sub client for the project of a GcpSession.

    Example:
        >>> pubsub = PubSubClient(session)
        >>> await pubsub.create_topic("JOIN_my-group")
        >>> await pubsub.publish("JOIN_my-group", {"action": "ADD_TO_CLUSTER"})
        >>> messages = await pubsub.pull("JOIN_bigip-1")
    """

    def __init__(
        self,
        session: GcpSession,
        base_url: str = PUBSUB_URL,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.session = session
        self.base_url = base_url
        self.logger = logger or default_logger

    @property
    def project_id(self) -> Optional[str]:
        return self.session.project_id

    async def _request(
        self, method: str, path: str, body: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        try:
            return await self.session.request(
                method, self.base_url, path, body=body, error_cls=MessagingError
            )
        except MessagingError as e:
            self.logger.info(f"{method} {path} error: {e}")
            raise

    async def create_topic(self, name: str) -> None:
        await self._request("PUT", f"topics/{name}")

    async def create_subscription(
        self, topic: str, name: str, retention_duration: Optional[str] = None
    ) -> None:
        await self.session.initialize()
        body: Dict[str, Any] = {"topic": f"projects/{self.project_id}/topics/{topic}"}
        if retention_duration:
            body["messageRetentionDuration"] = retention_duration
        await self._request("PUT", f"subscriptions/{name}", body=body)

    async def get_topics(self) -> List[str]:
        data = await self._request("GET", "topics")
        return [topic["name"] for topic in data.get("topics") or []]

    async def get_subscriptions(self, topic: str) -> List[str]:
        data = await self._request("GET", f"topics/{topic}/subscriptions")
        return list(data.get("subscriptions") or [])

    async def publish(self, topic: str, message: Any) -> None:
        body = {"messages": [encode_message(message)]}
        await self._request("POST", f"topics/{topic}:publish", body=body)

    async def acknowledge(self, subscription: str, ack_ids: List[str]) -> None:
        if not ack_ids:
            return
        await self._request(
            "POST", f"subscriptions/{subscription}:acknowledge", body={"ackIds": ack_ids}
        )

    async def pull(self, subscription: str) -> List[Any]:
        """Pull one batch, acknowledge all of it, and return the payloads.

        Messages whose JSON payload cannot be parsed are acknowledged and
        dropped.
        """
        data = await self._request(
            "POST",
            f"subscriptions/{subscription}:pull",
            body={"returnImmediately": True, "maxMessages": MAX_PULL_MESSAGES},
        )

        messages = []
        ack_ids = []
        for received in data.get("receivedMessages") or []:
            ack_ids.append(received["ackId"])
            try:
                messages.append(decode_message(received.get("message") or {}))
            except MessagingError as e:
                self.logger.info(str(e))

        await self.acknowledge(subscription, ack_ids)
        return messages
