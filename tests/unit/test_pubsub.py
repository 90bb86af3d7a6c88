# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Unit tests for the Pub/Sub REST client."""

import base64
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from cloudlibs_gce.exceptions import MessagingError
from cloudlibs_gce.gcp.pubsub import PubSubClient, decode_message, encode_message


def make_client(*responses):
    session = MagicMock()
    session.project_id = "my-project"
    session.initialize = AsyncMock()
    session.request = AsyncMock(side_effect=list(responses))
    return PubSubClient(session), session


def received(ack_id, payload, content_type="application/json"):
    return {
        "ackId": ack_id,
        "message": {
            "data": base64.b64encode(payload.encode()).decode(),
            "attributes": {"contentType": content_type},
        },
    }


class TestEnvelope:
    """Tests for message envelopes."""

    def test_json_envelope(self):
        """Objects are sent as JSON with a matching content type."""
        envelope = encode_message({"action": "SYNC_COMPLETE"})

        assert envelope["attributes"] == {"contentType": "application/json"}
        assert json.loads(base64.b64decode(envelope["data"])) == {"action": "SYNC_COMPLETE"}
        assert decode_message(envelope) == {"action": "SYNC_COMPLETE"}

    def test_text_envelope(self):
        """Strings are sent as text."""
        envelope = encode_message("hello")

        assert envelope["attributes"] == {"contentType": "text/plain"}
        assert decode_message(envelope) == "hello"

    def test_bad_json(self):
        """A JSON message that does not parse is an error."""
        envelope = received("a", "{not json")["message"]

        with pytest.raises(MessagingError, match="JSON parse failure"):
            decode_message(envelope)

    def test_invalid_utf8(self):
        """Data that is not UTF-8 text is reported as a messaging error."""
        envelope = {"data": base64.b64encode(b"\xff\xfe").decode(), "attributes": {}}

        with pytest.raises(MessagingError, match="Unable to decode"):
            decode_message(envelope)

    def test_invalid_base64(self):
        with pytest.raises(MessagingError, match="Unable to decode"):
            decode_message({"data": "abc"})


class TestPubSubClient:
    """Tests for PubSubClient over a mocked session."""

    @pytest.mark.asyncio
    async def test_pull_acknowledges_everything(self):
        """Every pulled message is acknowledged, including unparseable ones."""
        client, session = make_client(
            {"receivedMessages": [
                received("ack-1", '{"action": "ADD_TO_CLUSTER"}'),
                received("ack-2", "{broken"),
                received("ack-3", "plain", content_type="text/plain"),
            ]},
            {},
        )

        messages = await client.pull("JOIN_bigip-1")

        assert messages == [{"action": "ADD_TO_CLUSTER"}, "plain"]
        ack_call = session.request.await_args_list[1]
        assert ack_call.args[:3] == ("POST", client.base_url, "subscriptions/JOIN_bigip-1:acknowledge")
        assert ack_call.kwargs["body"] == {"ackIds": ["ack-1", "ack-2", "ack-3"]}

    @pytest.mark.asyncio
    async def test_pull_acknowledges_undecodable_data(self):
        """Binary data in a batch is dropped but still acknowledged."""
        binary = {
            "ackId": "ack-2",
            "message": {"data": base64.b64encode(b"\xff\xfe").decode()},
        }
        client, session = make_client(
            {"receivedMessages": [received("ack-1", '{"action": "SYNC_COMPLETE"}'), binary]},
            {},
        )

        messages = await client.pull("SYNC_COMPLETE_bigip-1")

        assert messages == [{"action": "SYNC_COMPLETE"}]
        assert session.request.await_args_list[1].kwargs["body"] == {"ackIds": ["ack-1", "ack-2"]}

    @pytest.mark.asyncio
    async def test_pull_empty_skips_ack(self):
        """No acknowledge call is made for an empty batch."""
        client, session = make_client({})

        assert await client.pull("JOIN_bigip-1") == []
        assert session.request.await_count == 1

    @pytest.mark.asyncio
    async def test_create_subscription_body(self):
        """Subscriptions reference the topic by full name and carry retention."""
        client, session = make_client({})

        await client.create_subscription("JOIN_grp", "JOIN_bigip-1", retention_duration="3600s")

        call = session.request.await_args
        assert call.args[:3] == ("PUT", client.base_url, "subscriptions/JOIN_bigip-1")
        assert call.kwargs["body"] == {
            "topic": "projects/my-project/topics/JOIN_grp",
            "messageRetentionDuration": "3600s",
        }

    @pytest.mark.asyncio
    async def test_get_topics(self):
        """Topic listings return full names."""
        client, _ = make_client({"topics": [{"name": "projects/my-project/topics/JOIN_grp"}]})

        assert await client.get_topics() == ["projects/my-project/topics/JOIN_grp"]

    @pytest.mark.asyncio
    async def test_get_subscriptions_none(self):
        """A topic without subscriptions lists none."""
        client, _ = make_client({})

        assert await client.get_subscriptions("JOIN_grp") == []

    @pytest.mark.asyncio
    async def test_errors_propagate(self):
        """Request failures are raised to the caller."""
        client, _ = make_client(MessagingError("403 forbidden", status=403))

        with pytest.raises(MessagingError):
            await client.publish("JOIN_grp", {"action": "ADD_TO_CLUSTER"})
