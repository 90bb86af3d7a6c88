# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Unit tests for the Compute Engine REST client."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from cloudlibs_gce.exceptions import ComputeError, OperationError
from cloudlibs_gce.gcp.compute import ComputeClient
from cloudlibs_gce.gcp.resources import NetworkInterface

OP_LINK = "https://compute.googleapis.com/compute/v1/projects/p/zones/us-west1-a/operations/op-1"


def make_client(*responses):
    session = MagicMock()
    session.request = AsyncMock(side_effect=list(responses))
    return ComputeClient(session), session


def paths(session):
    return [(c.args[0], c.args[2]) for c in session.request.await_args_list]


class TestOperations:
    """Tests for waiting on long-running operations."""

    @pytest.mark.asyncio
    async def test_waits_until_done(self):
        client, session = make_client({"name": "op-1", "status": "DONE"})

        result = await client.wait_for_operation({"name": "op-1", "status": "RUNNING", "selfLink": OP_LINK})

        assert result["status"] == "DONE"
        assert paths(session) == [("POST", f"{OP_LINK}/wait")]

    @pytest.mark.asyncio
    async def test_operation_errors(self):
        client, _ = make_client()
        operation = {"name": "op-1", "status": "DONE", "error": {"errors": [{"code": "QUOTA"}]}}

        with pytest.raises(OperationError) as exc_info:
            await client.wait_for_operation(operation)

        assert exc_info.value.errors == [{"code": "QUOTA"}]

    @pytest.mark.asyncio
    async def test_no_self_link(self):
        client, _ = make_client()

        with pytest.raises(ComputeError, match="no selfLink"):
            await client.wait_for_operation({"name": "op-1", "status": "PENDING"})


class TestInventory:
    """Tests for listing calls."""

    @pytest.mark.asyncio
    async def test_group_listing_pages(self):
        """Every page of a listing is collected."""
        client, session = make_client(
            {"items": [{"instance": "zones/z/instances/bigip-1", "status": "RUNNING"}], "nextPageToken": "t"},
            {"items": [{"instance": "zones/z/instances/bigip-2", "status": "RUNNING"}]},
        )

        members = await client.list_group_instances("us-west1-a", "grp")

        assert [m.name for m in members] == ["bigip-1", "bigip-2"]
        assert session.request.await_args_list[1].kwargs["params"] == {"pageToken": "t"}
        assert session.request.await_args_list[0].kwargs["body"] == {"instanceState": "ALL"}

    @pytest.mark.asyncio
    async def test_aggregated_vms(self):
        """Labeled VMs are collected across zones."""
        client, session = make_client({"items": {
            "zones/us-west1-a": {"instances": [{"name": "bigip-1", "zone": "zones/us-west1-a"}]},
            "zones/us-east1-b": {"warning": {"code": "NO_RESULTS_ON_PAGE"}},
        }})

        vms = await client.list_vms("labels.app eq x")

        assert [vm.name for vm in vms] == ["bigip-1"]
        assert session.request.await_args.kwargs["params"] == {"filter": "labels.app eq x"}


class TestMutations:
    """Tests for calls that change resources."""

    @pytest.mark.asyncio
    async def test_set_tags_with_fingerprint(self):
        client, session = make_client({"name": "op-1", "status": "DONE"})

        await client.set_tags("us-west1-a", "bigip-1", ["grp-primary"], "fp=")

        call = session.request.await_args
        assert call.args[2] == "zones/us-west1-a/instances/bigip-1/setTags"
        assert call.kwargs["body"] == {"items": ["grp-primary"], "fingerprint": "fp="}

    @pytest.mark.asyncio
    async def test_update_network_interface(self):
        client, session = make_client({"name": "op-1", "status": "DONE"})
        nic = NetworkInterface(
            name="nic0", alias_ip_ranges=[{"ipCidrRange": "10.0.0.100/32"}], fingerprint="nfp="
        )

        await client.update_network_interface("us-west1-a", "bigip-1", nic)

        call = session.request.await_args
        assert call.args[0] == "PATCH"
        assert call.kwargs["params"] == {"networkInterface": "nic0"}
        assert call.kwargs["body"] == {
            "aliasIpRanges": [{"ipCidrRange": "10.0.0.100/32"}],
            "fingerprint": "nfp=",
        }

    @pytest.mark.asyncio
    async def test_set_forwarding_rule_target(self):
        client, session = make_client({"name": "op-2", "status": "DONE"})

        await client.set_forwarding_rule_target("us-west1", "rule-1", "https://link/ti-bigip-2")

        call = session.request.await_args
        assert call.args[2] == "regions/us-west1/forwardingRules/rule-1/setTarget"
        assert call.kwargs["body"] == {"target": "https://link/ti-bigip-2"}
