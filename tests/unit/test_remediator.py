# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Unit tests for failover network remediation."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from cloudlibs_gce.exceptions import FailoverError, RetryExhaustedError
from cloudlibs_gce.failover.appliance import TrafficGroupStat, VirtualAddress
from cloudlibs_gce.failover.remediator import (
    FailoverRemediator,
    perform_failover,
    plan_forwarding_rule_updates,
    plan_nic_updates,
)
from cloudlibs_gce.gcp.resources import ForwardingRule, TargetInstance
from cloudlibs_gce.utils.retry import RetryConfig

TARGET_URL = "https://compute.googleapis.com/compute/v1/projects/p/zones/us-west1-a/targetInstances"
OWNED = [VirtualAddress(address="10.0.0.100", traffic_group="/Common/traffic-group-1")]
NO_WAIT = RetryConfig(max_retries=4, interval=0)


def targets():
    return [
        TargetInstance("ti-bigip-1", "zones/us-west1-a/instances/bigip-1", f"{TARGET_URL}/ti-bigip-1"),
        TargetInstance("ti-bigip-2", "zones/us-west1-a/instances/bigip-2", f"{TARGET_URL}/ti-bigip-2"),
    ]


def deployment(compute, alias_on="bigip-1"):
    """Two VMs, with the floating range on ``alias_on``."""
    return [
        compute.add_vm(name, ip, aliases=["10.0.0.100/32"] if name == alias_on else ["10.0.1.0/28"])
        for name, ip in (("bigip-1", "10.0.0.2"), ("bigip-2", "10.0.0.3"))
    ]


def make_remediator(compute):
    return FailoverRemediator(compute, nic_retry=NO_WAIT, rule_retry=NO_WAIT)


class TestPlanNicUpdates:
    """Tests for NIC update planning."""

    def test_range_moves_to_same_nic(self, compute):
        """The owned range leaves the peer and joins this VM's NIC of the same name."""
        plan = plan_nic_updates("bigip-2", deployment(compute), OWNED)

        assert [(u.vm_name, u.nic.name) for u in plan.disassociate] == [("bigip-1", "nic0")]
        assert [(u.vm_name, u.nic.name) for u in plan.associate] == [("bigip-2", "nic0")]
        assert plan.disassociate[0].nic.alias_ip_ranges == []
        assert plan.associate[0].nic.alias_ip_ranges == [
            {"ipCidrRange": "10.0.1.0/28"},
            {"ipCidrRange": "10.0.0.100/32"},
        ]

    def test_already_in_place(self, compute):
        """Nothing is planned when this VM already holds the range."""
        plan = plan_nic_updates("bigip-2", deployment(compute, alias_on="bigip-2"), OWNED)

        assert plan.disassociate == []
        assert plan.associate == []

    def test_unowned_ranges_untouched(self, compute):
        """Ranges that are not owned stay where they are."""
        other = [VirtualAddress(address="192.168.1.1", traffic_group="/Common/traffic-group-1")]

        plan = plan_nic_updates("bigip-2", deployment(compute), other)

        assert plan.disassociate == []

    def test_own_vm_missing(self, compute):
        """Failing to find this VM aborts the plan."""
        with pytest.raises(FailoverError, match="Unable to locate our VM"):
            plan_nic_updates("bigip-9", deployment(compute), OWNED)

    def test_zone_fallback(self, compute):
        """VMs without a zone use the default zone."""
        vms = deployment(compute)
        vms[0].zone = ""

        plan = plan_nic_updates("bigip-2", vms, OWNED, default_zone="us-west1-b")

        assert plan.disassociate[0].zone == "us-west1-b"


class TestPlanForwardingRuleUpdates:
    """Tests for forwarding rule planning."""

    def test_rule_retargeted(self):
        """An owned rule pointing elsewhere is retargeted at this VM."""
        rules = [
            ForwardingRule("rule-1", "10.0.0.100", f"{TARGET_URL}/ti-bigip-1"),
            ForwardingRule("rule-2", "10.9.9.9", f"{TARGET_URL}/ti-bigip-1"),
        ]

        updates = plan_forwarding_rule_updates("bigip-2", rules, targets(), OWNED)

        assert [(u.rule, u.target) for u in updates] == [("rule-1", f"{TARGET_URL}/ti-bigip-2")]

    def test_rule_already_targeted(self):
        """A rule that already targets this VM is left alone."""
        rules = [ForwardingRule("rule-1", "10.0.0.100", f"{TARGET_URL}/ti-bigip-2")]

        assert plan_forwarding_rule_updates("bigip-2", rules, targets(), OWNED) == []

    def test_target_instance_missing(self):
        """A VM without a target instance cannot take over rules."""
        with pytest.raises(FailoverError, match="Unable to locate our target instance"):
            plan_forwarding_rule_updates("bigip-9", [], targets(), OWNED)


class TestFailoverRemediator:
    """Tests for FailoverRemediator.run."""

    @pytest.mark.asyncio
    async def test_disassociate_before_associate(self, compute):
        """Peer NICs are updated before this VM's NIC."""
        report = await make_remediator(compute).run(
            "bigip-2", "us-west1-a", deployment(compute), [], targets(), OWNED
        )

        assert compute.nic_updates == [
            ("bigip-1", "nic0", []),
            ("bigip-2", "nic0", ["10.0.1.0/28", "10.0.0.100/32"]),
        ]
        assert report.disassociated == 1
        assert report.associated == 1

    @pytest.mark.asyncio
    async def test_second_run_no_updates(self, compute):
        """Running again once addresses are in place changes nothing."""
        report = await make_remediator(compute).run(
            "bigip-2",
            "us-west1-a",
            deployment(compute, alias_on="bigip-2"),
            [ForwardingRule("rule-1", "10.0.0.100", f"{TARGET_URL}/ti-bigip-2")],
            targets(),
            OWNED,
        )

        assert compute.nic_updates == []
        assert compute.rule_updates == []
        assert report.to_dict() == {
            "disassociated": 0,
            "associated": 0,
            "forwardingRules": 0,
            "skipped": False,
        }

    @pytest.mark.asyncio
    async def test_forwarding_rules_in_region(self, compute):
        """Rules are updated in the region of this VM's zone."""
        rules = [ForwardingRule("rule-1", "10.0.0.100", f"{TARGET_URL}/ti-bigip-1")]

        report = await make_remediator(compute).run(
            "bigip-2", "us-west1-a", deployment(compute), rules, targets(), OWNED
        )

        assert compute.rule_updates == [("us-west1", "rule-1", f"{TARGET_URL}/ti-bigip-2")]
        assert report.forwarding_rules == 1

    @pytest.mark.asyncio
    async def test_nothing_owned_skips(self, compute):
        """With no owned addresses nothing is read or changed."""
        report = await make_remediator(compute).run(
            "bigip-9", "us-west1-a", deployment(compute), [], [], []
        )

        assert report.skipped is True
        assert compute.nic_updates == []

    @pytest.mark.asyncio
    async def test_not_ready_retried(self, compute):
        """Transient update failures are retried."""
        compute.nic_failures = 2

        await make_remediator(compute).run(
            "bigip-2", "us-west1-a", deployment(compute), [], targets(), OWNED
        )

        assert len(compute.nic_updates) == 2

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, compute):
        """An update that keeps failing fails the run before any association."""
        compute.nic_failures = 10
        remediator = FailoverRemediator(compute, nic_retry=RetryConfig(max_retries=1, interval=0))

        with pytest.raises(RetryExhaustedError):
            await remediator.run("bigip-2", "us-west1-a", deployment(compute), [], targets(), OWNED)

        assert compute.nic_updates == []


class TestPerformFailover:
    """Tests for the end to end failover procedure."""

    def make_bigip(self, state="active"):
        bigip = MagicMock()
        bigip.get_hostname = AsyncMock(return_value="bigip2.local")
        bigip.get_traffic_group_stats = AsyncMock(return_value=[
            TrafficGroupStat(
                traffic_group="/Common/traffic-group-1",
                device_name="/Common/bigip2.local",
                failover_state=state,
            )
        ])
        bigip.get_virtual_addresses = AsyncMock(return_value=[
            VirtualAddress.model_validate({"address": "10.0.0.100", "trafficGroup": "/Common/traffic-group-1"})
        ])
        return bigip

    def make_metadata(self):
        entries = {"instance/name": "bigip-2", "instance/zone": "projects/123/zones/us-west1-a"}
        metadata = MagicMock()
        metadata.get = AsyncMock(side_effect=lambda entry: entries[entry])
        return metadata

    @pytest.mark.asyncio
    async def test_active_device_takes_addresses(self, compute):
        """The active device moves its ranges and rules to itself."""
        compute.labeled_vms = deployment(compute)
        compute.forwarding_rules = [ForwardingRule("rule-1", "10.0.0.100", f"{TARGET_URL}/ti-bigip-1")]
        compute.target_instances = targets()

        report = await perform_failover(
            self.make_metadata(),
            self.make_bigip(),
            compute,
            compute,
            {"key": "deployment", "value": "Prod"},
            remediator=make_remediator(compute),
        )

        assert compute.list_filters == ["labels.deployment eq prod"]
        assert report.associated == 1
        assert compute.rule_updates == [("us-west1", "rule-1", f"{TARGET_URL}/ti-bigip-2")]

    @pytest.mark.asyncio
    async def test_standby_device_skips(self, compute):
        """A standby device owns nothing and changes nothing."""
        compute.labeled_vms = deployment(compute)

        report = await perform_failover(
            self.make_metadata(),
            self.make_bigip(state="standby"),
            compute,
            compute,
            {"key": "deployment", "value": "prod"},
            remediator=make_remediator(compute),
        )

        assert report.skipped is True
        assert compute.nic_updates == []
        assert compute.rule_updates == []
