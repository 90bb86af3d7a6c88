# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Unit tests for the cluster data model and resource parsing."""

from datetime import datetime, timezone

from cloudlibs_gce.gcp.resources import ForwardingRule, GroupMember, TargetInstance, Vm
from cloudlibs_gce.models import (
    InstanceRecord,
    MaxAgeExpiryPolicy,
    PrimaryStatus,
    PrimaryStatusCode,
    parse_timestamp,
)


class TestInstanceRecord:
    """Tests for InstanceRecord serialization."""

    def test_from_dict(self):
        record = InstanceRecord.from_dict({
            "isPrimary": True,
            "privateIp": "10.0.0.2",
            "providerVisible": True,
            "versionOk": True,
            "lastUpdate": "2026-01-10T00:00:00Z",
            "primaryStatus": {"instanceId": "bigip-1", "status": "OK"},
        }, instance_id="bigip-1")

        assert record.instance_id == "bigip-1"
        assert record.is_primary is True
        assert record.last_update == datetime(2026, 1, 10, tzinfo=timezone.utc)
        assert record.primary_status.status == PrimaryStatusCode.OK

    def test_unknown_fields_preserved(self):
        """Fields written by other parties survive a read and write."""
        record = InstanceRecord.from_dict({"instanceId": "bigip-1", "lastBackup": 1234})

        assert record.to_dict()["lastBackup"] == 1234

    def test_missing_fields_default(self):
        record = InstanceRecord.from_dict({})

        assert record.is_primary is False
        assert record.provider_visible is False
        assert record.primary_status is None

    def test_from_vm(self):
        record = InstanceRecord.from_vm("bigip-1", "10.0.0.2", "35.1.1.1", external=True)

        assert record.mgmt_ip == "10.0.0.2"
        assert record.provider_visible is True
        assert record.external is True

    def test_primary_status_to_dict(self):
        status = PrimaryStatus(instance_id="bigip-1", status=PrimaryStatusCode.NOT_IN_CLOUD_LIST)

        assert status.to_dict()["status"] == "NOT_IN_CLOUD_LIST"


class TestExpiryPolicy:
    """Tests for MaxAgeExpiryPolicy."""

    def test_age(self):
        now = datetime(2026, 1, 10, tzinfo=timezone.utc).timestamp()
        policy = MaxAgeExpiryPolicy(3600, clock=lambda: now)

        fresh = InstanceRecord(last_update=datetime(2026, 1, 9, 23, 30, tzinfo=timezone.utc))
        old = InstanceRecord(last_update=datetime(2026, 1, 9, 22, 0, tzinfo=timezone.utc))

        assert policy(fresh) is False
        assert policy(old) is True

    def test_never_updated_is_expired(self):
        assert MaxAgeExpiryPolicy(3600)(InstanceRecord()) is True

    def test_parse_timestamp_naive_is_utc(self):
        assert parse_timestamp("2026-01-10T00:00:00").tzinfo == timezone.utc
        assert parse_timestamp(None) is None


class TestResources:
    """Tests for parsing Compute API resources."""

    def test_vm_from_api(self):
        vm = Vm.from_api({
            "name": "bigip-1",
            "zone": "https://www.googleapis.com/compute/v1/projects/p/zones/us-west1-a",
            "status": "RUNNING",
            "networkInterfaces": [{
                "name": "nic0",
                "networkIP": "10.0.0.2",
                "accessConfigs": [{"natIP": "35.1.1.1"}],
                "aliasIpRanges": [{"ipCidrRange": "10.0.0.100/32"}],
                "fingerprint": "abc=",
            }],
            "tags": {"items": ["grp-primary"], "fingerprint": "tfp="},
        })

        assert vm.zone == "us-west1-a"
        assert vm.is_alive is True
        assert vm.tags == ["grp-primary"]
        assert vm.tags_fingerprint == "tfp="
        nic = vm.network_interfaces[0]
        assert nic.nat_ip == "35.1.1.1"
        assert nic.to_update_body() == {
            "aliasIpRanges": [{"ipCidrRange": "10.0.0.100/32"}],
            "fingerprint": "abc=",
        }

    def test_group_member_from_api(self):
        member = GroupMember.from_api({
            "instance": "https://www.googleapis.com/compute/v1/projects/p/zones/z/instances/bigip-2",
            "status": "STOPPING",
        })

        assert member.name == "bigip-2"
        assert member.is_alive is False

    def test_forwarding_rule_and_target(self):
        rule = ForwardingRule.from_api({"name": "r1", "IPAddress": "35.2.2.2", "target": "t"})
        target = TargetInstance.from_api({
            "name": "ti-1",
            "instance": "projects/p/zones/z/instances/bigip-1",
            "selfLink": "https://link/ti-1",
        })

        assert rule.ip_address == "35.2.2.2"
        assert target.instance_name == "bigip-1"
