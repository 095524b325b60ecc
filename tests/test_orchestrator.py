"""Tests for ClusterOrchestrator create/delete sequences against fake AWS."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import EndpointConnectionError

from eks_cluster.models import AvailabilityZone, ClusterConfig, ResourceInventory
from eks_cluster.resource.client import ResourceClient
from eks_cluster.resource.errors import (
    OperationCancelled,
    PreconditionError,
    ProviderAPIError,
    WaitTimeoutError,
)
from eks_cluster.resource.inventory import read_inventory, write_inventory
from eks_cluster.resource.orchestrator import ClusterOrchestrator, planned_role_names
from eks_cluster.resource.role import CSI_DRIVER_POLICY_ARN

ISSUER_URL = "https://oidc.eks.us-east-1.amazonaws.com/id/ABC"


@pytest.fixture()
def inventory_path(tmp_path: Path) -> Path:
    return tmp_path / "inventory.json"


@pytest.fixture()
def orchestrator(resource_client: ResourceClient, inventory_path: Path) -> ClusterOrchestrator:
    return ClusterOrchestrator(resource_client, inventory_path)


def _minimal() -> ClusterConfig:
    return ClusterConfig(name="demo", storage_management=False)


def _full() -> ClusterConfig:
    return ClusterConfig(
        name="demo",
        dns_management=True,
        cluster_autoscaling=True,
        storage_management=True,
    )


class TestCreate:
    def test_minimal_cluster(self, fake_aws, orchestrator, inventory_path, sleeps) -> None:
        inv = orchestrator.create(_minimal())

        assert inv.region == "us-east-1"
        assert inv.vpc_id == "vpc-1"
        assert inv.internet_gateway_id == "igw-2"
        assert len(inv.subnet_ids) == 4
        assert len(inv.elastic_ip_ids) == 2
        assert len(inv.nat_gateway_ids) == 2
        assert inv.public_route_table_id
        assert len(inv.private_route_table_ids) == 2
        assert inv.cluster_role.role_name == "cluster-role-demo"
        assert inv.node_role.role_name == "worker-role-demo"
        assert inv.cluster.name == "demo"
        assert inv.cluster.oidc_issuer_url == ISSUER_URL
        assert inv.node_group_names == ["demo-private-node-group"]
        assert inv.oidc_provider_arn.endswith("oidc.eks.us-east-1.amazonaws.com/id/ABC")
        assert inv.policy_arns == []
        assert inv.addon_names == []
        assert inv.dns_management_role.role_name == ""
        assert inv.storage_management_role.role_name == ""

        assert read_inventory(inventory_path) == inv
        assert fake_aws.ec2.create_vpc.call_count == 1
        assert fake_aws.iam.create_role.call_count == 2
        fake_aws.iam.create_policy.assert_not_called()
        fake_aws.eks.create_addon.assert_not_called()

    def test_cluster_uses_all_subnets_node_group_private(self, fake_aws, orchestrator, sleeps) -> None:
        inv = orchestrator.create(_minimal())
        cluster_subnets = fake_aws.eks.create_cluster.call_args.kwargs["resourcesVpcConfig"]["subnetIds"]
        assert cluster_subnets == inv.subnet_ids
        node_subnets = fake_aws.eks.create_nodegroup.call_args.kwargs["subnets"]
        # private subnet comes first in each zone
        assert node_subnets == [inv.subnet_ids[0], inv.subnet_ids[2]]

    def test_dns_management_role(self, fake_aws, orchestrator, sleeps) -> None:
        config = ClusterConfig(name="demo", dns_management=True, storage_management=False)
        inv = orchestrator.create(config)

        assert len(inv.policy_arns) == 1
        policy_arn = inv.policy_arns[0]
        assert policy_arn.endswith(":policy/DNSUpdates-demo")
        assert inv.dns_management_role.role_name == "dns-mgmt-role-demo"
        assert inv.dns_management_role.policy_arns == [policy_arn]

        sa_call = fake_aws.iam.create_role.call_args_list[-1].kwargs
        assert sa_call["RoleName"] == "dns-mgmt-role-demo"
        assert sa_call["PermissionsBoundary"] == policy_arn
        assert "system:serviceaccount:external-dns:external-dns" in sa_call["AssumeRolePolicyDocument"]

    def test_dns01_shares_the_dns_policy(self, fake_aws, orchestrator, sleeps) -> None:
        config = ClusterConfig(
            name="demo", dns_management=True, dns01_challenge=True, storage_management=False,
        )
        inv = orchestrator.create(config)
        assert fake_aws.iam.create_policy.call_count == 1
        assert inv.dns01_challenge_role.role_name == "dns-chlg-role-demo"
        assert inv.dns01_challenge_role.policy_arns == inv.dns_management_role.policy_arns

    def test_full_cluster(self, fake_aws, orchestrator, sleeps) -> None:
        inv = orchestrator.create(_full())
        assert len(inv.policy_arns) == 2
        assert inv.cluster_autoscaling_role.role_name == "ca-role-demo"
        assert inv.storage_management_role.policy_arns == [CSI_DRIVER_POLICY_ARN]
        assert inv.addon_names == ["aws-ebs-csi-driver"]
        addon_call = fake_aws.eks.create_addon.call_args.kwargs
        assert addon_call["serviceAccountRoleArn"] == inv.storage_management_role.role_arn

    def test_creation_order(self, fake_aws, orchestrator, sleeps) -> None:
        orchestrator.create(_full())
        names = fake_aws.call_names()

        def first(call: str) -> int:
            return names.index(call)

        assert first("ec2.create_vpc") < first("ec2.create_internet_gateway")
        assert first("ec2.create_internet_gateway") < first("ec2.create_subnet")
        assert first("ec2.allocate_address") < first("ec2.create_nat_gateway")
        assert first("ec2.create_nat_gateway") < first("ec2.create_route_table")
        assert first("ec2.create_route_table") < first("iam.create_policy")
        assert first("iam.create_policy") < first("iam.create_role")
        assert first("iam.create_role") < first("eks.create_cluster")
        assert first("eks.create_cluster") < first("eks.create_nodegroup")
        assert first("eks.create_nodegroup") < first("iam.create_open_id_connect_provider")
        assert first("iam.create_open_id_connect_provider") < first("eks.create_addon")

    def test_config_region_overrides_session(self, fake_aws, orchestrator, sleeps) -> None:
        config = ClusterConfig(name="demo", region="eu-west-1", storage_management=False)
        fake_aws.zones = ("eu-west-1a", "eu-west-1b")
        inv = orchestrator.create(config)
        assert inv.region == "eu-west-1"
        filters = fake_aws.ec2.describe_availability_zones.call_args.kwargs["Filters"]
        assert {"Name": "region-name", "Values": ["eu-west-1"]} in filters

    def test_explicit_zones_and_account(self, fake_aws, orchestrator, sleeps) -> None:
        config = ClusterConfig(
            name="demo",
            aws_account_id="999999999999",
            storage_management=False,
            availability_zones=[
                AvailabilityZone(
                    zone="us-east-1c",
                    private_subnet_cidr="10.0.0.0/22",
                    public_subnet_cidr="10.0.4.0/22",
                ),
            ],
        )
        inv = orchestrator.create(config)
        fake_aws.ec2.describe_availability_zones.assert_not_called()
        fake_aws.sts.get_caller_identity.assert_not_called()
        assert len(inv.subnet_ids) == 2
        assert len(inv.nat_gateway_ids) == 1
        # caller's config is not mutated
        assert config.availability_zones[0].private_subnet_id == ""

    def test_missing_region(self, fake_aws, inventory_path) -> None:
        fake_aws.session.region_name = ""
        orchestrator = ClusterOrchestrator(ResourceClient(fake_aws.session), inventory_path)
        with pytest.raises(PreconditionError, match="region"):
            orchestrator.create(_minimal())
        fake_aws.ec2.create_vpc.assert_not_called()

    def test_role_names_checked_before_any_call(self, fake_aws, orchestrator, inventory_path) -> None:
        # fits "cluster-role-", one character too long for "dns-mgmt-role-"
        config = ClusterConfig(name="c" * 51, dns_management=True, storage_management=False)
        with pytest.raises(PreconditionError, match="dns-mgmt-role-c+ too long"):
            orchestrator.create(config)
        assert fake_aws.call_names() == []
        assert not inventory_path.exists()

    def test_planned_role_names(self) -> None:
        assert planned_role_names(_minimal()) == ["cluster-role-demo", "worker-role-demo"]
        assert planned_role_names(_full()) == [
            "cluster-role-demo",
            "worker-role-demo",
            "dns-mgmt-role-demo",
            "ca-role-demo",
            "csi-role-demo",
        ]

    def test_progress_messages(self, fake_aws, inventory_path, sleeps) -> None:
        observer = MagicMock()
        client = ResourceClient(fake_aws.session, observer=observer)
        ClusterOrchestrator(client, inventory_path).create(_minimal())

        messages = [c.args[0] for c in observer.on_message.call_args_list]
        assert messages[0] == "VPC created: vpc-1"
        assert messages[-1] == "Cluster demo created"
        snapshots = [c.args[0] for c in observer.on_inventory_changed.call_args_list]
        assert snapshots[0].vpc_id == ""
        assert snapshots[-1].addon_names == []
        assert snapshots[-1].oidc_provider_arn


class TestCheckpoints:
    def test_failure_keeps_earlier_resources(self, fake_aws, orchestrator, inventory_path, sleeps) -> None:
        fake_aws.fail("eks", "create_nodegroup")
        with pytest.raises(ProviderAPIError):
            orchestrator.create(_minimal())

        on_disk = read_inventory(inventory_path)
        assert on_disk.vpc_id == "vpc-1"
        assert len(on_disk.subnet_ids) == 4
        assert on_disk.cluster.name == "demo"
        assert on_disk.node_role.role_name == "worker-role-demo"
        assert on_disk.node_group_names == []
        assert on_disk == orchestrator.inventory

    def test_partial_step_is_recorded(self, fake_aws, orchestrator, inventory_path, sleeps) -> None:
        fake_aws.fail("ec2", "modify_subnet_attribute")
        with pytest.raises(ProviderAPIError):
            orchestrator.create(_minimal())

        on_disk = read_inventory(inventory_path)
        assert on_disk.vpc_id == "vpc-1"
        assert on_disk.internet_gateway_id == "igw-2"
        # private and public subnet of the first zone were created
        assert on_disk.subnet_ids == ["subnet-3", "subnet-4"]
        assert on_disk.elastic_ip_ids == []

    def test_connection_failure_keeps_created_subnets(
        self, fake_aws, orchestrator, inventory_path, sleeps,
    ) -> None:
        fake_aws.ec2.create_subnet.side_effect = [
            {"Subnet": {"SubnetId": "subnet-3"}},
            {"Subnet": {"SubnetId": "subnet-4"}},
            EndpointConnectionError(endpoint_url="https://ec2.us-east-1.amazonaws.com"),
        ]
        with pytest.raises(ProviderAPIError) as exc_info:
            orchestrator.create(_minimal())

        assert isinstance(exc_info.value.__cause__, EndpointConnectionError)
        on_disk = read_inventory(inventory_path)
        assert on_disk.vpc_id == "vpc-1"
        assert on_disk.subnet_ids == ["subnet-3", "subnet-4"]

    def test_partial_vpc_is_recorded(self, fake_aws, orchestrator, inventory_path, sleeps) -> None:
        fake_aws.fail("ec2", "modify_vpc_attribute")
        with pytest.raises(ProviderAPIError):
            orchestrator.create(_minimal())
        assert read_inventory(inventory_path).vpc_id == "vpc-1"

    def test_wait_timeout_keeps_cluster(self, fake_aws, orchestrator, inventory_path, sleeps) -> None:
        fake_aws.eks.describe_cluster.side_effect = lambda **kw: {
            "cluster": {"name": kw["name"], "status": "CREATING"},
        }
        with pytest.raises(WaitTimeoutError):
            orchestrator.create(_minimal())
        assert read_inventory(inventory_path).cluster.name == "demo"
        assert len(sleeps) == 59

    def test_cancel_between_steps(self, fake_aws, inventory_path, sleeps) -> None:
        observer = MagicMock()
        client = ResourceClient(fake_aws.session, observer=observer)

        def on_message(text: str) -> None:
            if text.startswith("VPC created"):
                client.cancel()

        observer.on_message.side_effect = on_message
        orchestrator = ClusterOrchestrator(client, inventory_path)
        with pytest.raises(OperationCancelled):
            orchestrator.create(_minimal())

        fake_aws.ec2.create_internet_gateway.assert_not_called()
        assert read_inventory(inventory_path).vpc_id == "vpc-1"


class TestDelete:
    def test_reverse_order(self, fake_aws, orchestrator, inventory_path, sleeps) -> None:
        orchestrator.create(_full())
        fake_aws.calls.reset_mock()
        fake_aws.iam.delete_role.reset_mock()

        orchestrator.delete()

        names = [n for n in fake_aws.call_names() if ".delete_" in n or ".release_" in n]
        collapsed = [n for i, n in enumerate(names) if i == 0 or names[i - 1] != n]
        assert collapsed == [
            "eks.delete_addon",
            "iam.delete_role",
            "iam.delete_open_id_connect_provider",
            "eks.delete_nodegroup",
            "eks.delete_cluster",
            "iam.delete_role",
            "iam.delete_policy",
            "ec2.delete_route_table",
            "ec2.delete_nat_gateway",
            "ec2.release_address",
            "ec2.delete_subnet",
            "ec2.delete_internet_gateway",
            "ec2.delete_vpc",
        ]
        deleted_roles = [c.kwargs["RoleName"] for c in fake_aws.iam.delete_role.call_args_list]
        assert deleted_roles == [
            "csi-role-demo",
            "ca-role-demo",
            "dns-mgmt-role-demo",
            "worker-role-demo",
            "cluster-role-demo",
        ]
        deleted_policies = [c.kwargs["PolicyArn"] for c in fake_aws.iam.delete_policy.call_args_list]
        assert deleted_policies[0].endswith("ClusterAutoscaling-demo")
        assert deleted_policies[1].endswith("DNSUpdates-demo")

    def test_clears_inventory_file(self, fake_aws, orchestrator, inventory_path, sleeps) -> None:
        orchestrator.create(_minimal())
        result = orchestrator.delete()
        assert result.is_empty()
        assert read_inventory(inventory_path) == ResourceInventory()
        assert fake_aws.clusters == {}
        assert fake_aws.route_tables == {}
        assert set(fake_aws.nat_states.values()) == {"deleted"}

    def test_second_delete_is_noop(self, fake_aws, orchestrator, inventory_path, sleeps) -> None:
        orchestrator.create(_minimal())
        orchestrator.delete()
        fake_aws.calls.reset_mock()

        orchestrator.delete()
        assert fake_aws.call_names() == []

    def test_already_gone_resources(self, fake_aws, orchestrator, inventory_path, sleeps) -> None:
        created = orchestrator.create(_full())
        fake_aws.forget_everything()

        result = orchestrator.delete(created)
        assert result.is_empty()
        assert read_inventory(inventory_path).is_empty()

    def test_failure_keeps_remaining_resources(self, fake_aws, orchestrator, inventory_path, sleeps) -> None:
        orchestrator.create(_minimal())
        fake_aws.fail("ec2", "delete_subnet", "DependencyViolation")

        with pytest.raises(ProviderAPIError, match="DependencyViolation"):
            orchestrator.delete()

        on_disk = read_inventory(inventory_path)
        assert on_disk.cluster.name == ""
        assert on_disk.node_group_names == []
        assert on_disk.elastic_ip_ids == []
        assert len(on_disk.subnet_ids) == 4
        assert on_disk.vpc_id == "vpc-1"

    def test_nat_lookup_without_recorded_ids(self, fake_aws, orchestrator, inventory_path, sleeps) -> None:
        fake_aws.nat_states["nat-orphan"] = "available"
        write_inventory(inventory_path, ResourceInventory(region="us-east-1", vpc_id="vpc-1"))

        orchestrator.delete()

        fake_aws.ec2.delete_nat_gateway.assert_called_once_with(NatGatewayId="nat-orphan")
        fake_aws.ec2.delete_vpc.assert_called_once_with(VpcId="vpc-1")

    def test_uses_recorded_region(self, fake_aws, resource_client, inventory_path, sleeps) -> None:
        orchestrator = ClusterOrchestrator(resource_client, inventory_path)
        orchestrator.delete(ResourceInventory(region="ap-south-1", vpc_id="vpc-1"))
        assert resource_client.region == "ap-south-1"
