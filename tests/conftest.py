"""Shared fixtures: a stateful in-memory stand-in for the AWS APIs.

Every service client is a MagicMock attached to one parent mock, so
``fake_aws.calls.mock_calls`` records the cross-service call order.
No network access is needed.
"""

from __future__ import annotations

import base64
import itertools
from collections.abc import Generator
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from eks_cluster.resource.client import ResourceClient

ACCOUNT_ID = "123456789012"
REGION = "us-east-1"
ISSUER_URL = "https://oidc.eks.us-east-1.amazonaws.com/id/ABC"
CLUSTER_ENDPOINT = "https://ABC.gr7.us-east-1.eks.amazonaws.com"
CA_PEM = "-----BEGIN CERTIFICATE-----\nMIIC\n-----END CERTIFICATE-----\n"


def make_client_error(code: str, operation: str = "Operation", message: str = "") -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": message or f"{code} raised"}},
        operation,
    )


class FakeAws:
    """In-memory EC2, IAM, EKS and STS.

    Created resources get sequential IDs. Deleted EKS resources raise
    ResourceNotFoundException on describe; deleted NAT gateways report
    state ``deleted``.
    """

    def __init__(self, zones: tuple[str, ...] = ("us-east-1a", "us-east-1b", "us-east-1c")) -> None:
        self.zones = zones
        self.calls = MagicMock()
        self.ec2 = MagicMock()
        self.iam = MagicMock()
        self.eks = MagicMock()
        self.sts = MagicMock()
        for name in ("ec2", "iam", "eks", "sts"):
            self.calls.attach_mock(getattr(self, name), name)

        self.clients = {"ec2": self.ec2, "iam": self.iam, "eks": self.eks, "sts": self.sts}
        self.session = MagicMock()
        self.session.region_name = REGION
        self.session.client.side_effect = lambda service, **kwargs: self.clients[service]

        self._ids = itertools.count(1)
        self.nat_states: dict[str, str] = {}
        self.route_tables: dict[str, list[str]] = {}
        self.clusters: dict[str, str] = {}
        self.node_groups: dict[str, str] = {}
        self.addons: dict[str, str] = {}
        self._wire()

    def _next(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    # --- wiring ---

    def _wire(self) -> None:
        ec2, iam, eks, sts = self.ec2, self.iam, self.eks, self.sts

        ec2.describe_availability_zones.side_effect = lambda **kw: {
            "AvailabilityZones": [{"ZoneName": z, "State": "available"} for z in self.zones],
        }
        ec2.create_vpc.side_effect = lambda **kw: {"Vpc": {"VpcId": self._next("vpc")}}
        ec2.modify_vpc_attribute.return_value = {}
        ec2.create_internet_gateway.side_effect = lambda **kw: {
            "InternetGateway": {"InternetGatewayId": self._next("igw")},
        }
        ec2.attach_internet_gateway.return_value = {}
        ec2.create_subnet.side_effect = lambda **kw: {"Subnet": {"SubnetId": self._next("subnet")}}
        ec2.modify_subnet_attribute.return_value = {}
        ec2.allocate_address.side_effect = lambda **kw: {"AllocationId": self._next("eipalloc")}
        ec2.create_nat_gateway.side_effect = self._create_nat_gateway
        ec2.describe_nat_gateways.side_effect = self._describe_nat_gateways
        ec2.delete_nat_gateway.side_effect = self._delete_nat_gateway
        ec2.create_route_table.side_effect = self._create_route_table
        ec2.create_route.return_value = {"Return": True}
        ec2.associate_route_table.side_effect = self._associate_route_table
        ec2.describe_route_tables.side_effect = self._describe_route_tables
        ec2.disassociate_route_table.return_value = {}
        ec2.delete_route_table.side_effect = self._delete_route_table
        for method in (
            "delete_subnet", "release_address", "detach_internet_gateway",
            "delete_internet_gateway", "delete_vpc",
        ):
            getattr(ec2, method).return_value = {}

        iam.create_policy.side_effect = lambda **kw: {
            "Policy": {
                "PolicyName": kw["PolicyName"],
                "Arn": f"arn:aws:iam::{ACCOUNT_ID}:policy/{kw['PolicyName']}",
            },
        }
        iam.create_role.side_effect = lambda **kw: {
            "Role": {
                "RoleName": kw["RoleName"],
                "Arn": f"arn:aws:iam::{ACCOUNT_ID}:role/{kw['RoleName']}",
            },
        }
        iam.create_open_id_connect_provider.side_effect = lambda **kw: {
            "OpenIDConnectProviderArn": (
                f"arn:aws:iam::{ACCOUNT_ID}:oidc-provider/{kw['Url'].removeprefix('https://')}"
            ),
        }
        for method in (
            "attach_role_policy", "detach_role_policy", "delete_role",
            "delete_policy", "delete_open_id_connect_provider",
        ):
            getattr(iam, method).return_value = {}

        eks.create_cluster.side_effect = self._create_cluster
        eks.describe_cluster.side_effect = self._describe_cluster
        eks.delete_cluster.side_effect = self._delete_cluster
        eks.create_nodegroup.side_effect = self._create_nodegroup
        eks.describe_nodegroup.side_effect = self._describe_nodegroup
        eks.delete_nodegroup.side_effect = self._delete_nodegroup
        eks.create_addon.side_effect = self._create_addon
        eks.describe_addon.side_effect = self._describe_addon
        eks.delete_addon.side_effect = self._delete_addon

        sts.get_caller_identity.return_value = {
            "Account": ACCOUNT_ID,
            "Arn": f"arn:aws:iam::{ACCOUNT_ID}:user/tester",
        }

    # --- EC2 ---

    def _create_nat_gateway(self, **kw: Any) -> dict:
        nat_id = self._next("nat")
        self.nat_states[nat_id] = "available"
        return {"NatGateway": {"NatGatewayId": nat_id, "State": "pending"}}

    def _describe_nat_gateways(self, **kw: Any) -> dict:
        ids = kw.get("NatGatewayIds") or list(self.nat_states)
        return {
            "NatGateways": [
                {"NatGatewayId": i, "State": self.nat_states[i]}
                for i in ids
                if i in self.nat_states
            ],
        }

    def _delete_nat_gateway(self, **kw: Any) -> dict:
        nat_id = kw["NatGatewayId"]
        if nat_id not in self.nat_states:
            raise make_client_error("NatGatewayNotFound", "DeleteNatGateway")
        self.nat_states[nat_id] = "deleted"
        return {"NatGatewayId": nat_id}

    def _create_route_table(self, **kw: Any) -> dict:
        rtb_id = self._next("rtb")
        self.route_tables[rtb_id] = []
        return {"RouteTable": {"RouteTableId": rtb_id}}

    def _associate_route_table(self, **kw: Any) -> dict:
        assoc_id = self._next("rtbassoc")
        self.route_tables[kw["RouteTableId"]].append(assoc_id)
        return {"AssociationId": assoc_id}

    def _describe_route_tables(self, **kw: Any) -> dict:
        tables = []
        for rtb_id in kw["RouteTableIds"]:
            if rtb_id not in self.route_tables:
                raise make_client_error("InvalidRouteTableID.NotFound", "DescribeRouteTables")
            tables.append({
                "RouteTableId": rtb_id,
                "Associations": [
                    {"RouteTableAssociationId": a, "Main": False}
                    for a in self.route_tables[rtb_id]
                ],
            })
        return {"RouteTables": tables}

    def _delete_route_table(self, **kw: Any) -> dict:
        if self.route_tables.pop(kw["RouteTableId"], None) is None:
            raise make_client_error("InvalidRouteTableID.NotFound", "DeleteRouteTable")
        return {}

    # --- EKS ---

    def _create_cluster(self, **kw: Any) -> dict:
        self.clusters[kw["name"]] = "ACTIVE"
        return {"cluster": {"name": kw["name"], "arn": self._cluster_arn(kw["name"]),
                            "status": "CREATING"}}

    @staticmethod
    def _cluster_arn(name: str) -> str:
        return f"arn:aws:eks:{REGION}:{ACCOUNT_ID}:cluster/{name}"

    def _describe_cluster(self, **kw: Any) -> dict:
        name = kw["name"]
        if name not in self.clusters:
            raise make_client_error("ResourceNotFoundException", "DescribeCluster")
        return {
            "cluster": {
                "name": name,
                "arn": self._cluster_arn(name),
                "status": self.clusters[name],
                "endpoint": CLUSTER_ENDPOINT,
                "certificateAuthority": {
                    "data": base64.b64encode(CA_PEM.encode()).decode(),
                },
                "identity": {"oidc": {"issuer": ISSUER_URL}},
            },
        }

    def _delete_cluster(self, **kw: Any) -> dict:
        if self.clusters.pop(kw["name"], None) is None:
            raise make_client_error("ResourceNotFoundException", "DeleteCluster")
        return {}

    def _create_nodegroup(self, **kw: Any) -> dict:
        self.node_groups[kw["nodegroupName"]] = "ACTIVE"
        return {"nodegroup": {"nodegroupName": kw["nodegroupName"], "status": "CREATING"}}

    def _describe_nodegroup(self, **kw: Any) -> dict:
        name = kw["nodegroupName"]
        if name not in self.node_groups:
            raise make_client_error("ResourceNotFoundException", "DescribeNodegroup")
        return {"nodegroup": {"nodegroupName": name, "status": self.node_groups[name]}}

    def _delete_nodegroup(self, **kw: Any) -> dict:
        if self.node_groups.pop(kw["nodegroupName"], None) is None:
            raise make_client_error("ResourceNotFoundException", "DeleteNodegroup")
        return {}

    def _create_addon(self, **kw: Any) -> dict:
        self.addons[kw["addonName"]] = "ACTIVE"
        return {"addon": {"addonName": kw["addonName"], "status": "CREATING"}}

    def _describe_addon(self, **kw: Any) -> dict:
        name = kw["addonName"]
        if name not in self.addons:
            raise make_client_error("ResourceNotFoundException", "DescribeAddon")
        return {"addon": {"addonName": name, "status": self.addons[name]}}

    def _delete_addon(self, **kw: Any) -> dict:
        if self.addons.pop(kw["addonName"], None) is None:
            raise make_client_error("ResourceNotFoundException", "DeleteAddon")
        return {}

    # --- helpers for tests ---

    def fail(self, service: str, method: str, code: str = "AccessDenied") -> None:
        """Make one API method raise a ClientError."""
        getattr(self.clients[service], method).side_effect = make_client_error(code, method)

    def forget_everything(self) -> None:
        """Make every delete report not-found, as if the account were empty."""
        for service, method, code in (
            ("eks", "delete_addon", "ResourceNotFoundException"),
            ("eks", "delete_nodegroup", "ResourceNotFoundException"),
            ("eks", "delete_cluster", "ResourceNotFoundException"),
            ("iam", "detach_role_policy", "NoSuchEntity"),
            ("iam", "delete_role", "NoSuchEntity"),
            ("iam", "delete_policy", "NoSuchEntity"),
            ("iam", "delete_open_id_connect_provider", "NoSuchEntity"),
            ("ec2", "describe_route_tables", "InvalidRouteTableID.NotFound"),
            ("ec2", "delete_nat_gateway", "NatGatewayNotFound"),
            ("ec2", "release_address", "InvalidAllocationID.NotFound"),
            ("ec2", "delete_subnet", "InvalidSubnetID.NotFound"),
            ("ec2", "detach_internet_gateway", "InvalidInternetGatewayID.NotFound"),
            ("ec2", "delete_internet_gateway", "InvalidInternetGatewayID.NotFound"),
            ("ec2", "delete_vpc", "InvalidVpcID.NotFound"),
        ):
            self.fail(service, method, code)
        self.clusters.clear()
        self.node_groups.clear()
        self.addons.clear()
        self.nat_states.clear()

    def call_names(self) -> list[str]:
        """``service.method`` for every API call, in order."""
        return [c[0] for c in self.calls.mock_calls]


@pytest.fixture()
def fake_aws() -> FakeAws:
    return FakeAws()


@pytest.fixture()
def resource_client(fake_aws: FakeAws) -> ResourceClient:
    return ResourceClient(fake_aws.session)


@pytest.fixture()
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Record wait intervals instead of sleeping."""
    recorded: list[float] = []
    monkeypatch.setattr("eks_cluster.resource.wait.time.sleep", recorded.append)
    return recorded


@pytest.fixture(autouse=True)
def _no_tls() -> Generator[MagicMock, None, None]:
    """Never open a TLS connection to an OIDC issuer in tests."""
    with patch(
        "eks_cluster.resource.oidc_provider.fetch_certificate_chain",
        return_value=[b"leaf-cert", b"root-cert"],
    ) as fetch:
        yield fetch
