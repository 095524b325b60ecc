"""NAT gateway adapter.

One public NAT gateway per zone, placed in the zone's public subnet with
one of the elastic IPs. NAT gateways provision asynchronously, so both
create and delete are followed by :func:`wait_for_nat_gateways`.
"""

from __future__ import annotations

import logging

from eks_cluster.models import AvailabilityZone
from eks_cluster.resource.client import ResourceClient
from eks_cluster.resource.errors import (
    NotFoundError,
    PreconditionError,
    partial_result,
    tolerate_not_found,
    translate_errors,
)
from eks_cluster.resource.tags import tag_specification
from eks_cluster.resource.wait import Condition, Status, WaitPolicy, wait_for_all

logger = logging.getLogger(__name__)

NAT_GATEWAY_WAIT = WaitPolicy(max_attempts=20)

AVAILABLE = "available"
DELETED = "deleted"
FAILED = "failed"


def _is_available(status: Status) -> bool:
    return status.state == AVAILABLE


def _is_failed(status: Status) -> bool:
    return status.state == FAILED


def _is_gone(status: Status) -> bool:
    return status.state in (DELETED, FAILED)


def _never_failed(status: Status) -> bool:
    return False


def create_nat_gateways(
    client: ResourceClient,
    tags: list[dict[str, str]],
    zones: list[AvailabilityZone],
    elastic_ip_ids: list[str],
) -> list[str]:
    """Create a NAT gateway in each zone's public subnet.

    The gateway ID is written back onto each zone. Returns the IDs in zone
    order.
    """
    if len(elastic_ip_ids) < len(zones):
        raise PreconditionError(
            f"need {len(zones)} elastic IPs for NAT gateways, have {len(elastic_ip_ids)}"
        )

    ec2 = client.client("ec2")
    nat_ids: list[str] = []

    with partial_result(nat_ids):
        for zone, allocation_id in zip(zones, elastic_ip_ids):
            with translate_errors("create NAT gateway in subnet", zone.public_subnet_id):
                resp = ec2.create_nat_gateway(
                    SubnetId=zone.public_subnet_id,
                    AllocationId=allocation_id,
                    ConnectivityType="public",
                    TagSpecifications=tag_specification("natgateway", tags),
                )
            zone.nat_gateway_id = resp["NatGateway"]["NatGatewayId"]
            nat_ids.append(zone.nat_gateway_id)

    return nat_ids


def get_nat_gateway_status(client: ResourceClient, nat_gateway_id: str) -> Status:
    ec2 = client.client("ec2")
    with translate_errors("describe NAT gateway", nat_gateway_id):
        resp = ec2.describe_nat_gateways(NatGatewayIds=[nat_gateway_id])
    gateways = resp.get("NatGateways", [])
    if not gateways:
        raise NotFoundError(
            f"failed to describe NAT gateway {nat_gateway_id}: not found",
            "describe NAT gateway", nat_gateway_id,
        )
    gateway = gateways[0]
    detail = gateway.get("FailureMessage", "")
    if gateway.get("FailureCode"):
        detail = f"{gateway['FailureCode']}: {detail}"
    return Status(state=gateway.get("State", ""), detail=detail)


def wait_for_nat_gateways(
    client: ResourceClient,
    nat_gateway_ids: list[str],
    condition: Condition,
    policy: WaitPolicy = NAT_GATEWAY_WAIT,
) -> None:
    """Wait for every NAT gateway to become available, or to be deleted.

    A gateway that failed to provision is also treated as gone when
    waiting for deletion, since AWS removes it on its own.
    """
    if condition is Condition.CREATED:
        done, failed = _is_available, _is_failed
    else:
        done, failed = _is_gone, _never_failed

    wait_for_all(
        [i for i in nat_gateway_ids if i],
        lambda nat_id: get_nat_gateway_status(client, nat_id),
        condition,
        done=done,
        failed=failed,
        policy=policy,
        kind="NAT gateway",
    )


def find_nat_gateways(client: ResourceClient, vpc_id: str) -> list[str]:
    """IDs of every NAT gateway in the VPC that is not yet deleted."""
    ec2 = client.client("ec2")
    with tolerate_not_found("list NAT gateways in VPC", vpc_id):
        resp = ec2.describe_nat_gateways(
            Filters=[{"Name": "vpc-id", "Values": [vpc_id]}],
        )
        return [
            gw["NatGatewayId"]
            for gw in resp.get("NatGateways", [])
            if gw.get("State") not in (DELETED, "deleting")
        ]
    return []


def delete_nat_gateways(
    client: ResourceClient,
    nat_gateway_ids: list[str],
    vpc_id: str = "",
) -> list[str]:
    """Delete the recorded NAT gateways plus any others found in the VPC.

    Gateways created before their ID reached the inventory are only found
    through the VPC lookup. Returns every ID a delete was issued for, so
    the caller can wait on them.
    """
    targets = [i for i in nat_gateway_ids if i]
    if vpc_id:
        for nat_id in find_nat_gateways(client, vpc_id):
            if nat_id not in targets:
                targets.append(nat_id)

    ec2 = client.client("ec2")
    for nat_id in targets:
        with tolerate_not_found("delete NAT gateway", nat_id):
            ec2.delete_nat_gateway(NatGatewayId=nat_id)
            logger.debug("Deleting NAT gateway %s", nat_id)
    return targets
