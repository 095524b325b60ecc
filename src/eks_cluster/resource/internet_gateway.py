"""Internet gateway adapter."""

from __future__ import annotations

from eks_cluster.resource.client import ResourceClient
from eks_cluster.resource.errors import (
    ProviderAPIError,
    ResourceError,
    tolerate_not_found,
    translate_errors,
)
from eks_cluster.resource.tags import tag_specification


def create_internet_gateway(
    client: ResourceClient,
    tags: list[dict[str, str]],
    vpc_id: str,
) -> str:
    """Create an internet gateway and attach it to the VPC.

    Returns the gateway ID; if the attach fails the raised error carries
    the ID in ``partial``.
    """
    ec2 = client.client("ec2")
    with translate_errors("create internet gateway for VPC", vpc_id):
        resp = ec2.create_internet_gateway(
            TagSpecifications=tag_specification("internet-gateway", tags),
        )
    igw_id = resp["InternetGateway"]["InternetGatewayId"]

    try:
        with translate_errors("attach internet gateway to VPC", f"{igw_id} -> {vpc_id}"):
            ec2.attach_internet_gateway(InternetGatewayId=igw_id, VpcId=vpc_id)
    except ResourceError as exc:
        exc.partial = igw_id
        raise

    return igw_id


def delete_internet_gateway(client: ResourceClient, igw_id: str, vpc_id: str) -> None:
    """Detach and delete an internet gateway.

    An empty ID, a gateway that is already gone, or one that is no longer
    attached are all tolerated.
    """
    if not igw_id:
        return

    ec2 = client.client("ec2")
    if vpc_id:
        try:
            with tolerate_not_found("detach internet gateway", igw_id):
                ec2.detach_internet_gateway(InternetGatewayId=igw_id, VpcId=vpc_id)
        except ProviderAPIError as exc:
            if exc.code != "Gateway.NotAttached":
                raise
    with tolerate_not_found("delete internet gateway", igw_id):
        ec2.delete_internet_gateway(InternetGatewayId=igw_id)
