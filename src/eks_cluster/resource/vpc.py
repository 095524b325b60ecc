"""VPC adapter."""

from __future__ import annotations

import logging

from eks_cluster.resource.client import ResourceClient
from eks_cluster.resource.errors import ResourceError, tolerate_not_found, translate_errors
from eks_cluster.resource.tags import tag_specification

logger = logging.getLogger(__name__)


def create_vpc(
    client: ResourceClient,
    tags: list[dict[str, str]],
    cidr_block: str,
    cluster_name: str,
) -> str:
    """Create the cluster VPC and enable DNS hostnames and DNS support.

    Returns the VPC ID. If enabling an attribute fails, the raised error
    carries the VPC ID in ``partial``.
    """
    ec2 = client.client("ec2")

    with translate_errors("create VPC for cluster", cluster_name):
        resp = ec2.create_vpc(
            CidrBlock=cidr_block,
            TagSpecifications=tag_specification("vpc", tags),
        )
    vpc_id = resp["Vpc"]["VpcId"]
    logger.debug("Created VPC %s (%s)", vpc_id, cidr_block)

    try:
        with translate_errors("enable DNS hostnames for VPC", vpc_id):
            ec2.modify_vpc_attribute(VpcId=vpc_id, EnableDnsHostnames={"Value": True})
        with translate_errors("enable DNS support for VPC", vpc_id):
            ec2.modify_vpc_attribute(VpcId=vpc_id, EnableDnsSupport={"Value": True})
    except ResourceError as exc:
        exc.partial = vpc_id
        raise

    return vpc_id


def delete_vpc(client: ResourceClient, vpc_id: str) -> None:
    """Delete a VPC. An empty ID or a VPC that is already gone is a no-op."""
    if not vpc_id:
        return

    ec2 = client.client("ec2")
    with tolerate_not_found("delete VPC", vpc_id):
        ec2.delete_vpc(VpcId=vpc_id)
