"""Subnet adapter: one private and one public subnet per availability zone."""

from __future__ import annotations

import logging

from eks_cluster.models import AvailabilityZone
from eks_cluster.resource.client import ResourceClient
from eks_cluster.resource.errors import partial_result, tolerate_not_found, translate_errors
from eks_cluster.resource.tags import ELB_ROLE_TAG, INTERNAL_ELB_ROLE_TAG, tag_specification

logger = logging.getLogger(__name__)


def create_subnets(
    client: ResourceClient,
    tags: list[dict[str, str]],
    vpc_id: str,
    zones: list[AvailabilityZone],
) -> list[str]:
    """Create the private and public subnet for every zone.

    The subnet IDs are written back onto each zone. Public subnets map a
    public IP on launch. Returns every subnet ID created, private first
    within each zone.
    """
    ec2 = client.client("ec2")
    subnet_ids: list[str] = []

    with partial_result(subnet_ids):
        for zone in zones:
            private_tags = tags + [{"Key": INTERNAL_ELB_ROLE_TAG, "Value": "1"}]
            with translate_errors("create private subnet in zone", zone.zone):
                resp = ec2.create_subnet(
                    VpcId=vpc_id,
                    AvailabilityZone=zone.zone,
                    CidrBlock=zone.private_subnet_cidr,
                    TagSpecifications=tag_specification("subnet", private_tags),
                )
            zone.private_subnet_id = resp["Subnet"]["SubnetId"]
            subnet_ids.append(zone.private_subnet_id)

            public_tags = tags + [{"Key": ELB_ROLE_TAG, "Value": "1"}]
            with translate_errors("create public subnet in zone", zone.zone):
                resp = ec2.create_subnet(
                    VpcId=vpc_id,
                    AvailabilityZone=zone.zone,
                    CidrBlock=zone.public_subnet_cidr,
                    TagSpecifications=tag_specification("subnet", public_tags),
                )
            zone.public_subnet_id = resp["Subnet"]["SubnetId"]
            subnet_ids.append(zone.public_subnet_id)

            with translate_errors("enable public IP mapping for subnet", zone.public_subnet_id):
                ec2.modify_subnet_attribute(
                    SubnetId=zone.public_subnet_id,
                    MapPublicIpOnLaunch={"Value": True},
                )
            logger.debug(
                "Created subnets %s (private) and %s (public) in %s",
                zone.private_subnet_id, zone.public_subnet_id, zone.zone,
            )

    return subnet_ids


def delete_subnets(client: ResourceClient, subnet_ids: list[str]) -> None:
    ec2 = client.client("ec2")
    for subnet_id in subnet_ids:
        if not subnet_id:
            continue
        with tolerate_not_found("delete subnet", subnet_id):
            ec2.delete_subnet(SubnetId=subnet_id)
