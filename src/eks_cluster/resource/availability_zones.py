"""Availability zone discovery and default subnet CIDRs."""

from __future__ import annotations

import ipaddress
import logging

from eks_cluster.models import MAX_AZ_COUNT, AvailabilityZone
from eks_cluster.resource.client import ResourceClient
from eks_cluster.resource.errors import PreconditionError, translate_errors

logger = logging.getLogger(__name__)

SUBNET_PREFIX_LENGTH = 22


def default_subnet_cidrs(cluster_cidr: str, count: int) -> list[str]:
    """Carve *count* consecutive /22 blocks out of the cluster CIDR.

    Zone ``i`` gets blocks ``2i`` (private) and ``2i + 1`` (public).
    """
    try:
        network = ipaddress.ip_network(cluster_cidr)
    except ValueError as e:
        raise PreconditionError(f"invalid cluster CIDR {cluster_cidr}: {e}") from e
    if network.prefixlen > SUBNET_PREFIX_LENGTH:
        raise PreconditionError(
            f"cluster CIDR {cluster_cidr} is too small for /{SUBNET_PREFIX_LENGTH} subnets"
        )

    cidrs: list[str] = []
    for subnet in network.subnets(new_prefix=SUBNET_PREFIX_LENGTH):
        if len(cidrs) == count:
            break
        cidrs.append(str(subnet))
    if len(cidrs) < count:
        raise PreconditionError(
            f"cluster CIDR {cluster_cidr} only fits {len(cidrs)} subnets, need {count}"
        )
    return cidrs


def get_availability_zones(
    client: ResourceClient,
    region: str,
    count: int,
    cluster_cidr: str,
) -> list[AvailabilityZone]:
    """Pick the first *count* available zones in *region* with default CIDRs."""
    if not region:
        raise PreconditionError("region is not set in cluster config or AWS session")
    if not 1 <= count <= MAX_AZ_COUNT:
        raise PreconditionError(
            f"desired availability zone count must be between 1 and {MAX_AZ_COUNT}, got {count}"
        )

    ec2 = client.client("ec2")
    with translate_errors("describe availability zones for region", region):
        resp = ec2.describe_availability_zones(
            Filters=[
                {"Name": "region-name", "Values": [region]},
                {"Name": "state", "Values": ["available"]},
                {"Name": "zone-type", "Values": ["availability-zone"]},
            ],
        )

    names = sorted(az["ZoneName"] for az in resp.get("AvailabilityZones", []))
    if not names:
        raise PreconditionError(f"no availability zones found for region {region}")
    names = names[:count]
    if len(names) < count:
        logger.warning(
            "Region %s has only %d availability zone(s), wanted %d",
            region, len(names), count,
        )

    cidrs = default_subnet_cidrs(cluster_cidr, 2 * len(names))
    return [
        AvailabilityZone(
            zone=name,
            private_subnet_cidr=cidrs[2 * i],
            public_subnet_cidr=cidrs[2 * i + 1],
        )
        for i, name in enumerate(names)
    ]
