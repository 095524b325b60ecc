"""Elastic IP adapter. One address per NAT gateway."""

from __future__ import annotations

from eks_cluster.resource.client import ResourceClient
from eks_cluster.resource.errors import partial_result, tolerate_not_found, translate_errors
from eks_cluster.resource.tags import tag_specification


def create_elastic_ips(
    client: ResourceClient,
    tags: list[dict[str, str]],
    count: int,
) -> list[str]:
    """Allocate *count* VPC elastic IPs and return their allocation IDs."""
    ec2 = client.client("ec2")
    allocation_ids: list[str] = []

    with partial_result(allocation_ids):
        for i in range(count):
            with translate_errors("allocate elastic IP", str(i + 1)):
                resp = ec2.allocate_address(
                    Domain="vpc",
                    TagSpecifications=tag_specification("elastic-ip", tags),
                )
            allocation_ids.append(resp["AllocationId"])

    return allocation_ids


def delete_elastic_ips(client: ResourceClient, allocation_ids: list[str]) -> None:
    """Release elastic IPs. Addresses that are already released are skipped."""
    ec2 = client.client("ec2")
    for allocation_id in allocation_ids:
        if not allocation_id:
            continue
        with tolerate_not_found("release elastic IP", allocation_id):
            ec2.release_address(AllocationId=allocation_id)
