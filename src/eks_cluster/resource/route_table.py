"""Route table adapter.

One shared public route table sends 0.0.0.0/0 to the internet gateway and
is associated with every public subnet. Each zone gets its own private
route table sending 0.0.0.0/0 to that zone's NAT gateway.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from eks_cluster.models import AvailabilityZone
from eks_cluster.resource.client import ResourceClient
from eks_cluster.resource.errors import partial_result, tolerate_not_found, translate_errors
from eks_cluster.resource.tags import tag_specification

logger = logging.getLogger(__name__)

DEFAULT_ROUTE = "0.0.0.0/0"


@dataclass
class RouteTableIds:
    public_route_table_id: str = ""
    private_route_table_ids: list[str] = field(default_factory=list)


def _create_route_table(ec2, tags: list[dict[str, str]], vpc_id: str) -> str:
    with translate_errors("create route table in VPC", vpc_id):
        resp = ec2.create_route_table(
            VpcId=vpc_id,
            TagSpecifications=tag_specification("route-table", tags),
        )
    return resp["RouteTable"]["RouteTableId"]


def create_route_tables(
    client: ResourceClient,
    tags: list[dict[str, str]],
    vpc_id: str,
    internet_gateway_id: str,
    zones: list[AvailabilityZone],
) -> RouteTableIds:
    """Create the public route table and one private route table per zone."""
    ec2 = client.client("ec2")
    result = RouteTableIds()

    with partial_result(result):
        result.public_route_table_id = _create_route_table(ec2, tags, vpc_id)
        public_id = result.public_route_table_id
        with translate_errors("create internet route in route table", public_id):
            ec2.create_route(
                RouteTableId=public_id,
                DestinationCidrBlock=DEFAULT_ROUTE,
                GatewayId=internet_gateway_id,
            )
        for zone in zones:
            with translate_errors("associate public route table with subnet", zone.public_subnet_id):
                ec2.associate_route_table(RouteTableId=public_id, SubnetId=zone.public_subnet_id)

        for zone in zones:
            private_id = _create_route_table(ec2, tags, vpc_id)
            result.private_route_table_ids.append(private_id)
            with translate_errors("create NAT route in route table", private_id):
                ec2.create_route(
                    RouteTableId=private_id,
                    DestinationCidrBlock=DEFAULT_ROUTE,
                    NatGatewayId=zone.nat_gateway_id,
                )
            with translate_errors("associate private route table with subnet", zone.private_subnet_id):
                ec2.associate_route_table(RouteTableId=private_id, SubnetId=zone.private_subnet_id)
            logger.debug("Created private route table %s for %s", private_id, zone.zone)

    return result


def delete_route_tables(client: ResourceClient, route_table_ids: list[str]) -> None:
    """Disassociate and delete route tables.

    Subnet associations must be removed before a route table can be deleted;
    the VPC's main association is left alone.
    """
    ec2 = client.client("ec2")
    for route_table_id in route_table_ids:
        if not route_table_id:
            continue
        with tolerate_not_found("delete route table", route_table_id):
            resp = ec2.describe_route_tables(RouteTableIds=[route_table_id])
            for table in resp.get("RouteTables", []):
                for assoc in table.get("Associations", []):
                    if assoc.get("Main"):
                        continue
                    ec2.disassociate_route_table(
                        AssociationId=assoc["RouteTableAssociationId"],
                    )
            ec2.delete_route_table(RouteTableId=route_table_id)
