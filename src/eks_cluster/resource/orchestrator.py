"""Cluster orchestrator: the create and delete sequences.

Drives the resource adapters in dependency order, threading each step's
identifiers into the next. After every step the result is folded into the
inventory, which is written to disk and then published to the observer.
A create step that fails midway still records whatever it produced
(``ResourceError.partial``) before the error propagates, so the inventory
on disk is always a safe superset of what exists.

No step is retried and nothing is rolled back here: the caller decides
whether to run :meth:`ClusterOrchestrator.delete` after a failed create.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

from eks_cluster.models import (
    ClusterConfig,
    ClusterRecord,
    ResourceInventory,
    RoleRecord,
)
from eks_cluster.resource import (
    addon,
    availability_zones,
    cluster,
    elastic_ip,
    internet_gateway,
    nat_gateway,
    node_group,
    oidc_provider,
    policy,
    role,
    route_table,
    subnet,
    vpc,
)
from eks_cluster.resource.client import ResourceClient
from eks_cluster.resource.errors import (
    OperationCancelled,
    PreconditionError,
    ResourceError,
    translate_errors,
)
from eks_cluster.resource.inventory import (
    DEFAULT_INVENTORY_FILE,
    clear_inventory,
    read_inventory,
    write_inventory,
)
from eks_cluster.resource.tags import ec2_tags, iam_tags, map_tags
from eks_cluster.resource.wait import Condition

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Service account roles, in creation order: (config flag, inventory field,
# role name prefix, config service account field).
SERVICE_ACCOUNT_ROLES = (
    ("dns_management", "dns_management_role",
     role.DNS_MANAGEMENT_ROLE_PREFIX, "dns_management_service_account"),
    ("dns01_challenge", "dns01_challenge_role",
     role.DNS01_CHALLENGE_ROLE_PREFIX, "dns01_challenge_service_account"),
    ("cluster_autoscaling", "cluster_autoscaling_role",
     role.CLUSTER_AUTOSCALING_ROLE_PREFIX, "cluster_autoscaling_service_account"),
    ("storage_management", "storage_management_role",
     role.STORAGE_MANAGEMENT_ROLE_PREFIX, "storage_management_service_account"),
)


def planned_role_names(config: ClusterConfig) -> list[str]:
    """Names of every IAM role a create with *config* will make."""
    prefixes = [role.CLUSTER_ROLE_PREFIX, role.NODE_ROLE_PREFIX]
    prefixes += [
        prefix for flag, _field, prefix, _sa in SERVICE_ACCOUNT_ROLES if getattr(config, flag)
    ]
    return [role.role_name(prefix, config.name) for prefix in prefixes]


class ClusterOrchestrator:
    """Creates and deletes every resource behind one EKS cluster.

    Args:
        client: Session context shared by all adapter calls.
        inventory_path: Where the inventory is checkpointed.
    """

    def __init__(
        self,
        client: ResourceClient,
        inventory_path: str | Path = DEFAULT_INVENTORY_FILE,
    ) -> None:
        self._client = client
        self._inventory_path = Path(inventory_path)
        self.inventory = ResourceInventory()

    @property
    def inventory_path(self) -> Path:
        return self._inventory_path

    # --- Shared plumbing ---

    def _checkpoint(self) -> None:
        write_inventory(self._inventory_path, self.inventory)
        self._client.publish_inventory(self.inventory)

    def _check_cancelled(self) -> None:
        if self._client.cancelled:
            raise OperationCancelled("operation cancelled", operation="create")

    def _step(self, action: Callable[[], T], fold: Callable[[Any], None]) -> T:
        """Run one create step and fold its result into the inventory.

        On failure, the partial result carried by the error is folded and
        checkpointed before the error is re-raised.
        """
        self._check_cancelled()
        try:
            result = action()
        except ResourceError as exc:
            if exc.partial is not None:
                fold(exc.partial)
                self._checkpoint()
            raise
        fold(result)
        self._checkpoint()
        return result

    def _report(self, text: str) -> None:
        logger.info(text)
        self._client.message(text)

    def _setter(self, field: str) -> Callable[[Any], None]:
        return lambda value: setattr(self.inventory, field, value)

    # --- Create ---

    def _resolve_account_id(self) -> str:
        sts = self._client.client("sts")
        with translate_errors("get caller identity"):
            return sts.get_caller_identity()["Account"]

    def create(self, config: ClusterConfig) -> ResourceInventory:
        """Create every resource for *config*, checkpointing as it goes.

        Returns the final inventory. Any error aborts at once; the inventory
        file then lists everything created so far.
        """
        config = config.model_copy(deep=True)
        self.inventory = inv = ResourceInventory()

        for planned in planned_role_names(config):
            role.check_role_name(planned)

        region = config.region or self._client.region
        if not region:
            raise PreconditionError("no region set in cluster config or AWS session")
        config.region = region
        self._client.region = region
        inv.region = region

        if not config.aws_account_id:
            config.aws_account_id = self._resolve_account_id()
        if not config.availability_zones:
            config.availability_zones = availability_zones.get_availability_zones(
                self._client, region, config.desired_az_count, config.cluster_cidr,
            )
        zones = config.availability_zones
        self._checkpoint()

        name = config.name
        ec2 = ec2_tags(name, config.tags)
        iam = iam_tags(name, config.tags)
        eks = map_tags(name, config.tags)

        # Networking
        vpc_id = self._step(
            lambda: vpc.create_vpc(self._client, ec2, config.cluster_cidr, name),
            self._setter("vpc_id"),
        )
        self._report(f"VPC created: {vpc_id}")

        igw_id = self._step(
            lambda: internet_gateway.create_internet_gateway(self._client, ec2, vpc_id),
            self._setter("internet_gateway_id"),
        )
        self._report(f"Internet gateway created: {igw_id}")

        subnet_ids = self._step(
            lambda: subnet.create_subnets(self._client, ec2, vpc_id, zones),
            lambda ids: setattr(inv, "subnet_ids", list(ids)),
        )
        self._report(f"Subnets created: {', '.join(subnet_ids)}")

        eip_ids = self._step(
            lambda: elastic_ip.create_elastic_ips(self._client, ec2, len(zones)),
            lambda ids: setattr(inv, "elastic_ip_ids", list(ids)),
        )
        self._report(f"Elastic IPs created: {', '.join(eip_ids)}")

        nat_ids = self._step(
            lambda: nat_gateway.create_nat_gateways(self._client, ec2, zones, eip_ids),
            lambda ids: setattr(inv, "nat_gateway_ids", list(ids)),
        )
        self._report(f"NAT gateways creation initiated: {', '.join(nat_ids)}")
        self._check_cancelled()
        nat_gateway.wait_for_nat_gateways(self._client, nat_ids, Condition.CREATED)
        self._report(f"NAT gateways available: {', '.join(nat_ids)}")

        def fold_route_tables(tables: route_table.RouteTableIds) -> None:
            inv.public_route_table_id = tables.public_route_table_id
            inv.private_route_table_ids = list(tables.private_route_table_ids)

        tables = self._step(
            lambda: route_table.create_route_tables(self._client, ec2, vpc_id, igw_id, zones),
            fold_route_tables,
        )
        self._report(
            f"Route tables created: {tables.public_route_table_id}, "
            f"{', '.join(tables.private_route_table_ids)}"
        )

        # IAM policies
        def fold_policy(arn: str) -> None:
            inv.policy_arns.append(arn)

        dns_policy_arn = ""
        if config.dns_management or config.dns01_challenge:
            dns_policy_arn = self._step(
                lambda: policy.create_dns_management_policy(self._client, iam, name),
                fold_policy,
            )
            self._report(f"IAM policy created: {dns_policy_arn}")

        autoscaling_policy_arn = ""
        if config.cluster_autoscaling:
            autoscaling_policy_arn = self._step(
                lambda: policy.create_cluster_autoscaling_policy(self._client, iam, name),
                fold_policy,
            )
            self._report(f"IAM policy created: {autoscaling_policy_arn}")

        # Cluster and node roles
        def fold_cluster_roles(roles: role.ClusterRoles) -> None:
            inv.cluster_role = roles.cluster_role
            inv.node_role = roles.node_role

        roles = self._step(
            lambda: role.create_cluster_roles(self._client, iam, name),
            fold_cluster_roles,
        )
        self._report(
            f"IAM roles created: {roles.cluster_role.role_name}, {roles.node_role.role_name}"
        )

        # Control plane
        record = self._step(
            lambda: cluster.create_cluster(
                self._client, eks, name, config.kubernetes_version,
                roles.cluster_role.role_arn, subnet_ids,
            ),
            self._setter("cluster"),
        )
        self._report(f"EKS cluster creation initiated: {record.name}")
        self._check_cancelled()
        cluster.wait_for_cluster(self._client, record.name, Condition.CREATED)
        record = self._step(
            lambda: cluster.describe_cluster(self._client, record.name),
            self._setter("cluster"),
        )
        self._report(f"EKS cluster available: {record.name}")

        # Node group
        private_subnet_ids = [z.private_subnet_id for z in zones]
        node_group_names = self._step(
            lambda: node_group.create_node_groups(
                self._client, eks, name, config.kubernetes_version,
                roles.node_role.role_arn, private_subnet_ids, config.instance_types,
                config.initial_nodes, config.min_nodes, config.max_nodes, config.key_pair,
            ),
            lambda names: setattr(inv, "node_group_names", list(names)),
        )
        self._report(f"Node group creation initiated: {', '.join(node_group_names)}")
        self._check_cancelled()
        node_group.wait_for_node_groups(
            self._client, name, node_group_names, Condition.CREATED,
        )
        self._report(f"Node groups available: {', '.join(node_group_names)}")

        # Identity provider for service account roles
        provider_arn = self._step(
            lambda: oidc_provider.create_oidc_provider(
                self._client, iam, record.oidc_issuer_url,
            ),
            self._setter("oidc_provider_arn"),
        )
        self._report(f"OIDC provider created: {provider_arn}")

        policy_for = {
            "dns_management": dns_policy_arn,
            "dns01_challenge": dns_policy_arn,
            "cluster_autoscaling": autoscaling_policy_arn,
            "storage_management": role.CSI_DRIVER_POLICY_ARN,
        }
        for flag, field, prefix, sa_field in SERVICE_ACCOUNT_ROLES:
            if not getattr(config, flag):
                continue
            sa_role = self._step(
                lambda: role.create_service_account_role(
                    self._client, iam, prefix, name, config.aws_account_id,
                    record.oidc_issuer_url, getattr(config, sa_field), policy_for[flag],
                ),
                self._setter(field),
            )
            self._report(f"IAM role created: {sa_role.role_name}")

        # Add-ons
        if config.storage_management:
            addon_names = self._step(
                lambda: addon.create_storage_addon(
                    self._client, eks, name, inv.storage_management_role.role_arn,
                ),
                lambda names: setattr(inv, "addon_names", list(names)),
            )
            self._report(f"EKS add-on created: {', '.join(addon_names)}")

        self._report(f"Cluster {name} created")
        return inv.model_copy(deep=True)

    # --- Delete ---

    def _teardown(
        self,
        label: str,
        recorded: Any,
        action: Callable[[], object],
        **cleared: Any,
    ) -> None:
        """Run one delete step if anything is recorded for it.

        The fields in *cleared* are reset on the inventory and checkpointed
        only once the step succeeded.
        """
        if not recorded:
            return
        action()
        for field, value in cleared.items():
            setattr(self.inventory, field, value)
        self._checkpoint()
        self._report(f"{label}: {recorded}")

    def delete(self, inventory: ResourceInventory | None = None) -> ResourceInventory:
        """Delete everything in *inventory* (default: the inventory file).

        Runs the exact reverse of :meth:`create`. Resources that are
        already gone are skipped, so the delete can be re-run after any
        failure. Once everything is gone the inventory file is cleared.
        """
        if inventory is None:
            inventory = read_inventory(self._inventory_path)
        self.inventory = inv = inventory.model_copy(deep=True)
        if inv.region:
            self._client.region = inv.region
        client = self._client
        cluster_name = inv.cluster.name

        def delete_addons() -> None:
            addon.delete_addons(client, cluster_name, inv.addon_names)
            addon.wait_for_addons(client, cluster_name, inv.addon_names, Condition.DELETED)

        self._teardown("EKS add-ons deleted", ", ".join(inv.addon_names),
                       delete_addons, addon_names=[])

        for _flag, field, _prefix, _sa in reversed(SERVICE_ACCOUNT_ROLES):
            record: RoleRecord = getattr(inv, field)
            self._teardown(
                "IAM role deleted", record.role_name,
                lambda record=record: role.delete_roles(client, [record]),
                **{field: RoleRecord()},
            )

        self._teardown(
            "OIDC provider deleted", inv.oidc_provider_arn,
            lambda: oidc_provider.delete_oidc_provider(client, inv.oidc_provider_arn),
            oidc_provider_arn="",
        )

        def delete_node_groups() -> None:
            node_group.delete_node_groups(client, cluster_name, inv.node_group_names)
            node_group.wait_for_node_groups(
                client, cluster_name, inv.node_group_names, Condition.DELETED,
            )

        self._teardown("Node groups deleted", ", ".join(inv.node_group_names),
                       delete_node_groups, node_group_names=[])

        def delete_cluster() -> None:
            cluster.delete_cluster(client, cluster_name)
            cluster.wait_for_cluster(client, cluster_name, Condition.DELETED)

        self._teardown("EKS cluster deleted", cluster_name,
                       delete_cluster, cluster=ClusterRecord())

        for field in ("node_role", "cluster_role"):
            record = getattr(inv, field)
            self._teardown(
                "IAM role deleted", record.role_name,
                lambda record=record: role.delete_roles(client, [record]),
                **{field: RoleRecord()},
            )

        self._teardown(
            "IAM policies deleted", ", ".join(inv.policy_arns),
            lambda: policy.delete_policies(client, list(reversed(inv.policy_arns))),
            policy_arns=[],
        )

        route_table_ids = [*inv.private_route_table_ids, inv.public_route_table_id]
        self._teardown(
            "Route tables deleted", ", ".join(i for i in route_table_ids if i),
            lambda: route_table.delete_route_tables(client, route_table_ids),
            private_route_table_ids=[], public_route_table_id="",
        )

        def delete_nat_gateways() -> None:
            targets = nat_gateway.delete_nat_gateways(client, inv.nat_gateway_ids, inv.vpc_id)
            nat_gateway.wait_for_nat_gateways(client, targets, Condition.DELETED)

        self._teardown(
            "NAT gateways deleted", ", ".join(inv.nat_gateway_ids) or inv.vpc_id,
            delete_nat_gateways, nat_gateway_ids=[],
        )

        self._teardown(
            "Elastic IPs released", ", ".join(inv.elastic_ip_ids),
            lambda: elastic_ip.delete_elastic_ips(client, inv.elastic_ip_ids),
            elastic_ip_ids=[],
        )
        self._teardown(
            "Subnets deleted", ", ".join(inv.subnet_ids),
            lambda: subnet.delete_subnets(client, inv.subnet_ids),
            subnet_ids=[],
        )
        self._teardown(
            "Internet gateway deleted", inv.internet_gateway_id,
            lambda: internet_gateway.delete_internet_gateway(
                client, inv.internet_gateway_id, inv.vpc_id,
            ),
            internet_gateway_id="",
        )
        self._teardown(
            "VPC deleted", inv.vpc_id,
            lambda: vpc.delete_vpc(client, inv.vpc_id),
            vpc_id="",
        )

        clear_inventory(self._inventory_path)
        self.inventory = ResourceInventory()
        self._client.publish_inventory(self.inventory)
        self._report("All cluster resources deleted")
        return self.inventory
