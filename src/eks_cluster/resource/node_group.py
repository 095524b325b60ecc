"""EKS managed node group adapter.

A single node group runs in the private subnets. Node groups take far
longer than the control plane to settle, hence the larger wait ceiling.
"""

from __future__ import annotations

import logging

from eks_cluster.resource.client import ResourceClient
from eks_cluster.resource.errors import partial_result, tolerate_not_found, translate_errors
from eks_cluster.resource.wait import Condition, Status, WaitPolicy, wait_for_all

logger = logging.getLogger(__name__)

# 240 checks at 15s: 60 minutes.
NODE_GROUP_WAIT = WaitPolicy(max_attempts=240)

ACTIVE = "ACTIVE"
CREATE_FAILED = "CREATE_FAILED"
DELETE_FAILED = "DELETE_FAILED"


def node_group_name(cluster_name: str) -> str:
    return f"{cluster_name}-private-node-group"


def create_node_groups(
    client: ResourceClient,
    tags: dict[str, str],
    cluster_name: str,
    kubernetes_version: str,
    node_role_arn: str,
    private_subnet_ids: list[str],
    instance_types: list[str],
    initial_nodes: int,
    min_nodes: int,
    max_nodes: int,
    key_pair: str = "",
) -> list[str]:
    """Create the private node group. Returns the node group names."""
    eks = client.client("eks")
    name = node_group_name(cluster_name)
    names: list[str] = []

    kwargs = {
        "clusterName": cluster_name,
        "nodegroupName": name,
        "nodeRole": node_role_arn,
        "subnets": list(private_subnet_ids),
        "instanceTypes": list(instance_types),
        "version": kubernetes_version,
        "scalingConfig": {
            "desiredSize": initial_nodes,
            "minSize": min_nodes,
            "maxSize": max_nodes,
        },
        "tags": tags,
    }
    if key_pair:
        kwargs["remoteAccess"] = {"ec2SshKey": key_pair}

    with partial_result(names):
        with translate_errors("create node group", name):
            resp = eks.create_nodegroup(**kwargs)
        names.append(resp["nodegroup"]["nodegroupName"])
    return names


def get_node_group_status(
    client: ResourceClient,
    cluster_name: str,
    name: str,
) -> Status:
    eks = client.client("eks")
    with translate_errors("describe node group", name):
        nodegroup = eks.describe_nodegroup(clusterName=cluster_name, nodegroupName=name)["nodegroup"]
    issues = nodegroup.get("health", {}).get("issues", [])
    detail = "; ".join(
        f"{issue.get('code', '')}: {issue.get('message', '')}" for issue in issues
    )
    return Status(state=nodegroup.get("status", ""), detail=detail)


def _is_active(status: Status) -> bool:
    return status.state == ACTIVE


def _create_failed(status: Status) -> bool:
    return status.state == CREATE_FAILED


def _delete_failed(status: Status) -> bool:
    return status.state == DELETE_FAILED


def _never(status: Status) -> bool:
    return False


def wait_for_node_groups(
    client: ResourceClient,
    cluster_name: str,
    names: list[str],
    condition: Condition,
    policy: WaitPolicy = NODE_GROUP_WAIT,
) -> None:
    if not cluster_name:
        return
    if condition is Condition.CREATED:
        done, failed = _is_active, _create_failed
    else:
        done, failed = _never, _delete_failed
    wait_for_all(
        [n for n in names if n],
        lambda name: get_node_group_status(client, cluster_name, name),
        condition,
        done=done,
        failed=failed,
        policy=policy,
        kind="node group",
    )


def delete_node_groups(client: ResourceClient, cluster_name: str, names: list[str]) -> None:
    """Start deleting each node group. Each name is handled independently."""
    if not cluster_name:
        return
    eks = client.client("eks")
    for name in names:
        if not name:
            continue
        with tolerate_not_found("delete node group", name):
            eks.delete_nodegroup(clusterName=cluster_name, nodegroupName=name)
