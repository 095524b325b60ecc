"""EKS control plane adapter."""

from __future__ import annotations

import logging

from eks_cluster.models import ClusterRecord
from eks_cluster.resource.client import ResourceClient
from eks_cluster.resource.errors import tolerate_not_found, translate_errors
from eks_cluster.resource.wait import Condition, Status, WaitPolicy, wait_for

logger = logging.getLogger(__name__)

# 60 checks at 15s: 15 minutes.
CLUSTER_WAIT = WaitPolicy(max_attempts=60)

ACTIVE = "ACTIVE"
FAILED = "FAILED"


def create_cluster(
    client: ResourceClient,
    tags: dict[str, str],
    cluster_name: str,
    kubernetes_version: str,
    role_arn: str,
    subnet_ids: list[str],
) -> ClusterRecord:
    """Start creating the control plane with public and private endpoints.

    Returns as soon as AWS accepts the request; use :func:`wait_for_cluster`
    before depending on the cluster.
    """
    eks = client.client("eks")
    with translate_errors("create cluster", cluster_name):
        resp = eks.create_cluster(
            name=cluster_name,
            version=kubernetes_version,
            roleArn=role_arn,
            resourcesVpcConfig={
                "subnetIds": list(subnet_ids),
                "endpointPublicAccess": True,
                "endpointPrivateAccess": True,
            },
            tags=tags,
        )
    cluster = resp["cluster"]
    return ClusterRecord(name=cluster["name"], arn=cluster.get("arn", ""))


def describe_cluster(client: ResourceClient, cluster_name: str) -> ClusterRecord:
    """Current name, ARN and OIDC issuer URL of a cluster."""
    eks = client.client("eks")
    with translate_errors("describe cluster", cluster_name):
        cluster = eks.describe_cluster(name=cluster_name)["cluster"]
    return ClusterRecord(
        name=cluster["name"],
        arn=cluster.get("arn", ""),
        oidc_issuer_url=cluster.get("identity", {}).get("oidc", {}).get("issuer", ""),
    )


def get_cluster_status(client: ResourceClient, cluster_name: str) -> Status:
    eks = client.client("eks")
    with translate_errors("describe cluster", cluster_name):
        cluster = eks.describe_cluster(name=cluster_name)["cluster"]
    issues = cluster.get("health", {}).get("issues", [])
    detail = "; ".join(
        f"{issue.get('code', '')}: {issue.get('message', '')}" for issue in issues
    )
    return Status(state=cluster.get("status", ""), detail=detail)


def _is_active(status: Status) -> bool:
    return status.state == ACTIVE


def _is_failed(status: Status) -> bool:
    return status.state == FAILED


def _never(status: Status) -> bool:
    return False


def wait_for_cluster(
    client: ResourceClient,
    cluster_name: str,
    condition: Condition,
    policy: WaitPolicy = CLUSTER_WAIT,
) -> None:
    """Block until the cluster is ACTIVE or gone. An empty name returns at once."""
    if not cluster_name:
        return
    created = condition is Condition.CREATED
    wait_for(
        cluster_name,
        lambda name: get_cluster_status(client, name),
        condition,
        done=_is_active if created else _never,
        failed=_is_failed if created else _never,
        policy=policy,
        kind="cluster",
    )


def delete_cluster(client: ResourceClient, cluster_name: str) -> None:
    if not cluster_name:
        return
    eks = client.client("eks")
    with tolerate_not_found("delete cluster", cluster_name):
        eks.delete_cluster(name=cluster_name)
