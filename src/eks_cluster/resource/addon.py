"""EKS add-on adapter."""

from __future__ import annotations

from eks_cluster.resource.client import ResourceClient
from eks_cluster.resource.errors import partial_result, tolerate_not_found, translate_errors
from eks_cluster.resource.wait import Condition, Status, WaitPolicy, wait_for_all

EBS_STORAGE_ADDON_NAME = "aws-ebs-csi-driver"

ADDON_WAIT = WaitPolicy(max_attempts=20)

ACTIVE = "ACTIVE"
CREATE_FAILED = "CREATE_FAILED"
DELETE_FAILED = "DELETE_FAILED"


def create_storage_addon(
    client: ResourceClient,
    tags: dict[str, str],
    cluster_name: str,
    storage_role_arn: str,
) -> list[str]:
    """Install the EBS CSI driver add-on using the storage role."""
    eks = client.client("eks")
    names: list[str] = []
    with partial_result(names):
        with translate_errors("create add-on", EBS_STORAGE_ADDON_NAME):
            resp = eks.create_addon(
                clusterName=cluster_name,
                addonName=EBS_STORAGE_ADDON_NAME,
                serviceAccountRoleArn=storage_role_arn,
                tags=tags,
            )
        names.append(resp["addon"]["addonName"])
    return names


def get_addon_status(client: ResourceClient, cluster_name: str, name: str) -> Status:
    eks = client.client("eks")
    with translate_errors("describe add-on", name):
        addon = eks.describe_addon(clusterName=cluster_name, addonName=name)["addon"]
    issues = addon.get("health", {}).get("issues", [])
    detail = "; ".join(
        f"{issue.get('code', '')}: {issue.get('message', '')}" for issue in issues
    )
    return Status(state=addon.get("status", ""), detail=detail)


def wait_for_addons(
    client: ResourceClient,
    cluster_name: str,
    names: list[str],
    condition: Condition,
    policy: WaitPolicy = ADDON_WAIT,
) -> None:
    if not cluster_name:
        return
    if condition is Condition.CREATED:
        def done(s: Status) -> bool:
            return s.state == ACTIVE

        def failed(s: Status) -> bool:
            return s.state == CREATE_FAILED
    else:
        def done(s: Status) -> bool:
            return False

        def failed(s: Status) -> bool:
            return s.state == DELETE_FAILED

    wait_for_all(
        [n for n in names if n],
        lambda name: get_addon_status(client, cluster_name, name),
        condition,
        done=done,
        failed=failed,
        policy=policy,
        kind="add-on",
    )


def delete_addons(client: ResourceClient, cluster_name: str, names: list[str]) -> None:
    if not cluster_name:
        return
    eks = client.client("eks")
    for name in names:
        if not name:
            continue
        with tolerate_not_found("delete add-on", name):
            eks.delete_addon(clusterName=cluster_name, addonName=name)
