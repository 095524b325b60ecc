"""IAM role adapter.

Two service roles back the cluster itself (control plane and worker
nodes). The remaining roles are IRSA roles: they trust the cluster's OIDC
provider and are scoped to one Kubernetes service account each.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field

from eks_cluster.models import RoleRecord, ServiceAccount
from eks_cluster.resource.client import ResourceClient
from eks_cluster.resource.errors import (
    PreconditionError,
    partial_result,
    tolerate_not_found,
    translate_errors,
)

logger = logging.getLogger(__name__)

MAX_ROLE_NAME_LENGTH = 64

CLUSTER_ROLE_PREFIX = "cluster-role"
NODE_ROLE_PREFIX = "worker-role"
DNS_MANAGEMENT_ROLE_PREFIX = "dns-mgmt-role"
DNS01_CHALLENGE_ROLE_PREFIX = "dns-chlg-role"
CLUSTER_AUTOSCALING_ROLE_PREFIX = "ca-role"
STORAGE_MANAGEMENT_ROLE_PREFIX = "csi-role"

CLUSTER_POLICY_ARN = "arn:aws:iam::aws:policy/AmazonEKSClusterPolicy"
WORKER_NODE_POLICY_ARN = "arn:aws:iam::aws:policy/AmazonEKSWorkerNodePolicy"
CONTAINER_REGISTRY_POLICY_ARN = "arn:aws:iam::aws:policy/AmazonEC2ContainerRegistryReadOnly"
CNI_POLICY_ARN = "arn:aws:iam::aws:policy/AmazonEKS_CNI_Policy"
CSI_DRIVER_POLICY_ARN = "arn:aws:iam::aws:policy/service-role/AmazonEBSCSIDriverPolicy"

NODE_POLICY_ARNS = (WORKER_NODE_POLICY_ARN, CONTAINER_REGISTRY_POLICY_ARN, CNI_POLICY_ARN)

STS_AUDIENCE = "sts.amazonaws.com"


@dataclass
class ClusterRoles:
    cluster_role: RoleRecord = field(default_factory=RoleRecord)
    node_role: RoleRecord = field(default_factory=RoleRecord)


def role_name(prefix: str, cluster_name: str) -> str:
    return f"{prefix}-{cluster_name}"


def check_role_name(name: str) -> None:
    """Reject role names over the IAM length limit before calling AWS."""
    if len(name) > MAX_ROLE_NAME_LENGTH:
        raise PreconditionError(
            f"role name {name} too long, must be {MAX_ROLE_NAME_LENGTH} characters or less",
            operation="check role name",
            identifier=name,
        )


def issuer_host_path(issuer_url: str) -> str:
    """Strip the scheme from an OIDC issuer URL."""
    return issuer_url.removeprefix("https://").removeprefix("http://")


def service_trust_policy(service: str) -> str:
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Principal": {"Service": [service]},
                "Action": "sts:AssumeRole",
            },
        ],
    })


def build_trust_policy(
    account_id: str,
    issuer_url: str,
    namespace: str,
    service_account_name: str,
) -> str:
    """Trust document letting one service account assume a role via OIDC."""
    issuer = issuer_host_path(issuer_url)
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Principal": {
                    "Federated": f"arn:aws:iam::{account_id}:oidc-provider/{issuer}",
                },
                "Action": "sts:AssumeRoleWithWebIdentity",
                "Condition": {
                    "StringEquals": {
                        f"{issuer}:sub": (
                            f"system:serviceaccount:{namespace}:{service_account_name}"
                        ),
                        f"{issuer}:aud": STS_AUDIENCE,
                    },
                },
            },
        ],
    })


def _create_role(
    iam,
    record: RoleRecord,
    name: str,
    trust_policy: str,
    tags: list[dict[str, str]],
    policy_arns: tuple[str, ...] | list[str],
    boundary_arn: str = "",
) -> None:
    """Create a role and attach its policies, filling *record* as it goes."""
    kwargs = {
        "RoleName": name,
        "AssumeRolePolicyDocument": trust_policy,
        "Tags": tags,
    }
    if boundary_arn:
        kwargs["PermissionsBoundary"] = boundary_arn
    with translate_errors("create IAM role", name):
        resp = iam.create_role(**kwargs)
    record.role_name = resp["Role"]["RoleName"]
    record.role_arn = resp["Role"]["Arn"]

    for arn in policy_arns:
        with translate_errors(f"attach policy {arn} to IAM role", name):
            iam.attach_role_policy(RoleName=name, PolicyArn=arn)
        record.policy_arns.append(arn)
    logger.debug("Created IAM role %s with %d policies", name, len(record.policy_arns))


def create_cluster_roles(
    client: ResourceClient,
    tags: list[dict[str, str]],
    cluster_name: str,
) -> ClusterRoles:
    """Create the control plane role and the worker node role.

    Both names are validated before either role is created.
    """
    cluster_role_name = role_name(CLUSTER_ROLE_PREFIX, cluster_name)
    node_role_name = role_name(NODE_ROLE_PREFIX, cluster_name)
    check_role_name(cluster_role_name)
    check_role_name(node_role_name)

    iam = client.client("iam")
    roles = ClusterRoles()
    with partial_result(roles):
        _create_role(
            iam, roles.cluster_role, cluster_role_name,
            service_trust_policy("eks.amazonaws.com"), tags,
            [CLUSTER_POLICY_ARN], boundary_arn=CLUSTER_POLICY_ARN,
        )
        _create_role(
            iam, roles.node_role, node_role_name,
            service_trust_policy("ec2.amazonaws.com"), tags,
            NODE_POLICY_ARNS,
        )
    return roles


def create_service_account_role(
    client: ResourceClient,
    tags: list[dict[str, str]],
    prefix: str,
    cluster_name: str,
    account_id: str,
    issuer_url: str,
    service_account: ServiceAccount,
    policy_arn: str,
) -> RoleRecord:
    """Create an IRSA role bound to one service account.

    The role's permission boundary is *policy_arn*, and the same policy is
    attached, so the service account gets exactly that policy's rights.
    """
    name = role_name(prefix, cluster_name)
    check_role_name(name)
    if not policy_arn:
        raise PreconditionError(
            f"no policy ARN to attach to role {name}",
            operation="create IAM role",
            identifier=name,
        )

    iam = client.client("iam")
    record = RoleRecord()
    with partial_result(record):
        _create_role(
            iam, record, name,
            build_trust_policy(
                account_id, issuer_url, service_account.namespace, service_account.name,
            ),
            tags,
            [policy_arn],
            boundary_arn=policy_arn,
        )
    return record


def delete_roles(client: ResourceClient, roles: list[RoleRecord]) -> None:
    """Detach every recorded policy from each role, then delete the role.

    Roles without a name are skipped. Each role and policy is handled on
    its own, so a role that is already gone does not stop the others.
    """
    iam = client.client("iam")
    for role in roles:
        if not role.role_name:
            continue
        for arn in role.policy_arns:
            with tolerate_not_found(f"detach policy {arn} from IAM role", role.role_name):
                iam.detach_role_policy(RoleName=role.role_name, PolicyArn=arn)
        with tolerate_not_found("delete IAM role", role.role_name):
            iam.delete_role(RoleName=role.role_name)
