"""Customer-managed IAM policies for in-cluster services.

Policy names carry the cluster name so several clusters can share one
account without colliding.
"""

from __future__ import annotations

import json

from eks_cluster.resource.client import ResourceClient
from eks_cluster.resource.errors import tolerate_not_found, translate_errors

DNS_MANAGEMENT_POLICY_NAME = "DNSUpdates"
CLUSTER_AUTOSCALING_POLICY_NAME = "ClusterAutoscaling"

DNS_MANAGEMENT_POLICY = {
    "Version": "2012-10-17",
    "Statement": [
        {
            "Effect": "Allow",
            "Action": ["route53:ChangeResourceRecordSets"],
            "Resource": ["arn:aws:route53:::hostedzone/*"],
        },
        {
            "Effect": "Allow",
            "Action": [
                "route53:ListHostedZones",
                "route53:ListResourceRecordSets",
                "route53:GetChange",
            ],
            "Resource": ["*"],
        },
    ],
}

CLUSTER_AUTOSCALING_POLICY = {
    "Version": "2012-10-17",
    "Statement": [
        {
            "Effect": "Allow",
            "Action": [
                "autoscaling:DescribeAutoScalingGroups",
                "autoscaling:DescribeAutoScalingInstances",
                "autoscaling:DescribeLaunchConfigurations",
                "autoscaling:DescribeScalingActivities",
                "autoscaling:DescribeTags",
                "ec2:DescribeImages",
                "ec2:DescribeInstanceTypes",
                "ec2:DescribeLaunchTemplateVersions",
                "ec2:GetInstanceTypesFromInstanceRequirements",
                "eks:DescribeNodegroup",
            ],
            "Resource": ["*"],
        },
        {
            "Effect": "Allow",
            "Action": [
                "autoscaling:SetDesiredCapacity",
                "autoscaling:TerminateInstanceInAutoScalingGroup",
            ],
            "Resource": ["*"],
        },
    ],
}


def _create_policy(
    client: ResourceClient,
    name: str,
    description: str,
    document: dict,
    tags: list[dict[str, str]],
) -> str:
    iam = client.client("iam")
    with translate_errors("create IAM policy", name):
        resp = iam.create_policy(
            PolicyName=name,
            Description=description,
            PolicyDocument=json.dumps(document),
            Tags=tags,
        )
    return resp["Policy"]["Arn"]


def create_dns_management_policy(
    client: ResourceClient,
    tags: list[dict[str, str]],
    cluster_name: str,
) -> str:
    """Create the Route53 record management policy. Returns its ARN."""
    return _create_policy(
        client,
        f"{DNS_MANAGEMENT_POLICY_NAME}-{cluster_name}",
        "Allow cluster services to update Route53 records",
        DNS_MANAGEMENT_POLICY,
        tags,
    )


def create_cluster_autoscaling_policy(
    client: ResourceClient,
    tags: list[dict[str, str]],
    cluster_name: str,
) -> str:
    """Create the policy the cluster autoscaler needs. Returns its ARN."""
    return _create_policy(
        client,
        f"{CLUSTER_AUTOSCALING_POLICY_NAME}-{cluster_name}",
        "Allow cluster autoscaler to manage node group sizes",
        CLUSTER_AUTOSCALING_POLICY,
        tags,
    )


def delete_policies(client: ResourceClient, policy_arns: list[str]) -> None:
    iam = client.client("iam")
    for arn in policy_arns:
        if not arn:
            continue
        with tolerate_not_found("delete IAM policy", arn):
            iam.delete_policy(PolicyArn=arn)
