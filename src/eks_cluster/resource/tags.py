"""Tag builders for the three tag shapes AWS services use.

EC2 and IAM take a list of ``{"Key": ..., "Value": ...}`` dicts; EKS takes
a plain ``{key: value}`` map. Every resource gets a ``Name`` tag, the
cluster ownership tag, and the user's tags.
"""

from __future__ import annotations

ELB_ROLE_TAG = "kubernetes.io/role/elb"
INTERNAL_ELB_ROLE_TAG = "kubernetes.io/role/internal-elb"


def cluster_ownership_tag(cluster_name: str) -> str:
    return f"kubernetes.io/cluster/{cluster_name}"


def map_tags(cluster_name: str, tags: dict[str, str] | None = None) -> dict[str, str]:
    """Build a tag map; user tags cannot override ``Name`` or ownership."""
    result = dict(tags or {})
    result["Name"] = cluster_name
    result[cluster_ownership_tag(cluster_name)] = "owned"
    return result


def ec2_tags(cluster_name: str, tags: dict[str, str] | None = None) -> list[dict[str, str]]:
    return to_tag_list(map_tags(cluster_name, tags))


def iam_tags(cluster_name: str, tags: dict[str, str] | None = None) -> list[dict[str, str]]:
    return to_tag_list(map_tags(cluster_name, tags))


def to_tag_list(tags: dict[str, str]) -> list[dict[str, str]]:
    return [{"Key": k, "Value": v} for k, v in tags.items()]


def tag_specification(resource_type: str, tags: list[dict[str, str]]) -> list[dict]:
    """Wrap EC2 tags for the ``TagSpecifications`` parameter."""
    return [{"ResourceType": resource_type, "Tags": list(tags)}]
