"""Core data models for eks-cluster.

Defines the schemas for:
- Cluster configuration (what the user wants)
- Availability zones (per-zone networking, filled in during creation)
- Resource inventory (what exists in the AWS account)
- Connection info (how to reach a running cluster)
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

DEFAULT_CLUSTER_NAME = "eks-cluster"
DEFAULT_KUBERNETES_VERSION = "1.30"
DEFAULT_CLUSTER_CIDR = "10.0.0.0/16"
DEFAULT_INSTANCE_TYPE = "t3.medium"
MAX_AZ_COUNT = 3


# --- Configuration Schema ---


class ServiceAccount(BaseModel):
    """A Kubernetes service account that is granted an IAM role via IRSA."""

    namespace: str
    name: str


class AvailabilityZone(BaseModel):
    """Networking for one availability zone.

    Starts as pure configuration (zone + CIDRs). The subnet and NAT gateway
    IDs are filled in place as the zone's resources are created.
    """

    zone: str
    private_subnet_cidr: str
    public_subnet_cidr: str
    private_subnet_id: str = ""
    public_subnet_id: str = ""
    nat_gateway_id: str = ""


class ClusterConfig(BaseModel):
    """User intent for an EKS cluster.

    Loaded from the cluster YAML file. Any field not present falls back to
    the defaults below.
    """

    name: str = Field(DEFAULT_CLUSTER_NAME, min_length=1)
    region: str = ""
    aws_account_id: str = ""
    kubernetes_version: str = DEFAULT_KUBERNETES_VERSION
    cluster_cidr: str = DEFAULT_CLUSTER_CIDR
    desired_az_count: int = Field(2, ge=1, le=MAX_AZ_COUNT)
    availability_zones: list[AvailabilityZone] = Field(default_factory=list)
    instance_types: list[str] = Field(default_factory=lambda: [DEFAULT_INSTANCE_TYPE])
    initial_nodes: int = Field(2, ge=0)
    min_nodes: int = Field(2, ge=0)
    max_nodes: int = Field(4, ge=1)
    key_pair: str = ""
    dns_management: bool = False
    dns01_challenge: bool = False
    cluster_autoscaling: bool = False
    storage_management: bool = True
    dns_management_service_account: ServiceAccount = Field(
        default_factory=lambda: ServiceAccount(namespace="external-dns", name="external-dns"),
    )
    dns01_challenge_service_account: ServiceAccount = Field(
        default_factory=lambda: ServiceAccount(namespace="cert-manager", name="cert-manager"),
    )
    cluster_autoscaling_service_account: ServiceAccount = Field(
        default_factory=lambda: ServiceAccount(namespace="kube-system", name="cluster-autoscaler"),
    )
    storage_management_service_account: ServiceAccount = Field(
        default_factory=lambda: ServiceAccount(
            namespace="kube-system", name="ebs-csi-controller-sa",
        ),
    )
    tags: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_node_bounds(self) -> ClusterConfig:
        if not self.min_nodes <= self.initial_nodes <= self.max_nodes:
            msg = (
                f"node counts must satisfy min_nodes <= initial_nodes <= max_nodes "
                f"(got {self.min_nodes}, {self.initial_nodes}, {self.max_nodes})"
            )
            raise ValueError(msg)
        return self


# --- Resource Inventory Schema ---


class RoleRecord(BaseModel):
    """An IAM role and every policy attached to it, in attach order.

    Deletion must detach each of ``policy_arns`` before the role itself
    can be deleted.
    """

    role_name: str = ""
    role_arn: str = ""
    policy_arns: list[str] = Field(default_factory=list)


class ClusterRecord(BaseModel):
    name: str = ""
    arn: str = ""
    oidc_issuer_url: str = ""


class ResourceInventory(BaseModel):
    """Record of every resource created for a cluster.

    Written to disk after every create/delete step so an interrupted run
    can be resumed or cleaned up. Unset fields serialize to empty values
    rather than being omitted; unknown keys are ignored on read.
    """

    model_config = ConfigDict(extra="ignore")

    region: str = ""
    vpc_id: str = ""
    subnet_ids: list[str] = Field(default_factory=list)
    internet_gateway_id: str = ""
    elastic_ip_ids: list[str] = Field(default_factory=list)
    nat_gateway_ids: list[str] = Field(default_factory=list)
    private_route_table_ids: list[str] = Field(default_factory=list)
    public_route_table_id: str = ""
    cluster_role: RoleRecord = Field(default_factory=RoleRecord)
    node_role: RoleRecord = Field(default_factory=RoleRecord)
    dns_management_role: RoleRecord = Field(default_factory=RoleRecord)
    dns01_challenge_role: RoleRecord = Field(default_factory=RoleRecord)
    cluster_autoscaling_role: RoleRecord = Field(default_factory=RoleRecord)
    storage_management_role: RoleRecord = Field(default_factory=RoleRecord)
    policy_arns: list[str] = Field(default_factory=list)
    cluster: ClusterRecord = Field(default_factory=ClusterRecord)
    node_group_names: list[str] = Field(default_factory=list)
    oidc_provider_arn: str = ""
    addon_names: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        """True when no cloud resource is recorded (region is not a resource)."""
        return self.model_copy(update={"region": ""}) == ResourceInventory()


# --- Connection Info ---


class ConnectionInfo(BaseModel):
    """What a Kubernetes client needs to talk to a running cluster."""

    cluster_name: str
    api_endpoint: str
    ca_certificate: str
    token: str
    token_expiration: datetime
