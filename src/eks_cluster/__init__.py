"""eks-cluster: resumable provisioning and teardown of AWS EKS clusters."""

__version__ = "0.4.0"

from eks_cluster.config import ConfigError, load_config
from eks_cluster.connection.info import get_connection_info
from eks_cluster.credentials.session import CredentialError, load_session
from eks_cluster.models import (
    AvailabilityZone,
    ClusterConfig,
    ClusterRecord,
    ConnectionInfo,
    ResourceInventory,
    RoleRecord,
    ServiceAccount,
)
from eks_cluster.progress.observer import LoggingObserver, ProgressObserver, QueueObserver
from eks_cluster.resource.client import ResourceClient
from eks_cluster.resource.errors import (
    NotFoundError,
    OperationCancelled,
    PreconditionError,
    ProviderAPIError,
    ResourceError,
    TerminalStateError,
    WaitTimeoutError,
)
from eks_cluster.resource.inventory import InventoryError, read_inventory, write_inventory
from eks_cluster.resource.orchestrator import ClusterOrchestrator

__all__ = [
    "AvailabilityZone",
    "ClusterConfig",
    "ClusterOrchestrator",
    "ClusterRecord",
    "ConfigError",
    "ConnectionInfo",
    "CredentialError",
    "get_connection_info",
    "InventoryError",
    "load_config",
    "load_session",
    "LoggingObserver",
    "NotFoundError",
    "OperationCancelled",
    "PreconditionError",
    "ProgressObserver",
    "ProviderAPIError",
    "QueueObserver",
    "read_inventory",
    "ResourceClient",
    "ResourceError",
    "ResourceInventory",
    "RoleRecord",
    "ServiceAccount",
    "TerminalStateError",
    "WaitTimeoutError",
    "write_inventory",
    "__version__",
]
