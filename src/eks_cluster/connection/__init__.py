"""Connection info for running clusters."""

from eks_cluster.connection.info import generate_token, get_connection_info

__all__ = [
    "generate_token",
    "get_connection_info",
]
