"""AWS credential and session loading."""

from eks_cluster.credentials.session import CredentialError, load_session

__all__ = [
    "CredentialError",
    "load_session",
]
