"""IAM OIDC identity provider for the cluster's service account issuer.

IAM needs the SHA-1 thumbprint of the last certificate the issuer presents
(the top of its chain), so the chain is read from a live TLS handshake.
"""

from __future__ import annotations

import hashlib
import logging
import select
import socket
from collections.abc import Callable
from urllib.parse import urlparse

from cryptography.hazmat.primitives.serialization import Encoding
from OpenSSL import SSL

from eks_cluster.resource.client import ResourceClient
from eks_cluster.resource.errors import ResourceError, tolerate_not_found, translate_errors

logger = logging.getLogger(__name__)

OIDC_CLIENT_ID = "sts.amazonaws.com"
TLS_PORT = 443
CONNECT_TIMEOUT = 10.0


def fetch_certificate_chain(host: str, port: int = TLS_PORT) -> list[bytes]:
    """DER-encoded certificates presented by *host*, leaf first.

    The chain is read as presented, without verifying it.
    """
    context = SSL.Context(SSL.TLS_CLIENT_METHOD)
    try:
        with socket.create_connection((host, port), timeout=CONNECT_TIMEOUT) as sock:
            conn = SSL.Connection(context, sock)
            conn.set_tlsext_host_name(host.encode("idna"))
            conn.set_connect_state()
            _handshake(conn, sock)
            chain = conn.get_peer_cert_chain() or []
    except (OSError, SSL.Error) as e:
        raise ResourceError(
            f"failed to connect to OIDC provider {host}: {e}",
            "fetch certificate chain", host,
        ) from e
    return [cert.to_cryptography().public_bytes(Encoding.DER) for cert in chain]


def _handshake(conn: SSL.Connection, sock: socket.socket) -> None:
    # The socket has a timeout, so OpenSSL sees it as non-blocking.
    while True:
        try:
            conn.do_handshake()
            return
        except SSL.WantReadError:
            readable, _, _ = select.select([sock], [], [], CONNECT_TIMEOUT)
            if not readable:
                raise TimeoutError("TLS handshake timed out") from None


def compute_thumbprint(certificate_der: bytes) -> str:
    """Lower-case hex SHA-1 of a DER certificate."""
    return hashlib.sha1(certificate_der).hexdigest()


def create_oidc_provider(
    client: ResourceClient,
    tags: list[dict[str, str]],
    issuer_url: str,
    fetch_chain: Callable[[str], list[bytes]] | None = None,
) -> str:
    """Register the cluster's issuer as an IAM OIDC provider. Returns its ARN."""
    host = urlparse(issuer_url).hostname
    if not host:
        raise ResourceError(
            f"failed to parse OIDC issuer URL {issuer_url!r}",
            "create OIDC provider", issuer_url,
        )

    chain = (fetch_chain or fetch_certificate_chain)(host)
    if not chain:
        raise ResourceError(
            f"OIDC provider {host} presented no certificates",
            "create OIDC provider", issuer_url,
        )
    thumbprint = compute_thumbprint(chain[-1])
    logger.debug("OIDC provider %s thumbprint %s", host, thumbprint)

    iam = client.client("iam")
    with translate_errors("create OIDC provider", issuer_url):
        resp = iam.create_open_id_connect_provider(
            Url=issuer_url,
            ClientIDList=[OIDC_CLIENT_ID],
            ThumbprintList=[thumbprint],
            Tags=tags,
        )
    return resp["OpenIDConnectProviderArn"]


def delete_oidc_provider(client: ResourceClient, provider_arn: str) -> None:
    if not provider_arn:
        return
    iam = client.client("iam")
    with tolerate_not_found("delete OIDC provider", provider_arn):
        iam.delete_open_id_connect_provider(OpenIDConnectProviderArn=provider_arn)
