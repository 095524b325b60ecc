"""Connection details for a running cluster.

The bearer token is the one ``aws-iam-authenticator`` and ``aws eks
get-token`` produce: a presigned STS GetCallerIdentity URL, bound to the
cluster through the ``x-k8s-aws-id`` header, base64url-encoded.
"""

from __future__ import annotations

import base64
import binascii
from datetime import UTC, datetime, timedelta
from typing import Any

from botocore.signers import RequestSigner

from eks_cluster.models import ConnectionInfo
from eks_cluster.resource.errors import ResourceError, translate_errors

TOKEN_PREFIX = "k8s-aws-v1."
CLUSTER_ID_HEADER = "x-k8s-aws-id"
PRESIGNED_URL_EXPIRY = 60
# Tokens are accepted for 15 minutes; report a minute less.
TOKEN_LIFETIME = timedelta(minutes=14)


def generate_token(session: Any, cluster_name: str, region: str) -> str:
    """Build an EKS bearer token for *cluster_name* from the session's credentials."""
    sts = session.client("sts", region_name=region)
    signer = RequestSigner(
        sts.meta.service_model.service_id,
        region,
        "sts",
        "v4",
        session.get_credentials(),
        session.events,
    )
    request = {
        "method": "GET",
        "url": f"https://sts.{region}.amazonaws.com/?Action=GetCallerIdentity&Version=2011-06-15",
        "body": {},
        "headers": {CLUSTER_ID_HEADER: cluster_name},
        "context": {},
    }
    url = signer.generate_presigned_url(
        request,
        region_name=region,
        expires_in=PRESIGNED_URL_EXPIRY,
        operation_name="",
    )
    encoded = base64.urlsafe_b64encode(url.encode("utf-8")).decode("utf-8")
    return TOKEN_PREFIX + encoded.rstrip("=")


def get_connection_info(
    session: Any,
    cluster_name: str,
    region: str | None = None,
) -> ConnectionInfo:
    """Describe the cluster and mint a token for it."""
    region = region or session.region_name
    if not region:
        raise ResourceError("no region set for AWS session", "get connection info", cluster_name)

    eks = session.client("eks", region_name=region)
    with translate_errors("describe cluster", cluster_name):
        cluster = eks.describe_cluster(name=cluster_name)["cluster"]

    try:
        ca = base64.b64decode(cluster["certificateAuthority"]["data"]).decode("utf-8")
    except (KeyError, binascii.Error, UnicodeDecodeError) as e:
        raise ResourceError(
            f"failed to decode CA data for cluster {cluster_name}: {e}",
            "get connection info", cluster_name,
        ) from e

    issued = datetime.now(UTC)
    return ConnectionInfo(
        cluster_name=cluster_name,
        api_endpoint=cluster["endpoint"],
        ca_certificate=ca,
        token=generate_token(session, cluster_name, region),
        token_expiration=issued + TOKEN_LIFETIME,
    )
