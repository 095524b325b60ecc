"""Build the boto3 session every command runs with.

Credentials come from static keys, a named profile, or the default chain.
On top of that the session can be upgraded with an MFA session token and
then switched to an assumed role.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import boto3
import click
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

ROLE_SESSION_NAME = "eks-cluster"


class CredentialError(Exception):
    """Raised when AWS credentials cannot be loaded or exchanged."""


def _prompt_token_code(serial_number: str) -> str:
    return click.prompt(f"Enter MFA code for {serial_number}", type=str)


def _session_from(credentials: dict[str, Any], region: str | None) -> boto3.Session:
    kwargs: dict[str, Any] = {
        "aws_access_key_id": credentials["AccessKeyId"],
        "aws_secret_access_key": credentials["SecretAccessKey"],
        "aws_session_token": credentials["SessionToken"],
    }
    if region:
        kwargs["region_name"] = region
    return boto3.Session(**kwargs)


def load_session(
    profile: str | None = None,
    region: str | None = None,
    role_arn: str | None = None,
    external_id: str | None = None,
    serial_number: str | None = None,
    token_code_provider: Callable[[str], str] | None = None,
    access_key_id: str | None = None,
    secret_access_key: str | None = None,
    session_token: str | None = None,
) -> boto3.Session:
    """Build a boto3 session.

    Static keys win over *profile*; with neither, boto3's default chain is
    used. When *serial_number* is given an MFA session token is obtained
    (the code comes from *token_code_provider*, by default a prompt). When
    *role_arn* is given the resulting credentials assume that role.

    Raises:
        CredentialError: If any step of the credential exchange fails.
    """
    kwargs: dict[str, Any] = {}
    if region:
        kwargs["region_name"] = region

    if access_key_id:
        if not secret_access_key:
            raise CredentialError("a secret access key is required with an access key ID")
        kwargs["aws_access_key_id"] = access_key_id
        kwargs["aws_secret_access_key"] = secret_access_key
        if session_token:
            kwargs["aws_session_token"] = session_token
    elif profile:
        kwargs["profile_name"] = profile

    try:
        session = boto3.Session(**kwargs)
    except BotoCoreError as e:
        raise CredentialError(f"Failed to load AWS config: {e}") from e
    region = region or session.region_name

    if serial_number:
        code = (token_code_provider or _prompt_token_code)(serial_number)
        try:
            resp = session.client("sts").get_session_token(
                SerialNumber=serial_number, TokenCode=code,
            )
        except (BotoCoreError, ClientError) as e:
            raise CredentialError(f"Failed to get MFA session token: {e}") from e
        session = _session_from(resp["Credentials"], region)
        logger.debug("Using MFA session credentials for %s", serial_number)

    if role_arn:
        assume_kwargs: dict[str, Any] = {
            "RoleArn": role_arn,
            "RoleSessionName": ROLE_SESSION_NAME,
        }
        if external_id:
            assume_kwargs["ExternalId"] = external_id
        try:
            resp = session.client("sts").assume_role(**assume_kwargs)
        except (BotoCoreError, ClientError) as e:
            raise CredentialError(f"Failed to assume role {role_arn}: {e}") from e
        session = _session_from(resp["Credentials"], region)
        logger.debug("Assumed role %s", role_arn)

    return session
