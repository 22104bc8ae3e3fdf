"""Identity provider adapter.

Thin wrapper over the IAM and STS operations the rotation needs. Every call
is a single provider round-trip; transport problems surface as
``ProviderUnavailable`` so they are never confused with logical refusals such
as "two keys already exist".
"""

import logging
from typing import Optional

import boto3
from botocore.exceptions import (BotoCoreError, ClientError,
                                 EndpointConnectionError, NoCredentialsError)

from ..exceptions import CreationFailed, DeletionFailed, ProviderUnavailable
from .models import Credential, CredentialStatus

logger = logging.getLogger(__name__)

# Error codes that mean "try again later" rather than "you may not do this"
TRANSIENT_ERROR_CODES = {
    "Throttling",
    "ThrottlingException",
    "RequestLimitExceeded",
    "ServiceFailure",
    "ServiceUnavailable",
    "InternalFailure",
    "RequestTimeout",
}


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


def _is_transient(error: Exception) -> bool:
    if isinstance(error, (EndpointConnectionError, NoCredentialsError)):
        return True
    if isinstance(error, ClientError):
        return _error_code(error) in TRANSIENT_ERROR_CODES
    return isinstance(error, BotoCoreError)


class CredentialDirectoryClient:
    """Lists, creates and deletes access keys for the caller's IAM user.

    A client is bound to one boto3 session, i.e. to one credential. Use
    ``for_credential`` to get a client that authenticates with a specific key
    pair that has not been persisted yet.
    """

    def __init__(self, session: boto3.Session, user_name: Optional[str] = None):
        """Initialize client.

        Args:
            session: boto3 session carrying the credential to authenticate with
            user_name: IAM user whose keys are managed (defaults to the caller)
        """
        self.session = session
        self.user_name = user_name
        self._iam = session.client("iam")
        self._sts = session.client("sts")

    @classmethod
    def from_credential(cls, credential: Credential, region: Optional[str] = None,
                        user_name: Optional[str] = None) -> "CredentialDirectoryClient":
        # Explicit keys bypass the shared credentials file and the environment
        session = boto3.Session(
            aws_access_key_id=credential.key_id,
            aws_secret_access_key=credential.secret,
            region_name=region,
        )
        return cls(session, user_name=user_name)

    def for_credential(self, credential: Credential) -> "CredentialDirectoryClient":
        """Return a client authenticating with ``credential`` only."""
        return CredentialDirectoryClient.from_credential(
            credential, region=self.session.region_name, user_name=self.user_name
        )

    def _user_kwargs(self, identity: Optional[str] = None) -> dict:
        name = identity or self.user_name
        return {"UserName": name} if name else {}

    def list_credentials(self, identity: Optional[str] = None) -> list[Credential]:
        """List access key metadata for an IAM user.

        Args:
            identity: IAM user name (defaults to the client's user, then the caller)

        Returns:
            Credentials without secrets, in provider order

        Raises:
            ProviderUnavailable: If the listing fails
        """
        credentials = []
        try:
            paginator = self._iam.get_paginator("list_access_keys")
            for page in paginator.paginate(**self._user_kwargs(identity)):
                for meta in page.get("AccessKeyMetadata", []):
                    credentials.append(
                        Credential(
                            key_id=meta["AccessKeyId"],
                            created_at=meta.get("CreateDate"),
                            status=CredentialStatus.from_provider(meta.get("Status")),
                            user_name=meta.get("UserName"),
                        )
                    )
        except (ClientError, BotoCoreError) as e:
            raise ProviderUnavailable(f"Failed to list access keys: {e}") from e

        logger.debug(f"Listed {len(credentials)} access key(s): {[c.key_id for c in credentials]}")
        return credentials

    def current_local_identity(self) -> str:
        """Key id of the credential this client authenticates with."""
        frozen = None
        try:
            credentials = self.session.get_credentials()
            if credentials is not None:
                frozen = credentials.get_frozen_credentials()
        except BotoCoreError as e:
            raise ProviderUnavailable(f"Failed to resolve local credentials: {e}") from e

        if frozen is None or not frozen.access_key:
            raise ProviderUnavailable("No local credentials configured")
        return frozen.access_key

    def create_credential(self) -> Credential:
        """Create a new access key.

        Raises:
            CreationFailed: If the provider refuses or returns no usable pair
            ProviderUnavailable: If the provider cannot be reached
        """
        try:
            response = self._iam.create_access_key(**self._user_kwargs())
        except ClientError as e:
            if _is_transient(e):
                raise ProviderUnavailable(f"Failed to create access key: {e}") from e
            raise CreationFailed(f"Provider refused to create access key: {e}") from e
        except BotoCoreError as e:
            raise ProviderUnavailable(f"Failed to create access key: {e}") from e

        key = response.get("AccessKey") or {}
        credential = Credential(
            key_id=key.get("AccessKeyId", ""),
            secret=key.get("SecretAccessKey"),
            created_at=key.get("CreateDate"),
            status=CredentialStatus.from_provider(key.get("Status")),
            user_name=key.get("UserName"),
        )
        if not credential.has_secret():
            raise CreationFailed("Provider returned no usable access key pair")

        logger.info(f"Created access key {credential.key_id}")
        return credential

    def delete_credential(self, key_id: str) -> None:
        """Delete an access key.

        Raises:
            DeletionFailed: If the provider refuses the delete
            ProviderUnavailable: If the provider cannot be reached
        """
        try:
            self._iam.delete_access_key(AccessKeyId=key_id, **self._user_kwargs())
        except ClientError as e:
            if _is_transient(e):
                raise ProviderUnavailable(f"Failed to delete access key {key_id}: {e}", key_id=key_id) from e
            raise DeletionFailed(f"Provider refused to delete access key {key_id}: {e}", key_id=key_id) from e
        except BotoCoreError as e:
            raise ProviderUnavailable(f"Failed to delete access key {key_id}: {e}", key_id=key_id) from e

        logger.info(f"Deleted access key {key_id}")

    def probe(self) -> bool:
        """Make a lightweight authenticated call with this client's credential."""
        try:
            identity = self._sts.get_caller_identity()
        except (ClientError, BotoCoreError) as e:
            logger.debug(f"Probe failed: {e}")
            return False
        logger.debug(f"Probe succeeded as {identity.get('Arn')}")
        return True
