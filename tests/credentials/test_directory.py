"""Tests for the IAM/STS directory client, stubbed with botocore's Stubber."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import boto3
import pytest
from botocore.stub import Stubber

from credrotate.credentials import (Credential, CredentialDirectoryClient,
                                    CredentialStatus)
from credrotate.exceptions import (CreationFailed, DeletionFailed,
                                   ProviderUnavailable)

KEY_ID = "AKIAOLDKEY0000000001"
NEW_KEY_ID = "AKIANEWKEY0000000001"
CREATED = datetime(2025, 12, 1, tzinfo=timezone.utc)


@pytest.fixture
def client():
    session = boto3.Session(
        aws_access_key_id=KEY_ID,
        aws_secret_access_key="old-secret",
        region_name="us-east-1",
    )
    return CredentialDirectoryClient(session)


@pytest.fixture
def iam(client):
    with Stubber(client._iam) as stubber:
        yield stubber
        stubber.assert_no_pending_responses()


@pytest.fixture
def sts(client):
    with Stubber(client._sts) as stubber:
        yield stubber


def _key_metadata(key_id, status="Active"):
    return {"UserName": "deploy", "AccessKeyId": key_id, "Status": status, "CreateDate": CREATED}


class TestListCredentials:
    def test_lists_keys(self, client, iam):
        iam.add_response(
            "list_access_keys",
            {"AccessKeyMetadata": [_key_metadata(KEY_ID), _key_metadata(NEW_KEY_ID, "Inactive")],
             "IsTruncated": False},
            {},
        )

        credentials = client.list_credentials()

        assert [c.key_id for c in credentials] == [KEY_ID, NEW_KEY_ID]
        assert credentials[0].created_at == CREATED
        assert credentials[0].status == CredentialStatus.ACTIVE
        assert credentials[1].status == CredentialStatus.INACTIVE
        assert all(c.secret is None for c in credentials)

    def test_lists_for_named_user(self, client, iam):
        iam.add_response(
            "list_access_keys",
            {"AccessKeyMetadata": [_key_metadata(KEY_ID)], "IsTruncated": False},
            {"UserName": "deploy"},
        )
        assert len(client.list_credentials("deploy")) == 1

    def test_failure_is_provider_unavailable(self, client, iam):
        iam.add_client_error("list_access_keys", service_error_code="AccessDenied", http_status_code=403)
        with pytest.raises(ProviderUnavailable):
            client.list_credentials()


class TestCreateCredential:
    def test_creates_key(self, client, iam):
        iam.add_response(
            "create_access_key",
            {"AccessKey": {"UserName": "deploy", "AccessKeyId": NEW_KEY_ID, "Status": "Active",
                           "SecretAccessKey": "new-secret", "CreateDate": CREATED}},
            {},
        )

        credential = client.create_credential()

        assert credential.key_id == NEW_KEY_ID
        assert credential.secret == "new-secret"

    def test_limit_exceeded_is_creation_failed(self, client, iam):
        iam.add_client_error("create_access_key", service_error_code="LimitExceeded", http_status_code=409)
        with pytest.raises(CreationFailed):
            client.create_credential()

    def test_throttling_is_provider_unavailable(self, client, iam):
        iam.add_client_error("create_access_key", service_error_code="Throttling", http_status_code=400)
        with pytest.raises(ProviderUnavailable):
            client.create_credential()

    def test_missing_pair_is_creation_failed(self, client):
        client._iam = MagicMock()
        client._iam.create_access_key.return_value = {"AccessKey": {"AccessKeyId": NEW_KEY_ID}}

        with pytest.raises(CreationFailed, match="no usable"):
            client.create_credential()


class TestDeleteCredential:
    def test_deletes_key(self, client, iam):
        iam.add_response("delete_access_key", {}, {"AccessKeyId": KEY_ID})
        client.delete_credential(KEY_ID)

    def test_refusal_is_deletion_failed(self, client, iam):
        iam.add_client_error("delete_access_key", service_error_code="NoSuchEntity", http_status_code=404)
        with pytest.raises(DeletionFailed) as exc_info:
            client.delete_credential(KEY_ID)
        assert exc_info.value.key_id == KEY_ID


class TestProbe:
    def test_probe_success(self, client, sts):
        sts.add_response(
            "get_caller_identity",
            {"UserId": "AIDAEXAMPLE", "Account": "123456789012", "Arn": "arn:aws:iam::123456789012:user/deploy"},
            {},
        )
        assert client.probe() is True

    def test_probe_failure(self, client, sts):
        sts.add_client_error("get_caller_identity", service_error_code="InvalidClientTokenId",
                             http_status_code=403)
        assert client.probe() is False


class TestAmbientCredential:
    def test_for_credential_binds_new_key(self, client):
        bound = client.for_credential(Credential(key_id=NEW_KEY_ID, secret="new-secret"))

        assert bound is not client
        assert bound.current_local_identity() == NEW_KEY_ID
        assert client.current_local_identity() == KEY_ID
        assert bound.session.region_name == "us-east-1"
