"""Pytest configuration and fixtures for credrotate tests"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Ensure src directory is in Python path before any imports
project_root = Path(__file__).resolve().parent.parent
src_path = project_root / "src"

for path in (project_root, src_path):
    path_str = str(path)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)

from credrotate.credentials import (Credential, CredentialRotator,
                                    CredentialStatus, SharedCredentialsStore)
from credrotate.exceptions import (CreationFailed, DeletionFailed,
                                   ProviderUnavailable)

NOW = datetime(2026, 1, 31, 12, 0, 0, tzinfo=timezone.utc)

OLD_KEY = "AKIAOLDKEY0000000001"
OLD_SECRET = "old-secret"
SPARE_KEY = "AKIASPAREKEY00000002"


class FakeProvider:
    """In-memory identity provider shared by every client bound to it."""

    def __init__(self):
        self.keys: dict[str, Credential] = {}
        self.calls: list[tuple] = []
        self.probe_results: list[bool] = []
        self.probe_default = True
        self.fail_create = False
        self.fail_delete: set[str] = set()
        self.fail_list_for: set[str] = set()
        self._counter = 0

    def add_key(self, key_id: str, secret: str = "secret", age: timedelta = timedelta(days=30),
                now: datetime = NOW):
        self.keys[key_id] = Credential(
            key_id=key_id,
            secret=secret,
            created_at=now - age,
            status=CredentialStatus.ACTIVE,
            user_name="deploy",
        )

    @property
    def mutations(self) -> list[tuple]:
        return [c for c in self.calls if c[0] in ("create", "delete")]

    def next_probe(self) -> bool:
        if self.probe_results:
            return self.probe_results.pop(0)
        return self.probe_default


class FakeDirectoryClient:
    """Directory client bound to one key of a FakeProvider."""

    def __init__(self, provider: FakeProvider, key_id: str):
        self.provider = provider
        self.key_id = key_id

    def for_credential(self, credential: Credential) -> "FakeDirectoryClient":
        return FakeDirectoryClient(self.provider, credential.key_id)

    def list_credentials(self, identity=None):
        self.provider.calls.append(("list", self.key_id))
        if self.key_id in self.provider.fail_list_for:
            raise ProviderUnavailable(f"list rejected for {self.key_id}")
        return [
            Credential(key_id=c.key_id, created_at=c.created_at, status=c.status, user_name=c.user_name)
            for c in self.provider.keys.values()
        ]

    def current_local_identity(self) -> str:
        return self.key_id

    def create_credential(self) -> Credential:
        self.provider.calls.append(("create", self.key_id))
        if self.provider.fail_create:
            raise CreationFailed("LimitExceeded")
        self.provider._counter += 1
        key_id = f"AKIANEWKEY{self.provider._counter:010d}"
        self.provider.keys[key_id] = Credential(
            key_id=key_id,
            secret=f"new-secret-{self.provider._counter}",
            created_at=NOW,
            user_name="deploy",
        )
        return Credential(key_id=key_id, secret=self.provider.keys[key_id].secret, created_at=NOW)

    def delete_credential(self, key_id: str) -> None:
        self.provider.calls.append(("delete", key_id))
        if key_id in self.provider.fail_delete:
            raise DeletionFailed(f"refused to delete {key_id}", key_id=key_id)
        self.provider.keys.pop(key_id, None)

    def probe(self) -> bool:
        self.provider.calls.append(("probe", self.key_id))
        return self.provider.next_probe()


def write_credentials_file(path: Path, key_id: str = OLD_KEY, secret: str = OLD_SECRET) -> Path:
    path.write_text(
        "[default]\n"
        f"aws_access_key_id = {key_id}\n"
        f"aws_secret_access_key = {secret}\n"
        "\n"
        "[other]\n"
        "aws_access_key_id = AKIAOTHERKEY00000009\n"
        "aws_secret_access_key = other-secret\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def provider():
    provider = FakeProvider()
    provider.add_key(OLD_KEY, OLD_SECRET, age=timedelta(days=30))
    return provider


@pytest.fixture
def store(tmp_path):
    path = write_credentials_file(tmp_path / "credentials")
    return SharedCredentialsStore(path, profile="default")


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def rotator(provider, store, sleeps):
    return CredentialRotator(
        FakeDirectoryClient(provider, OLD_KEY),
        store,
        sleep=sleeps.append,
        clock=lambda: NOW,
    )
