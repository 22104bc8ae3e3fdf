"""Local credential store.

Manages one profile of an AWS shared credentials file and its BackupRecord,
a durable snapshot of the whole file taken before any mutation. Every write
goes through a temp file in the same directory followed by ``os.replace``, so
a reader sees either the old key pair or the new one, never a mix. Only the
rotated lines change; comments and other profiles are written back verbatim.
"""

import configparser
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Optional, Union

from ..exceptions import (BackupFailed, RestoreFailed, StoreUnreadable,
                          StoreWriteFailed)
from .models import Credential

logger = logging.getLogger(__name__)

KEY_ID_FIELD = "aws_access_key_id"
SECRET_FIELD = "aws_secret_access_key"
SESSION_TOKEN_FIELD = "aws_session_token"


def _atomic_write(path: Path, data: bytes) -> None:
    """Replace ``path`` with ``data`` in one rename, mode 0600."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, 0o600)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def _parse(text: str) -> configparser.ConfigParser:
    config = configparser.ConfigParser(interpolation=None)
    # Preserve case sensitivity for AWS credentials
    config.optionxform = str
    config.read_string(text)
    return config


_SECTION_RE = re.compile(r"\[(?P<header>.+)\]")
_OPTION_RE = re.compile(r"(?P<option>[^=:\s][^=:]*?)\s*[=:]")


def _line_ending(line: str) -> str:
    return line[len(line.rstrip("\r\n")):] or "\n"


def _replace_profile(text: str, profile: str, fields: dict[str, Optional[str]]) -> str:
    """Set options in one section of an INI text, leaving every other line as is.

    A ``None`` value drops the option (with any continuation lines). Options
    missing from the section are appended after its last non-blank line; a
    missing section is appended at the end of the file.
    """
    lines = text.splitlines(keepends=True)
    if lines and not lines[-1].endswith(("\n", "\r")):
        lines[-1] += "\n"

    start = end = None
    for index, line in enumerate(lines):
        match = _SECTION_RE.match(line.strip())
        if not match:
            continue
        if start is not None and end is None:
            end = index
        if start is None and match.group("header") == profile:
            start = index

    new_options = [f"{name} = {value}\n" for name, value in fields.items() if value is not None]
    if start is None:
        block = [f"[{profile}]\n"] + new_options
        if lines and lines[-1].strip():
            block.insert(0, "\n")
        return "".join(lines + block)
    if end is None:
        end = len(lines)

    body = []
    written = set()
    in_replaced_option = False
    for line in lines[start + 1:end]:
        # Continuation lines of a replaced option go with it
        if in_replaced_option and line[:1] in (" ", "\t") and line.strip():
            continue
        in_replaced_option = False

        match = _OPTION_RE.match(line)
        name = match.group("option") if match else None
        if name not in fields:
            body.append(line)
            continue

        in_replaced_option = True
        value = fields[name]
        if value is not None and name not in written:
            body.append(f"{name} = {value}{_line_ending(line)}")
            written.add(name)

    missing = [f"{name} = {value}\n" for name, value in fields.items()
               if value is not None and name not in written]
    insert_at = len(body)
    while insert_at and not body[insert_at - 1].strip():
        insert_at -= 1
    body[insert_at:insert_at] = missing

    return "".join(lines[:start + 1] + body + lines[end:])


class SharedCredentialsStore:
    """One profile of a shared credentials file plus its BackupRecord."""

    def __init__(
        self,
        path: Union[str, Path],
        profile: str = "default",
        backup_path: Optional[Union[str, Path]] = None,
    ):
        """Initialize store.

        Args:
            path: Shared credentials file (e.g. ~/.aws/credentials)
            profile: Profile section holding the rotated key
            backup_path: BackupRecord location (defaults to <path>.<profile>.bak)
        """
        self.path = Path(path).expanduser()
        self.profile = profile
        if backup_path is None:
            backup_path = self.path.with_name(f"{self.path.name}.{profile}.bak")
        self.backup_path = Path(backup_path).expanduser()

    def _load(self, path: Path) -> configparser.ConfigParser:
        try:
            return _parse(path.read_text(encoding="utf-8"))
        except (OSError, configparser.Error, UnicodeDecodeError) as e:
            raise StoreUnreadable(f"Cannot read credentials file {path}: {e}") from e

    def _credential_from(self, config: configparser.ConfigParser, source: Path) -> Credential:
        if not config.has_section(self.profile):
            raise StoreUnreadable(f"Profile '{self.profile}' not found in {source}")

        section = config[self.profile]
        key_id = section.get(KEY_ID_FIELD, "").strip()
        secret = section.get(SECRET_FIELD, "").strip()
        if not key_id or not secret:
            raise StoreUnreadable(f"Profile '{self.profile}' in {source} is missing credentials")
        return Credential(key_id=key_id, secret=secret)

    def read(self) -> Credential:
        """Read the profile's active credential.

        Raises:
            StoreUnreadable: If the file, the profile, or either field is missing
        """
        return self._credential_from(self._load(self.path), self.path)

    def read_backup(self) -> Credential:
        """Read the credential held in the BackupRecord."""
        return self._credential_from(self._load(self.backup_path), self.backup_path)

    def write(self, key_id: str, secret: str) -> None:
        """Replace the profile's key pair, keeping every other line intact.

        Only the key id, secret and session token lines of the profile are
        touched; comments, formatting and other profiles are preserved.

        Raises:
            StoreWriteFailed: If the file cannot be replaced; the previous file is untouched
        """
        try:
            # Bytes, so existing line endings survive
            text = self.path.read_bytes().decode("utf-8") if self.path.exists() else ""
            _parse(text)
        except (OSError, configparser.Error, UnicodeDecodeError) as e:
            raise StoreWriteFailed(f"Cannot read credentials file {self.path}: {e}", key_id=key_id) from e

        updated = _replace_profile(
            text,
            self.profile,
            {
                KEY_ID_FIELD: key_id,
                SECRET_FIELD: secret,
                # Long-lived keys never carry a session token
                SESSION_TOKEN_FIELD: None,
            },
        )
        try:
            _atomic_write(self.path, updated.encode("utf-8"))
        except OSError as e:
            raise StoreWriteFailed(f"Cannot write credentials file {self.path}: {e}", key_id=key_id) from e

        logger.info(f"Installed access key {key_id} into profile '{self.profile}'")

    def backup_exists(self) -> bool:
        return self.backup_path.exists()

    def backup(self) -> None:
        """Snapshot the credentials file into the BackupRecord.

        Raises:
            BackupFailed: If the snapshot cannot be taken; nothing else is changed
        """
        try:
            data = self.path.read_bytes()
            _atomic_write(self.backup_path, data)
        except OSError as e:
            raise BackupFailed(f"Cannot back up {self.path} to {self.backup_path}: {e}") from e
        logger.info(f"Backed up credentials to {self.backup_path}")

    def restore(self) -> None:
        """Copy the BackupRecord back over the credentials file.

        The BackupRecord itself is kept.

        Raises:
            RestoreFailed: If the backup is missing or cannot be copied
        """
        try:
            data = self.backup_path.read_bytes()
            _atomic_write(self.path, data)
        except OSError as e:
            raise RestoreFailed(f"Cannot restore {self.path} from {self.backup_path}: {e}") from e
        logger.warning(f"Restored credentials from {self.backup_path}")

    def clear_backup(self) -> None:
        """Remove the BackupRecord if present."""
        try:
            self.backup_path.unlink()
        except FileNotFoundError:
            return
        logger.info(f"Removed backup {self.backup_path}")
