"""Custom exceptions for credrotate.

Every rotation fault has its own class so a caller can script a different
remediation per kind. Each carries a stable ``kind`` string and the process
exit status the CLI reports for it.
"""

from typing import Optional


class CredrotateError(Exception):
    """Base exception for all credrotate errors."""

    pass


class RotationError(CredrotateError):
    """Base exception for faults raised while evaluating or rotating a credential."""

    kind = "rotation_error"
    category = "rotation"
    exit_code = 1

    def __init__(self, message: str, key_id: Optional[str] = None, mutated: bool = False):
        """
        Initialize rotation error.

        Args:
            message: Error message
            key_id: Access key id the fault relates to, if any
            mutated: Whether provider-side or store-side state changed before the fault
        """
        super().__init__(message)
        self.key_id = key_id
        self.mutated = mutated

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "category": self.category,
            "message": str(self),
            "key_id": self.key_id,
            "mutated": self.mutated,
            "exit_code": self.exit_code,
        }


# Configuration faults


class InvalidDuration(RotationError):
    """Raised when a time expression cannot be resolved to a timestamp."""

    kind = "invalid_duration"
    category = "configuration"
    exit_code = 2


class NegativeDuration(RotationError):
    """Raised when a configured period resolves to a negative number of seconds."""

    kind = "negative_duration"
    category = "configuration"
    exit_code = 3


# Collaborator faults


class ProviderUnavailable(RotationError):
    """Raised when the identity provider cannot be reached or refuses the caller."""

    kind = "provider_unavailable"
    category = "provider"
    exit_code = 4


class StoreUnreadable(RotationError):
    """Raised when the local credential store has no usable credential."""

    kind = "store_unreadable"
    category = "store"
    exit_code = 5


class DeletionFailed(RotationError):
    """Raised by the directory client when a delete call fails."""

    kind = "deletion_failed"
    category = "provider"
    exit_code = 7


class StoreWriteFailed(RotationError):
    """Raised by the secret store when the credential file cannot be replaced."""

    kind = "store_write_failed"
    category = "store"
    exit_code = 8


class RestoreFailed(RotationError):
    """Raised by the secret store when the backup cannot be copied back."""

    kind = "restore_failed"
    category = "store"
    exit_code = 9


# Precondition faults: nothing mutated, safe to retry


class LocalCredentialNotFound(RotationError):
    """Raised when the locally installed key id is not listed by the provider."""

    kind = "local_credential_not_found"
    category = "precondition"
    exit_code = 6


class SpareCredentialBlocksRotation(RotationError):
    """Raised when a spare credential exists and force was not given."""

    kind = "spare_credential_blocks_rotation"
    category = "precondition"
    exit_code = 10


class SpareDeletionFailed(RotationError):
    """Raised when a forced delete of the spare credential fails."""

    kind = "spare_deletion_failed"
    category = "precondition"
    exit_code = 11


class StaleBackupBlocksRotation(RotationError):
    """Raised when a backup from an earlier run exists and force was not given."""

    kind = "stale_backup_blocks_rotation"
    category = "precondition"
    exit_code = 12


class LockUnavailable(RotationError):
    """Raised when another rotation holds the advisory lock."""

    kind = "lock_unavailable"
    category = "precondition"
    exit_code = 60


# Mutation faults


class BackupFailed(RotationError):
    """Raised when the local credential material cannot be snapshotted."""

    kind = "backup_failed"
    category = "mutation"
    exit_code = 20


class CreationFailed(RotationError):
    """Raised when the provider returns no usable key pair."""

    kind = "creation_failed"
    category = "mutation"
    exit_code = 21


class PartialInstall(RotationError):
    """Raised when writing the new credential to the local store fails.

    The local store may be inconsistent; the backup is kept for recovery.
    """

    kind = "partial_install"
    category = "mutation"
    exit_code = 40


class InstallVerificationFailed(RotationError):
    """Raised when the provider rejects the freshly installed credential."""

    kind = "install_verification_failed"
    category = "mutation"
    exit_code = 41

    def __init__(self, message: str, key_id: Optional[str] = None, mutated: bool = True,
                 restored: bool = False):
        super().__init__(message, key_id=key_id, mutated=mutated)
        self.restored = restored

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["restored"] = self.restored
        return data


# Verification faults


class NewCredentialNeverBecameActive(RotationError):
    """Raised when every liveness probe of the new credential failed."""

    kind = "new_credential_never_became_active"
    category = "verification"
    exit_code = 30

    def __init__(self, message: str, key_id: Optional[str] = None, mutated: bool = True,
                 attempts: int = 0, discarded: bool = False):
        super().__init__(message, key_id=key_id, mutated=mutated)
        self.attempts = attempts
        self.discarded = discarded

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["attempts"] = self.attempts
        data["discarded"] = self.discarded
        return data


class RotationCancelled(RotationError):
    """Raised when a rotation is cancelled between or during mutating steps."""

    kind = "rotation_cancelled"
    category = "cancellation"
    exit_code = 50


# Post-install faults: reported as warnings


class OldCredentialCleanupFailed(RotationError):
    """Raised when the old key cannot be deleted after the new one is installed."""

    kind = "old_credential_cleanup_failed"
    category = "post_install"
    exit_code = 0


class BackupCleanupFailed(RotationError):
    """Raised when the BackupRecord cannot be removed after a successful rotation."""

    kind = "backup_cleanup_failed"
    category = "post_install"
    exit_code = 0
