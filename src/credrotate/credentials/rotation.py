"""Access key rotation.

Drives one rotation of the local access key through a fixed sequence of
steps, never leaving the caller without a working credential:

1. Inventory: a spare key blocks rotation unless forced (then it is deleted)
2. Backup precondition: a BackupRecord from an earlier run blocks unless forced
3. Backup: snapshot the local credentials file
4. Create: ask the provider for a new key
5. Verify: probe with the new key, backing off 1,1,2,2,4,4,8,8,16,16 seconds
   (11 probes, 10 sleeps); on exhaustion the new key is discarded
6. Install: persist the new key, then list keys with it; on failure the
   BackupRecord is restored
7. Cleanup: delete the old key and the BackupRecord; failures here are warnings

The BackupRecord is the only state carried between runs. A run is not
resumable: a failed run leaves the BackupRecord for inspection and the next
run refuses to start until it is cleared or ``force`` is given.
"""

import logging
import threading
import time
from datetime import datetime
from typing import Callable, Optional, Sequence

from ..exceptions import (BackupCleanupFailed, InstallVerificationFailed,
                          LocalCredentialNotFound,
                          NewCredentialNeverBecameActive,
                          OldCredentialCleanupFailed, PartialInstall,
                          RotationCancelled, RotationError,
                          SpareCredentialBlocksRotation, SpareDeletionFailed,
                          StaleBackupBlocksRotation, StoreWriteFailed)
from ..file_lock import FileLock
from .directory import CredentialDirectoryClient
from .duration import utcnow
from .models import (Credential, RotationOutcome, RotationPolicy,
                     RotationResult)
from .policy import evaluate, resolve_period
from .secret_store import SharedCredentialsStore

logger = logging.getLogger(__name__)

# Seconds slept after each failed probe; one more probe follows the last sleep
BACKOFF_SCHEDULE = (1, 1, 2, 2, 4, 4, 8, 8, 16, 16)


class CredentialRotator:
    """Rotates the access key installed in one credentials profile."""

    def __init__(
        self,
        directory: CredentialDirectoryClient,
        store: SharedCredentialsStore,
        sleep: Optional[Callable[[float], None]] = None,
        clock: Callable[[], datetime] = utcnow,
        backoff: Sequence[float] = BACKOFF_SCHEDULE,
        cancel_event: Optional[threading.Event] = None,
        lock: Optional[FileLock] = None,
        client_factory: Optional[Callable[[Credential], CredentialDirectoryClient]] = None,
    ):
        """Initialize rotator.

        Args:
            directory: Provider client authenticated with the local credential
            store: Local credentials file holding the key being rotated
            sleep: Blocking sleep used between probes (defaults to time.sleep,
                or to waiting on ``cancel_event`` when one is given)
            clock: Returns the current UTC instant
            backoff: Sleep intervals between probes of a new key
            cancel_event: Set from another thread to cancel a running rotation
            lock: Advisory lock held for the whole mutating run
            client_factory: Builds a provider client bound to a given credential
        """
        self.directory = directory
        self.store = store
        self.sleep = sleep
        self.clock = clock
        self.backoff = tuple(backoff)
        self.cancel_event = cancel_event
        self.lock = lock
        self.client_factory = client_factory or directory.for_credential

    # Operations

    def evaluate(self, period: Optional[str]) -> RotationResult:
        """Report whether rotation is due without changing anything."""
        return self.run(RotationPolicy(period=period), evaluate_only=True)

    def rotate_if_due(self, period: str, force: bool = False) -> RotationResult:
        return self.run(RotationPolicy(period=period, force=force))

    def rotate_now(self, force: bool = False) -> RotationResult:
        return self.run(RotationPolicy(period=None, force=force))

    def rotate(self, policy: RotationPolicy) -> RotationResult:
        """Like ``run`` but raises the fault instead of returning a failed result."""
        result = self.run(policy)
        if result.error is not None:
            raise result.error
        return result

    def run(self, policy: RotationPolicy, evaluate_only: bool = False) -> RotationResult:
        """Evaluate the policy and, if due, rotate.

        Faults never escape: they are returned as a ``failed`` result carrying
        the typed error.

        Args:
            policy: Period and force flag
            evaluate_only: Only report whether rotation is due

        Returns:
            RotationResult describing the terminal outcome
        """
        result = RotationResult(outcome=RotationOutcome.FAILED)
        try:
            if evaluate_only or self.lock is None:
                self._run(policy, result, evaluate_only)
            else:
                with self.lock:
                    self._run(policy, result, evaluate_only)
        except RotationError as e:
            result.outcome = RotationOutcome.FAILED
            result.error = e
            logger.error(f"[Rotate] Failed ({e.kind}): {e}")
        return result

    # Steps

    def _run(self, policy: RotationPolicy, result: RotationResult, evaluate_only: bool) -> None:
        now = self.clock()
        # Configuration faults surface before any provider call
        resolve_period(policy.period, now)

        local = self.store.read()
        result.old_key_id = local.key_id

        credentials = self.directory.list_credentials()
        current = next((c for c in credentials if c.key_id == local.key_id), None)
        if current is None:
            raise LocalCredentialNotFound(
                f"Local access key {local.key_id} is not listed by the provider",
                key_id=local.key_id,
            )

        decision = evaluate(current.created_at, policy.period, now)
        result.age_seconds = decision.age_seconds
        result.period_seconds = decision.period_seconds
        logger.info(f"[Rotate] {decision.reason}")

        if not decision.due:
            result.outcome = RotationOutcome.NOT_DUE
            return
        if evaluate_only:
            result.outcome = RotationOutcome.DUE
            return

        self._check_spares(policy, local, credentials, result)
        self._check_stale_backup(policy)

        self.store.backup()
        self._raise_if_cancelled("after backup", key_id=local.key_id)

        try:
            new = self.directory.create_credential()
        except KeyboardInterrupt:
            # The provider may or may not have created a key; its id is unknown
            logger.error("[Rotate] Interrupted while creating a new access key; "
                         "check the provider for an unexpected key")
            raise
        result.new_key_id = new.key_id

        self._verify(new)
        installed_client = self._install(new)
        self._cleanup(local, installed_client, result)

        if result.warnings:
            result.outcome = RotationOutcome.ROTATED_WITH_WARNING
        elif result.spare_key_id:
            result.outcome = RotationOutcome.ROTATED_WITH_SPARE_CLEANUP
        else:
            result.outcome = RotationOutcome.ROTATED
        logger.info(f"[Rotate] Rotated {local.key_id} -> {new.key_id} ({result.outcome.value})")

    def _check_spares(
        self,
        policy: RotationPolicy,
        local: Credential,
        credentials: list[Credential],
        result: RotationResult,
    ) -> None:
        if len(credentials) < 2:
            return

        spares = [c for c in credentials if c.key_id != local.key_id]
        if not policy.force:
            raise SpareCredentialBlocksRotation(
                f"{len(credentials)} access keys exist; delete the spare "
                f"({', '.join(c.key_id for c in spares)}) or rerun with force",
                key_id=spares[0].key_id if spares else None,
            )

        for spare in spares:
            logger.warning(f"[Rotate] Deleting spare access key {spare.key_id} (forced)")
            try:
                self.directory.delete_credential(spare.key_id)
            except RotationError as e:
                raise SpareDeletionFailed(
                    f"Could not delete spare access key {spare.key_id}: {e}",
                    key_id=spare.key_id,
                    mutated=result.spare_key_id is not None,
                ) from e
            result.spare_key_id = spare.key_id

    def _check_stale_backup(self, policy: RotationPolicy) -> None:
        if not self.store.backup_exists():
            return
        if not policy.force:
            raise StaleBackupBlocksRotation(
                f"Backup {self.store.backup_path} from an earlier run exists; "
                f"inspect and remove it or rerun with force"
            )
        logger.warning(f"[Rotate] Superseding stale backup {self.store.backup_path} (forced)")

    def _verify(self, new: Credential) -> None:
        """Probe the new key until it works, discarding it if it never does."""
        attempts = 0
        try:
            if self._cancelled():
                self._discard(new)
                raise RotationCancelled("Rotation cancelled after creating a new key", key_id=new.key_id,
                                        mutated=True)
            ambient = self.client_factory(new)
            for attempt in range(len(self.backoff) + 1):
                attempts = attempt + 1
                if self._probe(ambient):
                    logger.info(f"[Rotate] Access key {new.key_id} is live after {attempts} probe(s)")
                    return
                if attempt < len(self.backoff):
                    delay = self.backoff[attempt]
                    logger.debug(f"[Rotate] Probe {attempts} failed, retrying in {delay}s")
                    self._pause(delay, new)
        except KeyboardInterrupt:
            self._discard(new)
            raise

        discarded = self._discard(new)
        raise NewCredentialNeverBecameActive(
            f"Access key {new.key_id} failed {attempts} liveness probes",
            key_id=new.key_id,
            attempts=attempts,
            discarded=discarded,
        )

    def _probe(self, client: CredentialDirectoryClient) -> bool:
        try:
            return bool(client.probe())
        except RotationError as e:
            logger.debug(f"[Rotate] Probe raised: {e}")
            return False

    def _pause(self, seconds: float, new: Credential) -> None:
        if self.sleep is not None:
            self.sleep(seconds)
        elif self.cancel_event is not None:
            self.cancel_event.wait(seconds)
        else:
            time.sleep(seconds)

        if self._cancelled():
            self._discard(new)
            raise RotationCancelled("Rotation cancelled while verifying the new key", key_id=new.key_id,
                                    mutated=True)

    def _install(self, new: Credential) -> CredentialDirectoryClient:
        """Persist the new key and prove the provider accepts it end-to-end."""
        if self._cancelled():
            self._discard(new)
            raise RotationCancelled("Rotation cancelled before install", key_id=new.key_id, mutated=True)

        try:
            self.store.write(new.key_id, new.secret)
        except StoreWriteFailed as e:
            raise PartialInstall(
                f"Writing access key {new.key_id} to {self.store.path} failed; the file still "
                f"holds the old pair, new key {new.key_id} is left on the provider and the "
                f"backup is kept at {self.store.backup_path}: {e}",
                key_id=new.key_id,
                mutated=True,
            ) from e

        try:
            if self._cancelled():
                raise RotationCancelled("Rotation cancelled during install", key_id=new.key_id,
                                        mutated=True)
            installed = self.store.read()
            client = self.client_factory(installed)
            client.list_credentials()
        except RotationCancelled:
            self._restore()
            raise
        except RotationError as e:
            restored = self._restore()
            raise InstallVerificationFailed(
                f"Installed access key {new.key_id} was not accepted: {e}",
                key_id=new.key_id,
                restored=restored,
            ) from e
        except KeyboardInterrupt:
            self._restore()
            raise

        return client

    def _cleanup(
        self,
        old: Credential,
        client: CredentialDirectoryClient,
        result: RotationResult,
    ) -> None:
        try:
            client.delete_credential(old.key_id)
        except RotationError as e:
            warning = OldCredentialCleanupFailed(
                f"New key installed but old access key {old.key_id} could not be deleted: {e}",
                key_id=old.key_id,
                mutated=True,
            )
            warning.__cause__ = e
            result.warnings.append(warning)
            logger.warning(f"[Rotate] {warning}")
            # The backup stays until the old key is really gone
            return

        try:
            self.store.clear_backup()
        except OSError as e:
            warning = BackupCleanupFailed(f"Could not remove backup {self.store.backup_path}: {e}")
            warning.__cause__ = e
            result.warnings.append(warning)
            logger.warning(f"[Rotate] {warning}")

    # Helpers

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def _raise_if_cancelled(self, stage: str, key_id: Optional[str] = None) -> None:
        if self._cancelled():
            raise RotationCancelled(f"Rotation cancelled {stage}", key_id=key_id)

    def _discard(self, credential: Credential) -> bool:
        """Delete an unverified key, best-effort."""
        try:
            self.directory.delete_credential(credential.key_id)
        except RotationError as e:
            logger.error(f"[Rotate] Could not discard access key {credential.key_id}: {e}")
            return False
        logger.info(f"[Rotate] Discarded access key {credential.key_id}")
        return True

    def _restore(self) -> bool:
        """Put the backed-up credentials file back, best-effort."""
        try:
            self.store.restore()
        except RotationError as e:
            logger.error(f"[Rotate] Could not restore credentials from backup: {e}")
            return False
        return True
