"""Access key rotation.

- Duration parsing for periods and key ages
- Provider adapter (IAM/STS) and local credentials store
- Policy evaluation and the rotation state machine
"""

from .directory import CredentialDirectoryClient
from .duration import parse_duration, resolve_timestamp
from .models import (Credential, CredentialStatus, PolicyDecision,
                     RotationOutcome, RotationPolicy, RotationResult)
from .policy import credential_age_seconds, evaluate, resolve_period
from .rotation import BACKOFF_SCHEDULE, CredentialRotator
from .secret_store import SharedCredentialsStore

__all__ = [
    # Models
    "Credential",
    "CredentialStatus",
    "PolicyDecision",
    "RotationOutcome",
    "RotationPolicy",
    "RotationResult",
    # Duration parsing
    "parse_duration",
    "resolve_timestamp",
    # Policy
    "credential_age_seconds",
    "evaluate",
    "resolve_period",
    # Collaborators
    "CredentialDirectoryClient",
    "SharedCredentialsStore",
    # State machine
    "BACKOFF_SCHEDULE",
    "CredentialRotator",
]
