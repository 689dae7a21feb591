"""Policy evaluation data models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from sentinel_image_policy.errors import ImagePolicyError


class SignatureAcceptance(StrEnum):
    """Verdict of one requirement on one signature."""

    ACCEPTED = "accepted"
    REJECTED = "rejected"
    UNKNOWN = "unknown"


class ContextState(StrEnum):
    """Lifecycle states of a PolicyContext."""

    READY = "ready"
    IN_USE = "in_use"
    DESTROYED = "destroyed"


class Signature(BaseModel):
    """Claims of a verified signature."""

    model_config = ConfigDict(frozen=True)

    docker_manifest_digest: str
    docker_reference: str


@dataclass(frozen=True)
class SignatureVerdict:
    """Result of ``is_signature_author_accepted``.

    ``signature`` is set exactly for ACCEPTED, ``error`` exactly for REJECTED.
    """

    acceptance: SignatureAcceptance
    signature: Signature | None = None
    error: ImagePolicyError | None = None

    def __post_init__(self) -> None:
        if (self.acceptance == SignatureAcceptance.ACCEPTED) != (self.signature is not None):
            msg = f"{self.acceptance} verdict with signature={self.signature!r}"
            raise ValueError(msg)
        if (self.acceptance == SignatureAcceptance.REJECTED) != (self.error is not None):
            msg = f"{self.acceptance} verdict with error={self.error!r}"
            raise ValueError(msg)

    @classmethod
    def accepted(cls, signature: Signature) -> SignatureVerdict:
        return cls(SignatureAcceptance.ACCEPTED, signature=signature)

    @classmethod
    def rejected(cls, error: ImagePolicyError) -> SignatureVerdict:
        return cls(SignatureAcceptance.REJECTED, error=error)

    @classmethod
    def unknown(cls) -> SignatureVerdict:
        return cls(SignatureAcceptance.UNKNOWN)


@dataclass(frozen=True)
class RunDecision:
    """Whether an image may run; ``error`` explains every denial."""

    allowed: bool
    error: ImagePolicyError | None = None

    def __post_init__(self) -> None:
        if self.allowed == (self.error is not None):
            msg = f"RunDecision(allowed={self.allowed}) with error={self.error!r}"
            raise ValueError(msg)

    @classmethod
    def allow(cls) -> RunDecision:
        return cls(allowed=True)

    @classmethod
    def deny(cls, error: ImagePolicyError) -> RunDecision:
        return cls(allowed=False, error=error)

    def raise_if_denied(self) -> None:
        """Raise the denial error, if any."""
        if self.error is not None:
            raise self.error

    def __bool__(self) -> bool:
        return self.allowed
