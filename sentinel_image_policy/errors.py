"""Exception hierarchy for image trust decisions."""

from __future__ import annotations


class ImagePolicyError(Exception):
    """Base class for image policy errors."""


class PolicyConfigurationError(ImagePolicyError):
    """The policy or the image identity makes a decision impossible."""


class PolicyRequirementError(ImagePolicyError):
    """A policy requirement was not satisfied.

    This is the "explicitly denied" kind, as opposed to infrastructure
    failures such as an unreachable signature store.
    """


class PolicyContextStateError(ImagePolicyError):
    """A policy context was used in a state that does not allow it."""

    def __init__(self, expected: str, actual: str, requested: str) -> None:
        self.expected = expected
        self.actual = actual
        self.requested = requested
        super().__init__(
            f"Invalid PolicyContext state, expected '{expected}', found '{actual}' "
            f"(while moving to '{requested}')"
        )


class SignatureFetchError(ImagePolicyError):
    """Reading the raw signatures of an image failed."""


class SignatureVerificationError(ImagePolicyError):
    """A raw signature could not be verified or parsed."""


class InvalidReferenceError(ValueError):
    """Text could not be parsed as a Docker image reference."""
