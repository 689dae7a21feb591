"""Sentinel Image Policy: signature trust decisions for container images."""

from sentinel_image_policy.context import PolicyContext
from sentinel_image_policy.directory import DirectoryImage
from sentinel_image_policy.errors import (
    ImagePolicyError,
    InvalidReferenceError,
    PolicyConfigurationError,
    PolicyContextStateError,
    PolicyRequirementError,
    SignatureFetchError,
    SignatureVerificationError,
)
from sentinel_image_policy.image import ImageReference, UnparsedImage
from sentinel_image_policy.lookaside import LookasideImage, LookasideSignatureStore
from sentinel_image_policy.match import (
    MatchExact,
    MatchRepoDigestOrExact,
    MatchRepository,
    MatchRule,
)
from sentinel_image_policy.models import (
    ContextState,
    RunDecision,
    Signature,
    SignatureAcceptance,
    SignatureVerdict,
)
from sentinel_image_policy.policy import Policy, load_policy
from sentinel_image_policy.reference import DockerImageReference, DockerReference
from sentinel_image_policy.requirements import (
    InsecureAcceptAnything,
    KeyType,
    Reject,
    Requirement,
    SignedBaseLayer,
    SignedBy,
)
from sentinel_image_policy.signature import (
    Ed25519SignatureVerifier,
    SignatureVerifier,
    sign_docker_manifest,
)

__all__ = [
    "ContextState",
    "DirectoryImage",
    "DockerImageReference",
    "DockerReference",
    "Ed25519SignatureVerifier",
    "ImagePolicyError",
    "ImageReference",
    "InsecureAcceptAnything",
    "InvalidReferenceError",
    "KeyType",
    "LookasideImage",
    "LookasideSignatureStore",
    "MatchExact",
    "MatchRepoDigestOrExact",
    "MatchRepository",
    "MatchRule",
    "Policy",
    "PolicyConfigurationError",
    "PolicyContext",
    "PolicyContextStateError",
    "PolicyRequirementError",
    "Reject",
    "Requirement",
    "RunDecision",
    "Signature",
    "SignatureAcceptance",
    "SignatureFetchError",
    "SignatureVerdict",
    "SignatureVerificationError",
    "SignatureVerifier",
    "SignedBaseLayer",
    "SignedBy",
    "load_policy",
    "sign_docker_manifest",
]
