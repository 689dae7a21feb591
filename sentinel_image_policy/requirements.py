"""Policy requirements: the trust rules combined within a policy scope.

Each requirement answers two questions:

* ``is_signature_author_accepted``: is this one signature's author trusted?
  (accepted / rejected / unknown)
* ``is_running_image_allowed``: may the whole image run?

The set of requirement types is closed; policy documents select one with
the ``type`` discriminator.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from sentinel_image_policy.errors import (
    ImagePolicyError,
    PolicyConfigurationError,
    PolicyRequirementError,
    SignatureFetchError,
)
from sentinel_image_policy.image import UnparsedImage, read_signatures
from sentinel_image_policy.match import MatchRepoDigestOrExact, MatchRule
from sentinel_image_policy.models import (
    RunDecision,
    Signature,
    SignatureAcceptance,
    SignatureVerdict,
)
from sentinel_image_policy.signature import SignatureVerifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EvaluationEnv:
    """Collaborators a requirement may use while evaluating an image."""

    verifier: SignatureVerifier
    base_layer_check: BaseLayerCheck | None = None


class KeyType(StrEnum):
    """Kinds of trusted key material accepted by ``signedBy``."""

    ED25519_KEYS = "Ed25519Keys"


class PolicyRequirement(BaseModel):
    """Base for all requirement types."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    async def is_signature_author_accepted(
        self, image: UnparsedImage, raw_signature: bytes, env: EvaluationEnv
    ) -> SignatureVerdict:
        raise NotImplementedError

    async def is_running_image_allowed(
        self, image: UnparsedImage, env: EvaluationEnv
    ) -> RunDecision:
        raise NotImplementedError


class Reject(PolicyRequirement):
    """Trusts nothing."""

    type: Literal["reject"] = "reject"

    async def is_signature_author_accepted(
        self, image: UnparsedImage, raw_signature: bytes, env: EvaluationEnv
    ) -> SignatureVerdict:
        return SignatureVerdict.rejected(
            PolicyRequirementError(f"Any signatures for image {image.reference} are rejected by policy.")
        )

    async def is_running_image_allowed(
        self, image: UnparsedImage, env: EvaluationEnv
    ) -> RunDecision:
        return RunDecision.deny(
            PolicyRequirementError(f"Running image {image.reference} is rejected by policy.")
        )


class InsecureAcceptAnything(PolicyRequirement):
    """Allows running any image. Not a signature check: it never vouches for an author."""

    type: Literal["insecureAcceptAnything"] = "insecureAcceptAnything"

    async def is_signature_author_accepted(
        self, image: UnparsedImage, raw_signature: bytes, env: EvaluationEnv
    ) -> SignatureVerdict:
        return SignatureVerdict.unknown()

    async def is_running_image_allowed(
        self, image: UnparsedImage, env: EvaluationEnv
    ) -> RunDecision:
        return RunDecision.allow()


class SignedBy(PolicyRequirement):
    """Requires a signature by one of the trusted keys, for an acceptable identity."""

    type: Literal["signedBy"] = "signedBy"
    key_type: KeyType = Field(alias="keyType")
    key_path: str | None = Field(default=None, alias="keyPath")
    key_data: str | None = Field(default=None, alias="keyData")
    signed_identity: MatchRule = Field(
        default_factory=MatchRepoDigestOrExact, alias="signedIdentity"
    )

    @model_validator(mode="after")
    def check_key_source(self) -> SignedBy:
        if (self.key_path is None) == (self.key_data is None):
            msg = "exactly one of keyPath and keyData must be specified"
            raise ValueError(msg)
        return self

    def key_material(self) -> bytes:
        """Return the trusted PEM key material.

        Raises:
            PolicyConfigurationError: If ``key_path`` cannot be read.
        """
        if self.key_data is not None:
            return self.key_data.encode()
        try:
            return Path(self.key_path).read_bytes()  # type: ignore[arg-type]
        except OSError as exc:
            raise PolicyConfigurationError(
                f"Cannot read trusted keys from {self.key_path}: {exc}"
            ) from exc

    async def _verified_signature(
        self, image: UnparsedImage, raw_signature: bytes, env: EvaluationEnv
    ) -> Signature:
        try:
            signature = env.verifier.verify(raw_signature, self.key_material())
        except Exception as exc:
            raise PolicyRequirementError(f"Signature verification failed: {exc}") from exc

        try:
            manifest_digest = await image.manifest_digest()
        except Exception as exc:
            raise PolicyRequirementError(
                f"Cannot determine the manifest digest of {image.reference}: {exc}"
            ) from exc
        if signature.docker_manifest_digest != manifest_digest:
            raise PolicyRequirementError(
                f"Signature for digest {signature.docker_manifest_digest} does not match"
            )

        if not self.signed_identity.matches_docker_reference(
            image.reference.docker_reference(), signature.docker_reference
        ):
            raise PolicyRequirementError(
                f"Signature for identity {signature.docker_reference} is not accepted"
            )
        return signature

    async def is_signature_author_accepted(
        self, image: UnparsedImage, raw_signature: bytes, env: EvaluationEnv
    ) -> SignatureVerdict:
        try:
            signature = await self._verified_signature(image, raw_signature, env)
        except PolicyRequirementError as exc:
            logger.debug("signedBy rejected a signature of %s: %s", image.reference, exc)
            return SignatureVerdict.rejected(exc)
        return SignatureVerdict.accepted(signature)

    async def is_running_image_allowed(
        self, image: UnparsedImage, env: EvaluationEnv
    ) -> RunDecision:
        try:
            raw_signatures = await read_signatures(image)
        except SignatureFetchError as exc:
            return RunDecision.deny(exc)
        if not raw_signatures:
            return RunDecision.deny(
                PolicyRequirementError("A signature was required, but no signature exists")
            )

        rejections: list[ImagePolicyError] = []
        for raw_signature in raw_signatures:
            verdict = await self.is_signature_author_accepted(image, raw_signature, env)
            if verdict.acceptance == SignatureAcceptance.ACCEPTED:
                return RunDecision.allow()
            rejections.append(
                verdict.error
                or PolicyRequirementError("No signature was accepted by signedBy")
            )

        if len(rejections) == 1:
            return RunDecision.deny(rejections[0])
        reasons = "; ".join(str(error) for error in rejections)
        return RunDecision.deny(
            PolicyRequirementError(f"None of the signatures were accepted, reasons: {reasons}")
        )


class SignedBaseLayer(PolicyRequirement):
    """Requires a signed base layer.

    It never judges whole-image signatures; running is decided by the
    ``base_layer_check`` hook of the evaluation environment.
    """

    type: Literal["signedBaseLayer"] = "signedBaseLayer"
    base_layer_identity: MatchRule = Field(alias="baseLayerIdentity")

    async def is_signature_author_accepted(
        self, image: UnparsedImage, raw_signature: bytes, env: EvaluationEnv
    ) -> SignatureVerdict:
        return SignatureVerdict.unknown()

    async def is_running_image_allowed(
        self, image: UnparsedImage, env: EvaluationEnv
    ) -> RunDecision:
        if env.base_layer_check is None:
            return RunDecision.deny(
                PolicyRequirementError(
                    "signedBaseLayer requirements are not supported without a base layer check"
                )
            )
        try:
            return await env.base_layer_check(self, image)
        except ImagePolicyError as exc:
            return RunDecision.deny(exc)


Requirement = Annotated[
    Reject | InsecureAcceptAnything | SignedBy | SignedBaseLayer,
    Field(discriminator="type"),
]

BaseLayerCheck = Callable[[SignedBaseLayer, UnparsedImage], Awaitable[RunDecision]]
