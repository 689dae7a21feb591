"""Rules matching a signature's claimed identity against the image reference."""

from __future__ import annotations

import logging
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from sentinel_image_policy.errors import InvalidReferenceError
from sentinel_image_policy.reference import DockerReference

logger = logging.getLogger(__name__)


def _parse_pair(
    image_ref: DockerReference | None, signature_docker_reference: str
) -> tuple[DockerReference, DockerReference] | None:
    if image_ref is None:
        return None
    try:
        signature_ref = DockerReference.parse(signature_docker_reference)
    except InvalidReferenceError as exc:
        logger.debug("Unparseable signed reference %r: %s", signature_docker_reference, exc)
        return None
    return image_ref, signature_ref


class MatchExact(BaseModel):
    """The signed reference must equal the image reference, tag or digest included."""

    model_config = ConfigDict(frozen=True)

    type: Literal["matchExact"] = "matchExact"

    def matches_docker_reference(
        self, image_ref: DockerReference | None, signature_docker_reference: str
    ) -> bool:
        pair = _parse_pair(image_ref, signature_docker_reference)
        if pair is None:
            return False
        intended, signed = pair
        # Default tags are never added here; both sides must already be explicit.
        if intended.is_name_only or signed.is_name_only:
            return False
        return str(signed) == str(intended)


class MatchRepoDigestOrExact(BaseModel):
    """Exact match for tagged images, repository match for digested images.

    For a digested image the digest itself is checked against the signed
    manifest digest by ``SignedBy``, so only the repository is compared here.
    """

    model_config = ConfigDict(frozen=True)

    type: Literal["matchRepoDigestOrExact"] = "matchRepoDigestOrExact"

    def matches_docker_reference(
        self, image_ref: DockerReference | None, signature_docker_reference: str
    ) -> bool:
        pair = _parse_pair(image_ref, signature_docker_reference)
        if pair is None:
            return False
        intended, signed = pair
        if intended.tag is not None:
            return str(signed) == str(intended)
        if intended.digest is not None:
            return signed.name == intended.name
        return False


class MatchRepository(BaseModel):
    """Same repository; tag and digest are ignored."""

    model_config = ConfigDict(frozen=True)

    type: Literal["matchRepository"] = "matchRepository"

    def matches_docker_reference(
        self, image_ref: DockerReference | None, signature_docker_reference: str
    ) -> bool:
        pair = _parse_pair(image_ref, signature_docker_reference)
        if pair is None:
            return False
        intended, signed = pair
        return signed.name == intended.name


MatchRule = Annotated[
    MatchExact | MatchRepoDigestOrExact | MatchRepository,
    Field(discriminator="type"),
]
