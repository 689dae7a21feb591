"""Interfaces the policy engine expects from image collaborators.

Concrete transports (``DirectoryImage``, ``LookasideImage``) satisfy these
protocols via duck typing; the engine depends only on the protocols.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from sentinel_image_policy.errors import SignatureFetchError

if TYPE_CHECKING:
    from sentinel_image_policy.reference import DockerReference

logger = logging.getLogger(__name__)


@runtime_checkable
class ImageReference(Protocol):
    """Identity of an image for policy scope lookup."""

    def docker_reference(self) -> DockerReference | None:
        """The Docker reference the image was addressed by, if any."""
        ...

    def policy_configuration_identity(self) -> str:
        """Full scope identity, e.g. ``docker.io/library/busybox:latest``.

        An empty string means the image has no identity usable for policy
        decisions.
        """
        ...

    def policy_configuration_namespaces(self) -> list[str]:
        """Enclosing scopes, most specific first."""
        ...


@runtime_checkable
class UnparsedImage(Protocol):
    """An image whose signatures have not been evaluated yet."""

    @property
    def reference(self) -> ImageReference: ...

    async def manifest_digest(self) -> str:
        """Digest of the image manifest, e.g. ``sha256:<hex>``."""
        ...

    async def signatures(self) -> list[bytes]:
        """Raw signature blobs attached to the image, in storage order."""
        ...


async def read_signatures(image: UnparsedImage) -> list[bytes]:
    """Fetch the raw signatures of ``image``.

    Raises:
        SignatureFetchError: Wrapping any failure of the image collaborator.
    """
    try:
        return await image.signatures()
    except SignatureFetchError:
        raise
    except Exception as exc:
        logger.warning("Reading signatures of %s failed: %s", image.reference, exc)
        raise SignatureFetchError(f"Error reading signatures of {image.reference}: {exc}") from exc
