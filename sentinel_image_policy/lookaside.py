"""Lookaside signature store client.

Signatures of a manifest live on a plain HTTP server next to the registry::

    {base_url}/{repository path}@{algorithm}={hex}/signature-{n}

with ``n`` counting from 1. The first 404 ends the list.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from sentinel_image_policy.config import Settings, settings
from sentinel_image_policy.errors import PolicyConfigurationError, SignatureFetchError
from sentinel_image_policy.retry import with_retry

if TYPE_CHECKING:
    from sentinel_image_policy.image import ImageReference
    from sentinel_image_policy.reference import DockerReference

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIGNATURES = 128


class LookasideSignatureStore:
    """Async client reading signatures from a lookaside store."""

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        max_attempts: int = 3,
        retry_base_delay: float = 0.5,
        retry_max_delay: float = 8.0,
        max_signatures: int = DEFAULT_MAX_SIGNATURES,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        self._max_attempts = max_attempts
        self._retry_base_delay = retry_base_delay
        self._retry_max_delay = retry_max_delay
        self._max_signatures = max_signatures

    @classmethod
    def from_settings(cls, config: Settings = settings) -> LookasideSignatureStore:
        """Build a store from ``IMAGE_POLICY_LOOKASIDE_*`` settings."""
        if not config.lookaside_url:
            raise PolicyConfigurationError("IMAGE_POLICY_LOOKASIDE_URL is not set")
        return cls(
            config.lookaside_url,
            timeout=config.lookaside_timeout_seconds,
            max_attempts=config.lookaside_max_attempts,
            retry_base_delay=config.lookaside_retry_base_delay_seconds,
            retry_max_delay=config.lookaside_retry_max_delay_seconds,
        )

    async def close(self) -> None:
        """Close the HTTP client if this store created it."""
        if self._owns_client:
            await self._client.aclose()

    def signature_url(self, ref: DockerReference, manifest_digest: str, index: int) -> str:
        """URL of the ``index``-th signature (0-based) of ``manifest_digest``."""
        algorithm, _, hex_digest = manifest_digest.partition(":")
        if not algorithm or not hex_digest:
            msg = f"Invalid manifest digest {manifest_digest!r}"
            raise ValueError(msg)
        return f"{self._base_url}/{ref.path}@{algorithm}={hex_digest}/signature-{index + 1}"

    async def get_signatures(self, ref: DockerReference, manifest_digest: str) -> list[bytes]:
        """Download all signatures of ``manifest_digest`` in ``ref``'s repository.

        Raises:
            SignatureFetchError: On HTTP errors other than the terminating 404,
                or when retries of transport errors are exhausted.
        """
        signatures: list[bytes] = []
        while True:
            url = self.signature_url(ref, manifest_digest, len(signatures))
            try:
                resp = await with_retry(
                    self._client.get,
                    url,
                    max_attempts=self._max_attempts,
                    base_delay=self._retry_base_delay,
                    max_delay=self._retry_max_delay,
                )
                if resp.status_code == httpx.codes.NOT_FOUND:
                    break
                resp.raise_for_status()
            except httpx.HTTPStatusError as exc:
                logger.error("Lookaside store returned %s for %s", exc.response.status_code, url)
                raise SignatureFetchError(
                    f"Error reading signature from {url}: HTTP {exc.response.status_code}"
                ) from exc
            except httpx.TransportError as exc:
                logger.warning("Lookaside store not reachable at %s: %s", url, exc)
                raise SignatureFetchError(f"Error reading signature from {url}: {exc}") from exc
            # A full list must still end with a 404 one index past the cap.
            if len(signatures) == self._max_signatures:
                raise SignatureFetchError(
                    f"More than {self._max_signatures} signatures for {ref.name}@{manifest_digest}"
                )
            signatures.append(resp.content)

        logger.debug("Read %d signatures for %s@%s", len(signatures), ref.name, manifest_digest)
        return signatures


class LookasideImage:
    """An image with a known manifest digest whose signatures live in a lookaside store."""

    def __init__(
        self,
        reference: ImageReference,
        manifest_digest: str,
        store: LookasideSignatureStore,
    ) -> None:
        self._reference = reference
        self._manifest_digest = manifest_digest
        self._store = store

    @property
    def reference(self) -> ImageReference:
        return self._reference

    async def manifest_digest(self) -> str:
        return self._manifest_digest

    async def signatures(self) -> list[bytes]:
        ref = self._reference.docker_reference()
        if ref is None:
            raise SignatureFetchError(f"Image {self._reference} has no Docker reference")
        return await self._store.get_signatures(ref, self._manifest_digest)
