"""Simple signing format: claims, Ed25519 verification and signing.

A raw signature blob is a JSON envelope::

    {"payload": "<base64 claims JSON>", "signature": "<base64 Ed25519 signature>"}

The signature covers the exact payload bytes. The payload carries the
claims consumed by the policy engine::

    {
      "critical": {
        "type": "atomic container signature",
        "image": {"docker-manifest-digest": "sha256:..."},
        "identity": {"docker-reference": "registry.example/repo:tag"}
      },
      "optional": {"creator": "...", "timestamp": 1700000000}
    }
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import re
import time
from typing import TYPE_CHECKING, Literal

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from sentinel_image_policy.errors import SignatureVerificationError
from sentinel_image_policy.models import Signature

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

logger = logging.getLogger(__name__)

SIGNATURE_TYPE = "atomic container signature"
DEFAULT_CREATOR = "sentinel-image-policy"

_PEM_PUBLIC_KEY_RE = re.compile(
    rb"-----BEGIN PUBLIC KEY-----.+?-----END PUBLIC KEY-----", re.DOTALL
)


# ── Claims ───────────────────────────────────────────────────────


class ImageClaim(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    docker_manifest_digest: str = Field(alias="docker-manifest-digest", min_length=1)


class IdentityClaim(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    docker_reference: str = Field(alias="docker-reference", min_length=1)


class CriticalClaims(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["atomic container signature"] = SIGNATURE_TYPE
    image: ImageClaim
    identity: IdentityClaim


class OptionalClaims(BaseModel):
    model_config = ConfigDict(frozen=True)

    creator: str | None = None
    timestamp: int | None = None


class SignatureClaims(BaseModel):
    """The signed payload of a simple-signing signature."""

    model_config = ConfigDict(frozen=True)

    critical: CriticalClaims
    optional: OptionalClaims = Field(default_factory=OptionalClaims)

    def to_signature(self) -> Signature:
        return Signature(
            docker_manifest_digest=self.critical.image.docker_manifest_digest,
            docker_reference=self.critical.identity.docker_reference,
        )


# ── Keys and envelopes ───────────────────────────────────────────


def load_ed25519_public_keys(key_material: bytes) -> list[Ed25519PublicKey]:
    """Load every PEM ``PUBLIC KEY`` block in ``key_material``.

    Raises:
        SignatureVerificationError: If no usable Ed25519 key is present.
    """
    blocks = _PEM_PUBLIC_KEY_RE.findall(key_material)
    if not blocks:
        raise SignatureVerificationError("No PEM public keys found in the trusted key material")

    keys: list[Ed25519PublicKey] = []
    for block in blocks:
        try:
            key = serialization.load_pem_public_key(block)
        except (ValueError, UnsupportedAlgorithm) as exc:
            raise SignatureVerificationError(f"Invalid trusted public key: {exc}") from exc
        if not isinstance(key, Ed25519PublicKey):
            raise SignatureVerificationError(
                f"Unsupported trusted key type {type(key).__name__}, expected Ed25519"
            )
        keys.append(key)
    return keys


def _open_envelope(raw_signature: bytes) -> tuple[bytes, bytes]:
    try:
        envelope = json.loads(raw_signature)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise SignatureVerificationError("Signature envelope is not valid JSON") from exc
    if not isinstance(envelope, dict):
        raise SignatureVerificationError("Signature envelope must be a JSON object")

    payload_b64 = envelope.get("payload")
    signature_b64 = envelope.get("signature")
    if not isinstance(payload_b64, str) or not isinstance(signature_b64, str):
        raise SignatureVerificationError("Signature envelope is missing payload or signature")
    try:
        payload = base64.b64decode(payload_b64, validate=True)
        signature = base64.b64decode(signature_b64, validate=True)
    except binascii.Error as exc:
        raise SignatureVerificationError("Signature envelope contains invalid base64") from exc
    return payload, signature


# ── Verification ─────────────────────────────────────────────────


class SignatureVerifier:
    """Base class for signature verification mechanisms.

    Subclass and override ``verify`` to support another key type.
    """

    def verify(self, raw_signature: bytes, key_material: bytes) -> Signature:
        """Verify ``raw_signature`` against the trusted keys and return its claims.

        Raises:
            SignatureVerificationError: If the signature is malformed, made
                by an untrusted key, or carries invalid claims.
        """
        raise NotImplementedError

    def close(self) -> None:
        """Release resources held by the verifier."""


class Ed25519SignatureVerifier(SignatureVerifier):
    """Verifies simple-signing envelopes signed with Ed25519 keys.

    Parsed keys are cached per key material until ``close``.
    """

    def __init__(self) -> None:
        self._keys: dict[bytes, list[Ed25519PublicKey]] = {}

    def trusted_keys(self, key_material: bytes) -> list[Ed25519PublicKey]:
        keys = self._keys.get(key_material)
        if keys is None:
            keys = load_ed25519_public_keys(key_material)
            self._keys[key_material] = keys
        return keys

    def verify(self, raw_signature: bytes, key_material: bytes) -> Signature:
        keys = self.trusted_keys(key_material)
        payload, signature = _open_envelope(raw_signature)

        for key in keys:
            try:
                key.verify(signature, payload)
            except InvalidSignature:
                continue
            break
        else:
            raise SignatureVerificationError(
                f"Signature is not made by any of the {len(keys)} trusted keys"
            )

        try:
            claims = SignatureClaims.model_validate_json(payload)
        except ValidationError as exc:
            raise SignatureVerificationError(
                f"Invalid signature payload ({exc.error_count()} validation errors)"
            ) from exc
        return claims.to_signature()

    def close(self) -> None:
        logger.debug("Dropping %d cached trusted key sets", len(self._keys))
        self._keys.clear()


# ── Signing ──────────────────────────────────────────────────────


def sign_docker_manifest(
    manifest_digest: str,
    docker_reference: str,
    private_key: Ed25519PrivateKey,
    *,
    creator: str = DEFAULT_CREATOR,
    timestamp: int | None = None,
) -> bytes:
    """Create a raw signature blob claiming ``docker_reference`` for the manifest."""
    claims = SignatureClaims(
        critical=CriticalClaims(
            image=ImageClaim(docker_manifest_digest=manifest_digest),
            identity=IdentityClaim(docker_reference=docker_reference),
        ),
        optional=OptionalClaims(
            creator=creator,
            timestamp=int(time.time()) if timestamp is None else timestamp,
        ),
    )
    payload = claims.model_dump_json(by_alias=True).encode()
    envelope = {
        "payload": base64.b64encode(payload).decode("ascii"),
        "signature": base64.b64encode(private_key.sign(payload)).decode("ascii"),
    }
    return json.dumps(envelope, sort_keys=True).encode()
