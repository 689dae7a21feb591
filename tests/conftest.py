"""Shared fixtures: Ed25519 keys and on-disk images."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Callable
from pathlib import Path

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from sentinel_image_policy.directory import DirectoryImage
from sentinel_image_policy.reference import DockerImageReference

IMAGE_REF = "registry.example/testing/manifest:latest"

MANIFEST = json.dumps(
    {
        "schemaVersion": 2,
        "mediaType": "application/vnd.oci.image.manifest.v1+json",
        "config": {
            "mediaType": "application/vnd.oci.image.config.v1+json",
            "digest": "sha256:" + "0" * 64,
            "size": 2,
        },
        "layers": [],
    },
    sort_keys=True,
).encode()


def public_key_pem(key: Ed25519PrivateKey) -> str:
    return (
        key.public_key()
        .public_bytes(
            serialization.Encoding.PEM,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode()
    )


@pytest.fixture
def signing_key() -> Ed25519PrivateKey:
    return Ed25519PrivateKey.generate()


@pytest.fixture
def untrusted_key() -> Ed25519PrivateKey:
    return Ed25519PrivateKey.generate()


@pytest.fixture
def trusted_pem(signing_key: Ed25519PrivateKey) -> str:
    return public_key_pem(signing_key)


@pytest.fixture
def manifest_digest() -> str:
    return "sha256:" + hashlib.sha256(MANIFEST).hexdigest()


@pytest.fixture
def image_dir(tmp_path: Path) -> Path:
    root = tmp_path / "image"
    root.mkdir()
    (root / "manifest.json").write_bytes(MANIFEST)
    return root


@pytest.fixture
def make_image(image_dir: Path) -> Callable[..., DirectoryImage]:
    """Build a DirectoryImage over ``image_dir`` holding the given signatures."""

    def _make(signatures: list[bytes] | None = None, reference: str = IMAGE_REF) -> DirectoryImage:
        image = DirectoryImage(image_dir, DockerImageReference.parse(reference))
        image.put_signatures(signatures or [])
        return image

    return _make


@pytest.fixture
def untrusted_pem(untrusted_key: Ed25519PrivateKey) -> str:
    return public_key_pem(untrusted_key)
