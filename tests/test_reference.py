"""Tests for Docker reference parsing and policy scopes."""

import pytest
from sentinel_image_policy.errors import InvalidReferenceError
from sentinel_image_policy.reference import (
    DockerImageReference,
    DockerReference,
    reference_identity,
    reference_namespaces,
)

DIGEST = "sha256:" + "a" * 64

# ── Parsing ──────────────────────────────────────────────────────


def test_short_name_is_normalized_to_docker_hub() -> None:
    ref = DockerReference.parse("busybox")
    assert ref.domain == "docker.io"
    assert ref.path == "library/busybox"
    assert ref.tag is None
    assert ref.digest is None
    assert ref.is_name_only is True
    assert str(ref) == "docker.io/library/busybox"


def test_legacy_docker_hub_domain() -> None:
    ref = DockerReference.parse("index.docker.io/team/app:1.0")
    assert ref.name == "docker.io/team/app"
    assert ref.tag == "1.0"


def test_registry_with_port_and_digest() -> None:
    ref = DockerReference.parse(f"localhost:5000/ns/app@{DIGEST}")
    assert ref.domain == "localhost:5000"
    assert ref.path == "ns/app"
    assert ref.tag is None
    assert ref.digest == DIGEST
    assert str(ref) == f"localhost:5000/ns/app@{DIGEST}"


def test_tag_and_digest_together() -> None:
    ref = DockerReference.parse(f"registry.example/app:v2@{DIGEST}")
    assert ref.tag == "v2"
    assert ref.digest == DIGEST


def test_invalid_references() -> None:
    for text in ("", "UPPER/case", "a" * 64, "app:bad tag", "app@sha256:xyz", "registry.example/:tag"):
        with pytest.raises(InvalidReferenceError):
            DockerReference.parse(text)


def test_invalid_reference_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        DockerReference.parse("Not/Valid")


# ── Identity and namespaces ──────────────────────────────────────


def test_identity_of_tagged_and_digested_refs() -> None:
    assert reference_identity(DockerReference.parse("busybox:1.36")) == "docker.io/library/busybox:1.36"
    assert (
        reference_identity(DockerReference.parse(f"registry.example/app@{DIGEST}"))
        == f"registry.example/app@{DIGEST}"
    )


def test_identity_requires_exactly_one_of_tag_and_digest() -> None:
    with pytest.raises(ValueError):
        reference_identity(DockerReference.parse("busybox"))
    with pytest.raises(ValueError):
        reference_identity(DockerReference.parse(f"busybox:1@{DIGEST}"))


def test_namespaces_walk_up_to_the_registry() -> None:
    ref = DockerReference.parse("deep.com/n1/n2/n3/repo:tag")
    assert reference_namespaces(ref) == [
        "deep.com/n1/n2/n3/repo",
        "deep.com/n1/n2/n3",
        "deep.com/n1/n2",
        "deep.com/n1",
        "deep.com",
    ]


# ── DockerImageReference ─────────────────────────────────────────


def test_image_reference_adds_default_tag() -> None:
    ref = DockerImageReference.parse("registry.example/app")
    assert ref.policy_configuration_identity() == "registry.example/app:latest"
    assert ref.policy_configuration_namespaces() == ["registry.example/app", "registry.example"]
    assert str(ref) == "docker://registry.example/app:latest"


def test_image_reference_keeps_digest() -> None:
    ref = DockerImageReference.parse(f"registry.example/app@{DIGEST}")
    docker_ref = ref.docker_reference()
    assert docker_ref is not None
    assert docker_ref.tag is None
    assert ref.policy_configuration_identity() == f"registry.example/app@{DIGEST}"


def test_image_reference_rejects_tag_and_digest() -> None:
    with pytest.raises(InvalidReferenceError):
        DockerImageReference.parse(f"registry.example/app:v1@{DIGEST}")


def test_image_reference_needs_tag_or_digest() -> None:
    with pytest.raises(InvalidReferenceError, match="needs a tag or digest"):
        DockerImageReference(DockerReference.parse("registry.example/app"))


def test_image_reference_without_docker_reference() -> None:
    ref = DockerImageReference(None)
    assert ref.docker_reference() is None
    assert ref.policy_configuration_identity() == ""
    assert ref.policy_configuration_namespaces() == []
    assert str(ref) == "docker:<no reference>"
