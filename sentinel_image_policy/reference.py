"""Docker image references and their policy configuration scopes.

Parsing follows the normalized form used by Docker tooling: a name without
a registry host is placed on ``docker.io``, and single-component Docker Hub
names gain the ``library/`` prefix::

    >>> str(DockerReference.parse("busybox:1.36"))
    'docker.io/library/busybox:1.36'

The policy configuration identity of a reference is its full name plus tag
or digest; its namespaces are the full name followed by every parent path,
ending with the bare registry host.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace

from sentinel_image_policy.errors import InvalidReferenceError

DEFAULT_DOMAIN = "docker.io"
LEGACY_DEFAULT_DOMAIN = "index.docker.io"
OFFICIAL_REPO_PREFIX = "library"
DEFAULT_TAG = "latest"
NAME_TOTAL_LENGTH_MAX = 255

_DOMAIN_COMPONENT = r"(?:[a-zA-Z0-9]|[a-zA-Z0-9][a-zA-Z0-9-]*[a-zA-Z0-9])"
_DOMAIN_RE = re.compile(rf"^{_DOMAIN_COMPONENT}(?:\.{_DOMAIN_COMPONENT})*(?::[0-9]+)?$")
_PATH_COMPONENT_RE = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$")
_TAG_RE = re.compile(r"^\w[\w.-]{0,127}$", re.ASCII)
_DIGEST_RE = re.compile(r"^[A-Za-z][A-Za-z0-9]*(?:[-_+.][A-Za-z][A-Za-z0-9]*)*:[0-9a-fA-F]{32,}$")
_HEX64_RE = re.compile(r"^[a-f0-9]{64}$")


def _split_domain(name: str) -> tuple[str, str]:
    slash = name.find("/")
    head = name[:slash]
    if slash == -1 or ("." not in head and ":" not in head and head != "localhost"):
        domain, remainder = DEFAULT_DOMAIN, name
    else:
        domain, remainder = head, name[slash + 1 :]
    if domain == LEGACY_DEFAULT_DOMAIN:
        domain = DEFAULT_DOMAIN
    if domain == DEFAULT_DOMAIN and "/" not in remainder:
        remainder = f"{OFFICIAL_REPO_PREFIX}/{remainder}"
    return domain, remainder


@dataclass(frozen=True)
class DockerReference:
    """A normalized ``domain/path[:tag][@digest]`` reference."""

    domain: str
    path: str
    tag: str | None = None
    digest: str | None = None

    @classmethod
    def parse(cls, text: str) -> DockerReference:
        """Parse and normalize a Docker reference.

        Raises:
            InvalidReferenceError: If ``text`` is not a valid reference.
        """
        if not text:
            raise InvalidReferenceError("repository name must have at least one component")
        if _HEX64_RE.match(text):
            raise InvalidReferenceError(
                f"invalid repository name ({text}), cannot specify 64-byte hexadecimal strings"
            )

        remainder = text
        digest: str | None = None
        if "@" in remainder:
            remainder, digest = remainder.split("@", 1)
            if not _DIGEST_RE.match(digest):
                raise InvalidReferenceError(f"invalid digest format in {text!r}")

        tag: str | None = None
        colon = remainder.rfind(":")
        if colon > remainder.rfind("/"):
            remainder, tag = remainder[:colon], remainder[colon + 1 :]
            if not _TAG_RE.match(tag):
                raise InvalidReferenceError(f"invalid tag format in {text!r}")

        if not remainder:
            raise InvalidReferenceError(f"invalid reference format: {text!r}")
        domain, path = _split_domain(remainder)
        if not _DOMAIN_RE.match(domain):
            raise InvalidReferenceError(f"invalid registry host {domain!r} in {text!r}")
        if not all(_PATH_COMPONENT_RE.match(part) for part in path.split("/")):
            raise InvalidReferenceError(
                f"invalid reference format: repository name must be lowercase ({text!r})"
            )
        if len(domain) + 1 + len(path) > NAME_TOTAL_LENGTH_MAX:
            raise InvalidReferenceError(
                f"repository name must not be more than {NAME_TOTAL_LENGTH_MAX} characters"
            )
        return cls(domain=domain, path=path, tag=tag, digest=digest)

    @property
    def name(self) -> str:
        """Repository name including the registry host, without tag or digest."""
        return f"{self.domain}/{self.path}"

    @property
    def is_name_only(self) -> bool:
        return self.tag is None and self.digest is None

    def __str__(self) -> str:
        text = self.name
        if self.tag is not None:
            text += f":{self.tag}"
        if self.digest is not None:
            text += f"@{self.digest}"
        return text


def reference_identity(ref: DockerReference) -> str:
    """Return the policy configuration identity of a tagged or digested reference.

    Raises:
        ValueError: If the reference has both a tag and a digest, or neither.
    """
    if ref.tag is not None and ref.digest is not None:
        raise ValueError(f"Unexpected Docker reference {ref} with both a tag and a digest")
    if ref.tag is not None:
        return f"{ref.name}:{ref.tag}"
    if ref.digest is not None:
        return f"{ref.name}@{ref.digest}"
    raise ValueError(f"Docker reference {ref} has neither a tag nor a digest")


def reference_namespaces(ref: DockerReference) -> list[str]:
    """Return the enclosing scopes of a reference, most specific first."""
    namespaces: list[str] = []
    name = ref.name
    while True:
        namespaces.append(name)
        slash = name.rfind("/")
        if slash == -1:
            break
        name = name[:slash]
    return namespaces


class DockerImageReference:
    """Image reference for images addressed by a Docker reference.

    A ``None`` reference models an image that has no registry identity at
    all; policy decisions on such an image fail.
    """

    def __init__(self, ref: DockerReference | None) -> None:
        if ref is not None and ref.tag is not None and ref.digest is not None:
            raise InvalidReferenceError(
                f"Docker references with both a tag and digest are not supported: {ref}"
            )
        if ref is not None and ref.is_name_only:
            raise InvalidReferenceError(
                f"Docker reference {ref} needs a tag or digest; use parse() to default to :{DEFAULT_TAG}"
            )
        self._ref = ref

    @classmethod
    def parse(cls, text: str) -> DockerImageReference:
        """Parse ``text``, adding the ``latest`` tag to name-only references."""
        ref = DockerReference.parse(text)
        if ref.is_name_only:
            ref = replace(ref, tag=DEFAULT_TAG)
        return cls(ref)

    def docker_reference(self) -> DockerReference | None:
        return self._ref

    def policy_configuration_identity(self) -> str:
        if self._ref is None:
            return ""
        return reference_identity(self._ref)

    def policy_configuration_namespaces(self) -> list[str]:
        if self._ref is None:
            return []
        return reference_namespaces(self._ref)

    def __str__(self) -> str:
        if self._ref is None:
            return "docker:<no reference>"
        return f"docker://{self._ref}"

    def __repr__(self) -> str:
        return f"DockerImageReference({str(self._ref) if self._ref else None!r})"
