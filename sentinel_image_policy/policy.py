"""Policy documents and scope lookup.

A policy maps scopes to ordered requirement lists::

    {
      "default": [{"type": "reject"}],
      "specific": {
        "registry.example/team": [
          {"type": "signedBy", "keyType": "Ed25519Keys", "keyPath": "/etc/keys/team.pub"}
        ],
        "docker.io/library/busybox:latest": [{"type": "insecureAcceptAnything"}]
      }
    }

The most specific scope wins: the full image identity first, then each
enclosing namespace, then ``default``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from sentinel_image_policy.config import settings
from sentinel_image_policy.errors import PolicyConfigurationError
from sentinel_image_policy.requirements import Requirement

logger = logging.getLogger(__name__)


class Policy(BaseModel):
    """A signing policy. Read-only once constructed."""

    model_config = ConfigDict(frozen=True)

    default: list[Requirement] = Field(min_length=1)
    specific: dict[str, list[Requirement]] = Field(default_factory=dict)

    def requirements_for_scope(
        self, identity: str, namespaces: Sequence[str]
    ) -> list[Requirement]:
        """Return the requirement list governing ``identity``.

        The returned list is the one stored in the policy, not a copy;
        callers must not modify it.

        Args:
            identity: Full image identity, e.g. ``registry.example/repo:tag``.
            namespaces: Enclosing scopes, most specific first.

        Raises:
            PolicyConfigurationError: If ``identity`` is empty.
        """
        if not identity:
            raise PolicyConfigurationError(
                "Can not determine policy for an image without a policy configuration identity"
            )

        requirements = self.specific.get(identity)
        if requirements is not None:
            logger.debug("Using specific policy section %s", identity)
            return requirements

        for namespace in namespaces:
            requirements = self.specific.get(namespace)
            if requirements is not None:
                logger.debug("Using specific policy section %s for %s", namespace, identity)
                return requirements

        logger.debug("Using default policy section for %s", identity)
        return self.default

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


def load_policy(path: str | Path | None = None) -> Policy:
    """Load a policy document from a JSON or YAML file.

    Defaults to ``settings.policy_path``. Files ending in ``.yaml``/``.yml``
    are parsed as YAML, everything else as JSON.

    Raises:
        PolicyConfigurationError: If the file is unreadable or invalid.
    """
    policy_path = Path(path if path is not None else settings.policy_path)
    try:
        text = policy_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise PolicyConfigurationError(f"Cannot read policy {policy_path}: {exc}") from exc

    try:
        if policy_path.suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
        policy = Policy.model_validate(data)
    except (json.JSONDecodeError, yaml.YAMLError, ValidationError) as exc:
        raise PolicyConfigurationError(f"Invalid policy in {policy_path}: {exc}") from exc

    logger.info(
        "Loaded policy %s with %d specific scopes", policy_path, len(policy.specific)
    )
    return policy
