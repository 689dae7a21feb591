"""Policy context: the stateful facade for image trust decisions.

A context owns a read-only ``Policy`` and answers two questions about an
image: which of its signatures have an accepted author, and whether it may
run. Each context serves at most one decision at a time; a concurrent or
reentrant call fails fast instead of waiting. Use separate contexts, which
may share one ``Policy``, for parallel decisions.

Usage::

    with PolicyContext(load_policy()) as pc:
        decision = await pc.is_running_image_allowed(image)
        decision.raise_if_denied()
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from sentinel_image_policy.errors import (
    ImagePolicyError,
    PolicyConfigurationError,
    PolicyContextStateError,
    PolicyRequirementError,
)
from sentinel_image_policy.image import read_signatures
from sentinel_image_policy.models import ContextState, RunDecision, SignatureAcceptance
from sentinel_image_policy.requirements import BaseLayerCheck, EvaluationEnv
from sentinel_image_policy.signature import Ed25519SignatureVerifier, SignatureVerifier

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sentinel_image_policy.image import ImageReference, UnparsedImage
    from sentinel_image_policy.models import Signature
    from sentinel_image_policy.policy import Policy
    from sentinel_image_policy.requirements import Requirement

logger = logging.getLogger(__name__)


class PolicyContext:
    """Evaluates images against a policy; non-reentrant, explicitly destroyed."""

    def __init__(
        self,
        policy: Policy,
        *,
        verifier: SignatureVerifier | None = None,
        base_layer_check: BaseLayerCheck | None = None,
    ) -> None:
        self.policy = policy
        self._verifier = verifier or Ed25519SignatureVerifier()
        self._env = EvaluationEnv(verifier=self._verifier, base_layer_check=base_layer_check)
        self._state = ContextState.READY
        self._state_lock = threading.Lock()

    @property
    def state(self) -> ContextState:
        return self._state

    def _change_state(self, expected: ContextState, new: ContextState) -> None:
        """Move from ``expected`` to ``new``, or fail leaving the state unchanged."""
        with self._state_lock:
            if self._state != expected:
                raise PolicyContextStateError(expected, self._state, new)
            self._state = new

    @contextmanager
    def _checked_out(self) -> Iterator[None]:
        self._change_state(ContextState.READY, ContextState.IN_USE)
        try:
            yield
        finally:
            self._change_state(ContextState.IN_USE, ContextState.READY)

    def destroy(self) -> None:
        """Release the context. Only valid while ready; the context is unusable afterwards."""
        self._change_state(ContextState.READY, ContextState.DESTROYED)
        self._verifier.close()

    def __enter__(self) -> PolicyContext:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.destroy()

    def requirements_for_image_ref(self, ref: ImageReference) -> list[Requirement]:
        """Return the policy requirements that apply to ``ref``.

        Raises:
            PolicyConfigurationError: If ``ref`` has no policy identity.
        """
        try:
            identity = ref.policy_configuration_identity()
        except ValueError as exc:
            raise PolicyConfigurationError(
                f"Can not determine policy identity of image {ref}: {exc}"
            ) from exc
        if not identity:
            raise PolicyConfigurationError(
                f"Can not determine policy for image {ref} without a Docker reference identity"
            )
        return self.policy.requirements_for_scope(identity, ref.policy_configuration_namespaces())

    # ── Signatures with accepted author ──────────────────────────

    async def get_signatures_with_accepted_author(self, image: UnparsedImage) -> list[Signature]:
        """Return the signatures of ``image`` whose author the policy accepts.

        A signature is kept when at least one requirement accepts it and
        none rejects it. Order follows the image's raw signatures. No
        accepted signature is an empty list, not an error.

        Raises:
            PolicyContextStateError: If the context is in use or destroyed.
            PolicyConfigurationError: If the image has no policy identity.
            SignatureFetchError: If the signatures cannot be read.
        """
        with self._checked_out():
            return await self._accepted_signatures(image)

    async def _accepted_signatures(self, image: UnparsedImage) -> list[Signature]:
        requirements = self.requirements_for_image_ref(image.reference)
        raw_signatures = await read_signatures(image)
        if not requirements:
            return []

        accepted: list[Signature] = []
        for raw_signature in raw_signatures:
            signature = await self._signature_with_accepted_author(
                image, raw_signature, requirements
            )
            if signature is not None:
                accepted.append(signature)

        logger.debug(
            "%s: %d of %d signatures have an accepted author",
            image.reference,
            len(accepted),
            len(raw_signatures),
        )
        return accepted

    async def _signature_with_accepted_author(
        self,
        image: UnparsedImage,
        raw_signature: bytes,
        requirements: list[Requirement],
    ) -> Signature | None:
        # Any rejection excludes the signature; otherwise the first accepted parse wins.
        signature: Signature | None = None
        for requirement in requirements:
            verdict = await requirement.is_signature_author_accepted(
                image, raw_signature, self._env
            )
            if verdict.acceptance == SignatureAcceptance.REJECTED:
                logger.debug(
                    "Signature of %s rejected by %s: %s",
                    image.reference,
                    requirement.type,
                    verdict.error,
                )
                return None
            if verdict.acceptance == SignatureAcceptance.ACCEPTED and signature is None:
                signature = verdict.signature
        return signature

    # ── Running permission ───────────────────────────────────────

    async def is_running_image_allowed(self, image: UnparsedImage) -> RunDecision:
        """Decide whether ``image`` may run.

        Every requirement of the applicable scope must allow it; the first
        denial is returned and later requirements are not evaluated. All
        failures, including misuse of the context, are reported as a
        denial carrying the error.
        """
        try:
            with self._checked_out():
                decision = await self._running_decision(image)
        except ImagePolicyError as exc:
            logger.info("Running image %s denied: %s", image.reference, exc)
            return RunDecision.deny(exc)

        if decision.allowed:
            logger.debug("Running image %s allowed", image.reference)
        else:
            logger.info("Running image %s denied: %s", image.reference, decision.error)
        return decision

    async def _running_decision(self, image: UnparsedImage) -> RunDecision:
        requirements = self.requirements_for_image_ref(image.reference)
        if not requirements:
            return RunDecision.deny(
                PolicyRequirementError("List of verification policy requirements must not be empty")
            )

        for requirement in requirements:
            decision = await requirement.is_running_image_allowed(image, self._env)
            if not decision.allowed:
                return decision
        return RunDecision.allow()
