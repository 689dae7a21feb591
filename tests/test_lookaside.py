"""Tests for the lookaside signature store client (mocked HTTP)."""

from __future__ import annotations

import httpx
import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from sentinel_image_policy.config import Settings
from sentinel_image_policy.context import PolicyContext
from sentinel_image_policy.errors import PolicyConfigurationError, SignatureFetchError
from sentinel_image_policy.lookaside import LookasideImage, LookasideSignatureStore
from sentinel_image_policy.policy import Policy
from sentinel_image_policy.reference import DockerImageReference, DockerReference
from sentinel_image_policy.signature import sign_docker_manifest

BASE = "https://sigstore.example/sigs"
REF = DockerReference.parse("registry.example/team/app:1.0")
DIGEST = "sha256:" + "1" * 64
PREFIX = f"/sigs/team/app@sha256={'1' * 64}"


def make_store(handler, **kwargs) -> LookasideSignatureStore:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LookasideSignatureStore(BASE + "/", client=client, retry_base_delay=0.0, **kwargs)


def serve(blobs: dict[str, bytes]):
    requested: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request.url.path)
        blob = blobs.get(request.url.path)
        if blob is None:
            return httpx.Response(404)
        return httpx.Response(200, content=blob)

    return handler, requested


def test_signature_url() -> None:
    store = LookasideSignatureStore(BASE)
    assert store.signature_url(REF, DIGEST, 0) == f"{BASE}/team/app@sha256={'1' * 64}/signature-1"
    with pytest.raises(ValueError):
        store.signature_url(REF, "nodigest", 0)


@pytest.mark.asyncio
async def test_get_signatures_until_not_found() -> None:
    handler, requested = serve(
        {f"{PREFIX}/signature-1": b"first", f"{PREFIX}/signature-2": b"second"}
    )
    store = make_store(handler)
    assert await store.get_signatures(REF, DIGEST) == [b"first", b"second"]
    assert requested == [
        f"{PREFIX}/signature-1",
        f"{PREFIX}/signature-2",
        f"{PREFIX}/signature-3",
    ]


@pytest.mark.asyncio
async def test_no_signatures() -> None:
    handler, _ = serve({})
    assert await make_store(handler).get_signatures(REF, DIGEST) == []


@pytest.mark.asyncio
async def test_server_error_is_fetch_error() -> None:
    store = make_store(lambda request: httpx.Response(500))
    with pytest.raises(SignatureFetchError, match="HTTP 500"):
        await store.get_signatures(REF, DIGEST)


@pytest.mark.asyncio
async def test_transport_errors_are_retried() -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        if attempts < 3:
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(404)

    store = make_store(handler, max_attempts=3)
    assert await store.get_signatures(REF, DIGEST) == []
    assert attempts == 3


@pytest.mark.asyncio
async def test_transport_errors_exhaust_retries() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    store = make_store(handler, max_attempts=2)
    with pytest.raises(SignatureFetchError, match="refused"):
        await store.get_signatures(REF, DIGEST)


@pytest.mark.asyncio
async def test_too_many_signatures() -> None:
    store = make_store(lambda request: httpx.Response(200, content=b"sig"), max_signatures=3)
    with pytest.raises(SignatureFetchError, match="More than 3 signatures"):
        await store.get_signatures(REF, DIGEST)


@pytest.mark.asyncio
async def test_exactly_max_signatures() -> None:
    handler, requested = serve(
        {f"{PREFIX}/signature-1": b"first", f"{PREFIX}/signature-2": b"second"}
    )
    store = make_store(handler, max_signatures=2)
    assert await store.get_signatures(REF, DIGEST) == [b"first", b"second"]
    assert requested[-1] == f"{PREFIX}/signature-3"


def test_from_settings() -> None:
    with pytest.raises(PolicyConfigurationError):
        LookasideSignatureStore.from_settings(Settings(lookaside_url=None))
    store = LookasideSignatureStore.from_settings(Settings(lookaside_url=BASE))
    assert store.signature_url(REF, DIGEST, 1).endswith("/signature-2")


@pytest.mark.asyncio
async def test_close_only_owned_client() -> None:
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(404)))
    store = LookasideSignatureStore(BASE, client=client)
    await store.close()
    assert client.is_closed is False
    await client.aclose()

    owned = LookasideSignatureStore(BASE)
    await owned.close()
    assert owned._client.is_closed is True


@pytest.mark.asyncio
async def test_lookaside_image_policy_decision(
    signing_key: Ed25519PrivateKey, trusted_pem: str
) -> None:
    sig = sign_docker_manifest(DIGEST, str(REF), signing_key)
    handler, _ = serve({f"{PREFIX}/signature-1": sig})
    store = make_store(handler)
    image = LookasideImage(DockerImageReference(REF), DIGEST, store)
    policy = Policy.model_validate(
        {
            "default": [{"type": "reject"}],
            "specific": {
                "registry.example/team": [
                    {"type": "signedBy", "keyType": "Ed25519Keys", "keyData": trusted_pem}
                ]
            },
        }
    )
    with PolicyContext(policy) as pc:
        decision = await pc.is_running_image_allowed(image)
        assert decision.allowed is True
        sigs = await pc.get_signatures_with_accepted_author(image)
        assert [s.docker_reference for s in sigs] == [str(REF)]
    await store.close()


@pytest.mark.asyncio
async def test_lookaside_image_without_reference() -> None:
    handler, _ = serve({})
    image = LookasideImage(DockerImageReference(None), DIGEST, make_store(handler))
    with pytest.raises(SignatureFetchError):
        await image.signatures()
