import base64

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from portalight.shared.adapters.github import (
    GitHubAppTokenProvider,
    GitHubClient,
    StaticTokenProvider,
)
from portalight.shared.core.exceptions import (
    CatalogNotFoundError,
    ConfigurationError,
    SourceUnavailableError,
)

API = "https://api.github.test"


def _client(handler, provider=None, max_retries=3):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GitHubClient(
        provider or StaticTokenProvider("ghp_test"),
        http_client=http_client,
        api_url=API,
        max_retries=max_retries,
    )


@pytest.mark.asyncio
async def test_list_tree_returns_blobs_under_path():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        seen["url"] = str(request.url)
        return httpx.Response(
            200,
            json={
                "tree": [
                    {"path": "projects", "type": "tree"},
                    {"path": "projects/a.yaml", "type": "blob"},
                    {"path": "projects/nested/b.yml", "type": "blob"},
                    {"path": "README.md", "type": "blob"},
                ],
                "truncated": False,
            },
        )

    client = _client(handler)
    paths = await client.list_tree("acme", "catalog", "main", "projects")

    assert paths == ["projects/a.yaml", "projects/nested/b.yml"]
    assert seen["auth"] == "token ghp_test"
    assert seen["url"] == f"{API}/repos/acme/catalog/git/trees/main?recursive=1"


@pytest.mark.asyncio
async def test_list_tree_missing_branch_is_empty():
    client = _client(lambda request: httpx.Response(404, json={"message": "Not Found"}))

    assert await client.list_tree("acme", "catalog", "nope", "projects") == []


@pytest.mark.asyncio
async def test_get_file_content_decodes_base64():
    encoded = base64.b64encode(b"name: payments\n").decode()

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["ref"] == "main"
        return httpx.Response(200, json={"type": "file", "content": encoded})

    client = _client(handler)

    assert await client.get_file_content("acme", "catalog", "main", "projects/p.yaml") == (
        b"name: payments\n"
    )


@pytest.mark.asyncio
async def test_get_file_content_not_found():
    client = _client(lambda request: httpx.Response(404, json={"message": "Not Found"}))

    with pytest.raises(CatalogNotFoundError):
        await client.get_file_content("acme", "catalog", "main", "projects/gone.yaml")


@pytest.mark.asyncio
async def test_directory_path_is_not_a_file():
    client = _client(lambda request: httpx.Response(200, json=[{"type": "file"}]))

    with pytest.raises(CatalogNotFoundError):
        await client.get_file_content("acme", "catalog", "main", "projects")


@pytest.mark.asyncio
async def test_auth_rejection_is_source_unavailable():
    client = _client(lambda request: httpx.Response(401, json={"message": "Bad credentials"}))

    with pytest.raises(SourceUnavailableError) as exc_info:
        await client.list_tree("acme", "catalog", "main", "projects")

    assert exc_info.value.code == "source_auth_failed"


@pytest.mark.asyncio
async def test_server_errors_are_retried():
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] < 3:
            return httpx.Response(503)
        return httpx.Response(200, json={"tree": []})

    client = _client(handler, max_retries=3)

    assert await client.list_tree("acme", "catalog", "main", "projects") == []
    assert calls["count"] == 3


@pytest.mark.asyncio
async def test_server_errors_exhaust_retries():
    client = _client(lambda request: httpx.Response(502), max_retries=2)

    with pytest.raises(SourceUnavailableError) as exc_info:
        await client.list_tree("acme", "catalog", "main", "projects")

    assert exc_info.value.code == "source_unavailable"


def test_static_token_requires_value():
    with pytest.raises(ConfigurationError):
        StaticTokenProvider("")


@pytest.fixture(scope="module")
def rsa_private_key() -> str:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.mark.asyncio
async def test_app_installation_token_is_exchanged_once_and_cached(rsa_private_key):
    exchanges = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            app_jwt = request.headers["Authorization"].removeprefix("Bearer ")
            claims = jwt.decode(app_jwt, options={"verify_signature": False})
            exchanges.append(claims["iss"])
            return httpx.Response(
                201, json={"token": "ghs_installation", "expires_at": "2099-01-01T00:00:00Z"}
            )
        assert request.headers["Authorization"] == "Bearer ghs_installation"
        return httpx.Response(200, json={"tree": []})

    provider = GitHubAppTokenProvider("42", "1001", rsa_private_key)
    client = _client(handler, provider=provider)

    await client.list_tree("acme", "catalog", "main", "projects")
    await client.list_tree("acme", "catalog", "main", "projects")

    assert exchanges == ["42"]


@pytest.mark.asyncio
async def test_app_token_exchange_rejection(rsa_private_key):
    provider = GitHubAppTokenProvider("42", "1001", rsa_private_key)
    client = _client(lambda request: httpx.Response(401), provider=provider)

    with pytest.raises(SourceUnavailableError):
        await client.list_tree("acme", "catalog", "main", "projects")


def test_app_provider_requires_all_fields():
    with pytest.raises(ConfigurationError):
        GitHubAppTokenProvider("42", "", "key")
