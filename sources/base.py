# sources/base.py
# Shared error taxonomy and request helpers for the Readwise client.

from typing import Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

UA = "Readwise-Display/1.0"

M = TypeVar("M", bound=BaseModel)


class ReadwiseError(Exception):
    """Base class for failures the caller is expected to act on."""


class CredentialMissing(ReadwiseError):
    def __init__(self, msg: str = "Readwise API key missing"):
        super().__init__(msg)


class CredentialInvalid(ReadwiseError):
    def __init__(self, status_code: int, what: str = "request"):
        super().__init__(f"Readwise rejected the API key (HTTP {status_code}) during {what}")
        self.status_code = status_code


class TransportError(ReadwiseError):
    def __init__(self, msg: str, status_code: Optional[int] = None):
        super().__init__(msg)
        self.status_code = status_code


class DecodeError(ReadwiseError):
    pass


def clean_key(value: Optional[str]) -> str:
    return (value or "").strip()


def auth_headers(api_key: str) -> dict[str, str]:
    key = clean_key(api_key)
    if not key:
        raise CredentialMissing()
    return {
        "Authorization": f"Token {key}",
        "Accept": "application/json",
        "User-Agent": UA,
    }


def raise_for_readwise_status(resp: httpx.Response, what: str) -> None:
    code = resp.status_code
    if code in (401, 403):
        raise CredentialInvalid(code, what)
    if not resp.is_success:
        body = (resp.text or "").strip()[:200]
        raise TransportError(f"HTTP {code} fetching {what}: {body or 'no body'}", status_code=code)


async def get_model(
    client: httpx.AsyncClient,
    url: str,
    model: Type[M],
    *,
    what: str,
    params: Optional[dict] = None,
) -> M:
    """GET ``url`` and decode the body into ``model``.

    Network failures and non-2xx answers become ``TransportError`` (401/403
    become ``CredentialInvalid``); a body that does not fit ``model`` becomes
    ``DecodeError``. The underlying exception is chained as ``__cause__``.
    """
    try:
        r = await client.get(url, params=params)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise TransportError(f"{what} failed: {e!r}") from e
    raise_for_readwise_status(r, what)
    try:
        return model.model_validate_json(r.content)
    except ValidationError as e:
        raise DecodeError(f"unexpected {what} body: {e.error_count()} error(s)") from e
