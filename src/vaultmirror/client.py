"""
Vault HTTP client -- one authenticated session against one server.

Only the handful of endpoints the mirror needs: mount listing,
health/version, and list/read/write on KV paths. Transport failures
and rejected tokens surface as ConnectivityError; a 404 is
NotFoundError so callers can tell "absent" apart from "broken".
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol
from urllib.parse import urlparse

import requests

from .errors import ConnectivityError, NotFoundError, StoreRequestError, WriteError
from .models import normalize_path

logger = logging.getLogger("vaultmirror.client")

API_PREFIX = "/v1"
TOKEN_HEADER = "X-Vault-Token"


class StoreClient(Protocol):
    """What the sync pipeline needs from a secret store session."""

    def list_mounts(self) -> dict[str, str]:
        """Return mount path -> backend type."""

    def health(self) -> str:
        """Return the server version string."""

    def list(self, path: str) -> list[str]:
        """Return child names; subdirectories end with ``/``."""

    def read(self, path: str) -> Optional[dict[str, Any]]:
        """Return the ``data`` block of a secret read."""

    def write(self, path: str, payload: dict[str, Any]) -> None:
        """Write a request body to a path."""

    def close(self) -> None:
        """Release the session."""


class VaultClient:
    """Session against one Vault server.

    Args:
        address: Base URL, e.g. ``https://vault.internal:8200``.
        token: Vault token sent with every request.
        timeout: Per-request timeout in seconds.
        verify: Verify TLS certificates.
    """

    def __init__(
        self,
        address: str,
        token: str,
        timeout: float = 30.0,
        verify: bool = True,
    ) -> None:
        self.address = address.rstrip("/")
        self.timeout = timeout
        self._session = requests.Session()
        self._session.headers[TOKEN_HEADER] = token
        self._session.verify = verify

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> VaultClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        body: Optional[dict[str, Any]] = None,
        ok_statuses: tuple[int, ...] = (),
    ) -> Optional[dict[str, Any]]:
        """Make an authenticated API call.

        Args:
            method: HTTP method.
            path: Store path, without the ``/v1`` prefix.
            params: Query parameters.
            body: JSON request body.
            ok_statuses: Extra non-2xx statuses to accept.

        Returns:
            Decoded JSON body, or None for an empty response.

        Raises:
            ConnectivityError: On transport failure or 401/403.
            NotFoundError: On 404.
            StoreRequestError: On any other error status.
        """
        path = normalize_path(path)
        url = f"{self.address}{API_PREFIX}/{path}"
        try:
            resp = self._session.request(
                method, url, params=params, json=body, timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise ConnectivityError(
                f"Cannot reach Vault at {self.address}: {exc}"
            ) from exc

        if resp.status_code in (401, 403):
            raise ConnectivityError(
                f"Vault at {self.address} rejected the token for {path} "
                f"({resp.status_code})"
            )
        if resp.status_code == 404:
            raise NotFoundError(
                f"{path} not found on {self.address}", status_code=404, path=path,
            )
        if resp.status_code >= 400 and resp.status_code not in ok_statuses:
            raise StoreRequestError(
                f"Vault {method} {path} failed: {resp.status_code} {_errors_of(resp)}",
                status_code=resp.status_code,
                path=path,
            )

        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise StoreRequestError(
                f"Vault {method} {path} returned a non-JSON body",
                status_code=resp.status_code,
                path=path,
            ) from exc

    def lookup_self(self) -> dict[str, Any]:
        body = self._request("GET", "auth/token/lookup-self") or {}
        return body.get("data") or {}

    def list_mounts(self) -> dict[str, str]:
        body = self._request("GET", "sys/mounts") or {}
        # Newer servers also nest the mount table under "data".
        table = body.get("data") if isinstance(body.get("data"), dict) else body
        return {
            name: str(info.get("type", ""))
            for name, info in table.items()
            if isinstance(info, dict) and "type" in info
        }

    def health(self) -> str:
        # Standby, sealed and DR nodes answer with non-200 codes but still report a version.
        body = self._request(
            "GET",
            "sys/health",
            params={"standbyok": "true", "perfstandbyok": "true"},
            ok_statuses=(429, 472, 473, 501, 503),
        ) or {}
        version = body.get("version")
        if not version:
            raise StoreRequestError(
                f"Vault at {self.address} did not report a version", path="sys/health",
            )
        return str(version)

    def list(self, path: str) -> list[str]:
        body = self._request("GET", path, params={"list": "true"}) or {}
        keys = (body.get("data") or {}).get("keys") or []
        return [str(k) for k in keys]

    def read(self, path: str) -> Optional[dict[str, Any]]:
        body = self._request("GET", path) or {}
        return body.get("data")

    def write(self, path: str, payload: dict[str, Any]) -> None:
        try:
            self._request("POST", path, body=payload)
        except StoreRequestError as exc:
            raise WriteError(str(exc), status_code=exc.status_code, path=exc.path) from exc


def _errors_of(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text.strip()
    errors = body.get("errors") if isinstance(body, dict) else None
    return "; ".join(str(e) for e in errors) if errors else ""


def connect(
    address: str,
    token: str,
    timeout: float = 30.0,
    verify: bool = True,
) -> VaultClient:
    """Open a session and verify the token.

    Args:
        address: Vault base URL.
        token: Vault token.
        timeout: Per-request timeout in seconds.
        verify: Verify TLS certificates.

    Returns:
        Ready-to-use VaultClient.

    Raises:
        ConnectivityError: If the address is invalid, the server is
            unreachable, or the token is rejected.
    """
    parsed = urlparse(address or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConnectivityError(f"Invalid Vault address: {address!r}")
    if not token:
        raise ConnectivityError(f"No token given for {address}")

    client = VaultClient(address, token, timeout=timeout, verify=verify)
    try:
        client.lookup_self()
    except ConnectivityError:
        client.close()
        raise
    except StoreRequestError as exc:
        client.close()
        raise ConnectivityError(f"Token lookup against {address} failed: {exc}") from exc

    logger.debug("Connected to %s", client.address)
    return client
