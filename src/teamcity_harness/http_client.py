"""Async HTTP client for the TeamCity REST API.

Every successful POST that returns an identifiable entity is registered with
the ``EntityRegistry`` together with a callback that deletes it again. The
entity kind is derived from the request URL:

- ``/buildTypes`` anywhere in the path: build type
- ``/app/rest/users``: user (deleted by username)
- ``/app/rest/projects``: project
- anything else: ``unknown``; registered for manual review, never deleted

Usage:
    async with HttpClient(load_config(), registry) as client:
        response = await client.post("/app/rest/projects", json=payload)
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, List
from urllib.parse import quote

import anyio
import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_exponential

from teamcity_harness.config import AuthProfile, HarnessConfig
from teamcity_harness.constants import (
    DEFAULT_HEADERS,
    DELETE_PATHS,
    PROJECTS_PATH,
    SENSITIVE_HEADERS,
    USERS_PATH,
)
from teamcity_harness.entity_registry import (
    CleanupCallback,
    CleanupFailure,
    EntityKind,
    EntityRegistry,
    RegisteredEntity,
)

logger = logging.getLogger(__name__)

REDACTED = "***"


class RequestFailure(Exception):
    """An HTTP call failed or did not return an expected status."""

    def __init__(self, message: str, method: str, url: str, status: int | None = None, body: Any = None):
        super().__init__(message)
        self.method = method
        self.url = url
        self.status = status
        self.body = body


@dataclass
class ApiResponse:
    status: int
    data: Any
    headers: Dict[str, str] = field(default_factory=dict)
    url: str = ""
    success: bool = False
    error: str | None = None


def redact_headers(headers: Mapping[str, str] | None) -> Dict[str, str]:
    """Copy ``headers`` with credential-bearing values masked."""
    if not headers:
        return {}
    return {
        key: REDACTED if key.lower() in SENSITIVE_HEADERS else value
        for key, value in headers.items()
    }


def classify_entity(url: str) -> EntityKind:
    """Guess the entity kind a creation URL refers to."""
    if "/buildTypes" in url:
        return EntityKind.BUILD_TYPE
    if USERS_PATH in url:
        return EntityKind.USER
    if PROJECTS_PATH in url:
        return EntityKind.PROJECT
    return EntityKind.UNKNOWN


def _expected_statuses(expected_status: int | Iterable[int] | None) -> frozenset | None:
    if expected_status is None:
        return None
    if isinstance(expected_status, int):
        return frozenset({int(expected_status)})
    return frozenset(int(code) for code in expected_status)


def _parse_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class HttpClient:
    """TeamCity REST client with automatic entity registration.

    Args:
        config: Harness settings (base URL, timeout, retries, credentials)
        registry: Registry receiving created entities (None disables registration)
        profile: Profile name from ``config`` or an explicit ``AuthProfile``
        transport: Optional httpx transport (``httpx.MockTransport`` in tests)
        enable_auto_cleanup: Register created entities and drain them in ``cleanup()``
    """

    def __init__(
        self,
        config: HarnessConfig,
        registry: EntityRegistry | None = None,
        *,
        profile: str | AuthProfile | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        enable_auto_cleanup: bool = True,
    ):
        self.config = config
        self.registry = registry
        self.profile = profile if isinstance(profile, AuthProfile) else config.profile(profile)
        self.enable_auto_cleanup = enable_auto_cleanup
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "HttpClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def connect(self) -> None:
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url,
            auth=self.profile.auth,
            headers=DEFAULT_HEADERS,
            timeout=self.config.timeout,
            verify=self.config.verify_tls,
            transport=self._transport,
        )
        logger.debug(f"HTTP client connected to {self.config.base_url} as profile '{self.profile.name}'")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    def for_profile(self, profile: str | AuthProfile) -> "HttpClient":
        """New client sharing registry and transport, authenticated as ``profile``."""
        return HttpClient(
            self.config,
            self.registry,
            profile=profile,
            transport=self._transport,
            enable_auto_cleanup=self.enable_auto_cleanup,
        )

    # ---- requests -------------------------------------------------------------------
    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        expected_status: int | Iterable[int] | None = None,
        validate: bool = True,
    ) -> ApiResponse:
        """Send one request.

        Raises:
            RequestFailure: On transport errors and timeouts (``status=None``), or
                when ``validate`` is set and the status is not a success
            RuntimeError: If the client is not connected
        """
        if self._client is None:
            raise RuntimeError("HttpClient is not connected; use 'async with HttpClient(...)'")

        method = method.upper()
        target = self.config.url(path)
        logger.debug(f"{method} {target} headers={redact_headers(headers)} body={json!r}")

        try:
            response = await self._client.request(method, path, json=json, params=params, headers=headers)
        except httpx.TimeoutException as exc:
            logger.error(f"{method} {target} timed out after {self.config.timeout}s: {exc}")
            raise RequestFailure(f"{method} {target} timed out after {self.config.timeout}s", method, target) from exc
        except httpx.TransportError as exc:
            logger.error(f"Request failed: {method} {target}: {exc}")
            raise RequestFailure(f"{method} {target} failed: {exc}", method, target) from exc

        data = _parse_body(response)
        url = str(response.request.url)
        allowed = _expected_statuses(expected_status)
        if allowed is None:
            success = 200 <= response.status_code < 300
        else:
            success = response.status_code in allowed

        error = None
        if not success:
            error = data if isinstance(data, str) else (repr(data) if data is not None else response.reason_phrase)

        logger.info(f"{method} {url} -> {response.status_code}")
        logger.debug(f"Response headers={redact_headers(response.headers)} body={data!r}")

        result = ApiResponse(
            status=response.status_code,
            data=data,
            headers=dict(response.headers),
            url=url,
            success=success,
            error=error,
        )

        if not success:
            if validate:
                logger.error(f"{method} {url} returned {response.status_code}: {error}")
                raise RequestFailure(
                    f"{method} {url} returned {response.status_code}: {error}",
                    method,
                    url,
                    status=response.status_code,
                    body=data,
                )
            return result

        if method == "POST":
            self._register_created(path, data)
        return result

    async def request_with_retry(
        self,
        method: str,
        path: str,
        *,
        retries: int | None = None,
        **kwargs: Any,
    ) -> ApiResponse:
        """``request`` with exponential backoff; ``retries`` is the attempt budget.

        Waits ``retry_backoff * 2 ** (attempt - 1)`` seconds between attempts;
        the last ``RequestFailure`` propagates unchanged.
        """
        attempts = max(1, retries if retries is not None else self.config.retries)
        label = f"{method.upper()} {path}"

        def log_retry(state: RetryCallState) -> None:
            logger.warning(
                f"{label} failed (attempt {state.attempt_number}/{attempts}): "
                f"{state.outcome.exception()}; retrying in {state.next_action.sleep:.2f}s"
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=self.config.retry_backoff, min=0),
            retry=retry_if_exception_type(RequestFailure),
            before_sleep=log_retry,
            sleep=anyio.sleep,
            reraise=True,
        )
        try:
            return await retrying(self.request, method, path, **kwargs)
        except RequestFailure:
            logger.error(f"{label} failed after {attempts} attempt(s)")
            raise

    async def get(self, path: str, **kwargs: Any) -> ApiResponse:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> ApiResponse:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> ApiResponse:
        return await self.request("PUT", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> ApiResponse:
        return await self.request("DELETE", path, **kwargs)

    async def patch(self, path: str, **kwargs: Any) -> ApiResponse:
        return await self.request("PATCH", path, **kwargs)

    async def cleanup(self) -> List[CleanupFailure]:
        """Drain the registry (no-op when auto cleanup is disabled)."""
        if not self.enable_auto_cleanup or self.registry is None:
            return []
        return await self.registry.cleanup_all()

    # ---- registration ---------------------------------------------------------------
    def _register_created(self, path: str, data: Any) -> None:
        if not self.enable_auto_cleanup or self.registry is None:
            return
        if not isinstance(data, Mapping):
            return

        kind = classify_entity(path)
        if kind is EntityKind.USER:
            identifier = data.get("username") or data.get("id")
        else:
            identifier = data.get("id") or data.get("username")
        if identifier is None:
            return

        identifier = str(identifier)
        if kind is EntityKind.UNKNOWN:
            logger.warning(
                f"Created entity {identifier} at {path} has an unknown kind; "
                f"it will NOT be deleted automatically"
            )

        self.registry.add(
            RegisteredEntity(
                kind=kind,
                id=identifier,
                cleanup=self._cleanup_callback(kind, identifier, path),
                display_name=data.get("name") or data.get("username"),
                source_url=path,
            )
        )
        logger.info(f"Registered {kind.value} {identifier} for cleanup")

    def _cleanup_callback(self, kind: EntityKind, identifier: str, source: str) -> CleanupCallback:
        if kind is EntityKind.UNKNOWN:
            async def review() -> None:
                logger.warning(f"Manual cleanup review required for entity {identifier} created at {source}")

            return review

        delete_path = DELETE_PATHS[kind.value].format(id=quote(identifier, safe=""))

        async def delete() -> None:
            if self.is_connected:
                await self.request("DELETE", delete_path)
                return
            # The creating client was closed before the drain; reconnect as the same profile.
            async with self.for_profile(self.profile) as client:
                await client.request("DELETE", delete_path)

        return delete
