"""Reusable admin workflows over the TeamCity REST API.

Creation workflows generate their own fixture (unless one is passed in),
send it, and return both sides so tests can compare them:

    created = await create_project(client)
    assert_that_models(created.request, created.response.data).contains(
        ignore_fields=["locator", "copyAllAssociatedSettings"]
    )
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, TypeVar
from urllib.parse import quote

from teamcity_harness import generator
from teamcity_harness.constants import BUILD_TYPES_PATH, PROJECTS_PATH, SERVER_PATH, USERS_PATH, HttpStatus
from teamcity_harness.generator import BuildTypeFixture, FixtureRecord, ProjectFixture, UserFixture
from teamcity_harness.http_client import ApiResponse, HttpClient, RequestFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CreatedEntity:
    request: FixtureRecord
    response: ApiResponse

    @property
    def data(self) -> Any:
        return self.response.data


def _locator(value: str) -> str:
    return quote(value, safe="")


# ---- projects ----------------------------------------------------------------------
async def create_project(
    client: HttpClient,
    project: ProjectFixture | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> CreatedEntity:
    """Create a project under its locator (``_Root`` by default)."""
    fixture = project or generator.generate_project_data(overrides)
    response = await client.post(PROJECTS_PATH, json=fixture.create_payload())
    logger.info(f"Created project {fixture.id}")
    return CreatedEntity(request=fixture, response=response)


async def get_project(client: HttpClient, project_id: str) -> ApiResponse:
    return await client.get(f"{PROJECTS_PATH}/id:{_locator(project_id)}")


async def delete_project(client: HttpClient, project_id: str) -> ApiResponse:
    return await client.delete(f"{PROJECTS_PATH}/id:{_locator(project_id)}")


async def list_projects(client: HttpClient) -> List[Dict[str, Any]]:
    response = await client.get(PROJECTS_PATH)
    return list((response.data or {}).get("project", []))


async def create_projects(client: HttpClient, count: int) -> List[CreatedEntity]:
    """Create ``count`` projects one after another."""
    return [await create_project(client) for _ in range(count)]


async def cleanup_projects_by_pattern(client: HttpClient, pattern: str) -> int:
    """Delete every project whose id or name contains ``pattern``.

    Returns the number of projects deleted; failures are logged and skipped.
    """
    deleted = 0
    for project in await list_projects(client):
        if pattern not in project.get("id", "") and pattern not in project.get("name", ""):
            continue
        try:
            await delete_project(client, project["id"])
        except RequestFailure as exc:
            logger.warning(f"Failed to delete project {project['id']}: {exc}")
        else:
            deleted += 1
    return deleted


# ---- build types -------------------------------------------------------------------
async def create_build_type(
    client: HttpClient,
    build_type: BuildTypeFixture | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> CreatedEntity:
    """Create a build type; the referenced project must already exist."""
    fixture = build_type or generator.generate_build_type_data(overrides)
    response = await client.post(BUILD_TYPES_PATH, json=fixture.to_dict())
    logger.info(f"Created build type {fixture.id}")
    return CreatedEntity(request=fixture, response=response)


async def get_build_type(client: HttpClient, build_type_id: str) -> ApiResponse:
    return await client.get(f"{BUILD_TYPES_PATH}/id:{_locator(build_type_id)}")


async def delete_build_type(client: HttpClient, build_type_id: str) -> ApiResponse:
    return await client.delete(f"{BUILD_TYPES_PATH}/id:{_locator(build_type_id)}")


async def list_build_types(client: HttpClient) -> List[Dict[str, Any]]:
    response = await client.get(BUILD_TYPES_PATH)
    return list((response.data or {}).get("buildType", []))


# ---- users -------------------------------------------------------------------------
async def create_user(
    client: HttpClient,
    user: UserFixture | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> CreatedEntity:
    fixture = user or generator.generate_user_data(overrides)
    payload = {
        "username": fixture.username,
        "password": fixture.password,
        "email": fixture.email,
        "name": f"{fixture.first_name} {fixture.last_name}",
    }
    payload.update(fixture.extra)
    response = await client.post(USERS_PATH, json=payload)
    logger.info(f"Created user {fixture.username}")
    return CreatedEntity(request=fixture, response=response)


async def get_user(client: HttpClient, username: str) -> ApiResponse:
    return await client.get(f"{USERS_PATH}/username:{_locator(username)}")


async def delete_user(client: HttpClient, username: str) -> ApiResponse:
    return await client.delete(f"{USERS_PATH}/username:{_locator(username)}")


async def assign_project_role(client: HttpClient, project_id: str, username: str, role: str) -> ApiResponse:
    """Grant ``role`` on ``project_id`` to ``username``."""
    path = f"{USERS_PATH}/username:{_locator(username)}/roles/{role}/p:{_locator(project_id)}"
    response = await client.put(path)
    logger.info(f"Assigned {role} on {project_id} to {username}")
    return response


async def get_user_roles(client: HttpClient, username: str) -> List[Dict[str, Any]]:
    response = await client.get(f"{USERS_PATH}/username:{_locator(username)}/roles")
    return list((response.data or {}).get("role", []))


# ---- server ------------------------------------------------------------------------
async def get_server_info(client: HttpClient) -> Dict[str, Any]:
    response = await client.get(SERVER_PATH)
    return response.data


async def health_check(client: HttpClient) -> bool:
    """True when the server answers with a version."""
    try:
        info = await get_server_info(client)
    except RequestFailure as exc:
        logger.warning(f"Health check failed: {exc}")
        return False
    return bool(isinstance(info, Mapping) and info.get("version"))


# ---- outcome helpers ---------------------------------------------------------------
def _body_text(body: Any) -> str:
    if body is None:
        return ""
    if isinstance(body, str):
        return body
    return json.dumps(body, default=str)


async def expect_success(
    operation: Callable[[], Awaitable[T]],
    expected_status: int = HttpStatus.OK,
    expected_message: str | None = None,
) -> T:
    """Run ``operation`` and assert it returns ``expected_status``."""
    try:
        result = await operation()
    except RequestFailure as exc:
        raise AssertionError(
            f"Expected operation to succeed with status {int(expected_status)} but it failed: {exc}"
        ) from exc

    if isinstance(result, ApiResponse):
        if result.status != expected_status:
            raise AssertionError(f"Expected status {int(expected_status)} but got {result.status}")
        if expected_message and expected_message.lower() not in _body_text(result.data).lower():
            raise AssertionError(
                f'Expected response to contain "{expected_message}" but got: {_body_text(result.data)}'
            )
    elif isinstance(result, CreatedEntity):
        await expect_success(_returning(result.response), expected_status, expected_message)
    return result


async def expect_failure(
    operation: Callable[[], Awaitable[Any]],
    expected_status: int,
    expected_message: str | None = None,
) -> RequestFailure:
    """Run ``operation`` and assert it fails with ``expected_status``.

    Returns the captured ``RequestFailure`` for further checks.
    """
    try:
        result = await operation()
    except RequestFailure as exc:
        if exc.status != expected_status:
            raise AssertionError(
                f"Expected failure with status {int(expected_status)} but got {exc.status}: {exc}"
            ) from exc
        body = _body_text(exc.body)
        if expected_message and expected_message.lower() not in body.lower():
            raise AssertionError(
                f'Expected error message to contain "{expected_message}" but got: {body}'
            ) from exc
        return exc

    raise AssertionError(
        f"Expected operation to fail with status {int(expected_status)} but it succeeded: {result!r}"
    )


def _returning(value: T) -> Callable[[], Awaitable[T]]:
    async def operation() -> T:
        return value

    return operation
