"""Shared constants for TeamCity REST suites."""
from __future__ import annotations

from enum import IntEnum
from typing import Dict


class HttpStatus(IntEnum):
    OK = 200
    CREATED = 201
    NO_CONTENT = 204
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    UNSUPPORTED_MEDIA_TYPE = 415
    INTERNAL_SERVER_ERROR = 500


class ErrorMessage:
    """Substrings the server puts in its plain-text error bodies."""

    ALREADY_USED = "already used"
    FORBIDDEN = "Forbidden"
    UNAUTHORIZED = "Unauthorized"
    NOT_FOUND = "Not Found"
    BAD_REQUEST = "Bad Request"


class Role:
    PROJECT_ADMIN = "PROJECT_ADMIN"
    PROJECT_DEVELOPER = "PROJECT_DEVELOPER"
    PROJECT_VIEWER = "PROJECT_VIEWER"


ROOT_PROJECT = "_Root"

REST_ROOT = "/app/rest"
SERVER_PATH = f"{REST_ROOT}/server"
PROJECTS_PATH = f"{REST_ROOT}/projects"
BUILD_TYPES_PATH = f"{REST_ROOT}/buildTypes"
USERS_PATH = f"{REST_ROOT}/users"

# Delete routes per registered entity kind; {id} is URL-quoted by the caller.
DELETE_PATHS: Dict[str, str] = {
    "project": f"{PROJECTS_PATH}/id:{{id}}",
    "buildType": f"{BUILD_TYPES_PATH}/id:{{id}}",
    "user": f"{USERS_PATH}/username:{{id}}",
}

DEFAULT_HEADERS: Dict[str, str] = {
    "Accept": "application/json",
    "Content-Type": "application/json",
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

SENSITIVE_HEADERS = frozenset(
    {
        "authorization",
        "cookie",
        "x-csrf-token",
        "x-tc-csrf-token",
        "x-api-key",
        "x-auth-token",
    }
)
