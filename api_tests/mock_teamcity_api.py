"""Mock TeamCity REST server for the API suites.

Implements the subset of ``/app/rest`` the harness exercises:
- server: version information
- projects: create, list, get, delete (delete cascades to build types and subprojects)
- buildTypes: create, list, get, delete
- users: create, get, delete, project role assignment

State lives in module-level dicts guarded by a lock (the werkzeug server is
threaded); call ``reset_mock_state()`` between tests. Error bodies are plain
text, as TeamCity sends them.
"""
from __future__ import annotations

import re
import threading
from typing import Any, Dict, List, Tuple

from flask import Flask, Response, g, jsonify, request

from teamcity_harness.constants import ROOT_PROJECT, HttpStatus, Role

# Mock data storage
PROJECTS: Dict[str, Dict[str, Any]] = {}  # project id -> {id, name, parentProjectId, description}
BUILD_TYPES: Dict[str, Dict[str, Any]] = {}  # build type id -> {id, name, projectId}
USERS: Dict[str, Dict[str, Any]] = {}  # username -> {id, username, password, name, email, roles}

_LOCK = threading.Lock()
_NEXT_USER_ID = [1]

# Default test credentials
MOCK_ADMIN_USERNAME = "admin"
MOCK_ADMIN_PASSWORD = "admin-secret"
MOCK_SUPERUSER_TOKEN = "1234567890123456789"

WEB_ROOT = "http://localhost:8111"
_ID_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")


def reset_mock_state() -> None:
    """Drop every entity except the root project."""
    with _LOCK:
        PROJECTS.clear()
        BUILD_TYPES.clear()
        USERS.clear()
        _NEXT_USER_ID[0] = 1
        PROJECTS[ROOT_PROJECT] = {
            "id": ROOT_PROJECT,
            "name": "<Root project>",
            "parentProjectId": None,
            "description": "Contains all other projects",
        }


def _error(status: int, message: str) -> Tuple[Response, int]:
    text = f"Error has occurred during request processing, Status: {status}\n{message}"
    return Response(text, mimetype="text/plain"), status


def _project_view(project: Dict[str, Any]) -> Dict[str, Any]:
    project_id = project["id"]
    build_types = [_build_type_ref(bt) for bt in BUILD_TYPES.values() if bt["projectId"] == project_id]
    view: Dict[str, Any] = {
        "id": project_id,
        "name": project["name"],
        "href": f"/app/rest/projects/id:{project_id}",
        "webUrl": f"{WEB_ROOT}/project.html?projectId={project_id}",
        "buildTypes": {"count": len(build_types), "buildType": build_types},
        "templates": {"count": 0, "buildType": []},
        "parameters": {"count": 0, "property": [], "href": f"/app/rest/projects/id:{project_id}/parameters"},
        "vcsRoots": {"count": 0, "href": f"/app/rest/vcs-roots?locator=project:(id:{project_id})"},
        "projectFeatures": {"count": 0, "href": f"/app/rest/projects/id:{project_id}/projectFeatures"},
        "projects": {"count": sum(1 for p in PROJECTS.values() if p["parentProjectId"] == project_id)},
    }
    parent_id = project["parentProjectId"]
    if parent_id:
        parent = PROJECTS.get(parent_id, {"id": parent_id, "name": parent_id})
        view["parentProjectId"] = parent_id
        view["parentProject"] = {
            "id": parent["id"],
            "name": parent["name"],
            "description": parent.get("description", ""),
            "href": f"/app/rest/projects/id:{parent['id']}",
            "webUrl": f"{WEB_ROOT}/project.html?projectId={parent['id']}",
        }
    if project.get("description"):
        view["description"] = project["description"]
    return view


def _build_type_ref(build_type: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": build_type["id"],
        "name": build_type["name"],
        "projectId": build_type["projectId"],
        "projectName": PROJECTS.get(build_type["projectId"], {}).get("name", ""),
        "href": f"/app/rest/buildTypes/id:{build_type['id']}",
        "webUrl": f"{WEB_ROOT}/viewType.html?buildTypeId={build_type['id']}",
    }


def _build_type_view(build_type: Dict[str, Any]) -> Dict[str, Any]:
    view = _build_type_ref(build_type)
    view["paused"] = False
    project = PROJECTS.get(build_type["projectId"])
    if project:
        view["project"] = {
            "id": project["id"],
            "name": project["name"],
            "href": f"/app/rest/projects/id:{project['id']}",
        }
    view["parameters"] = {"count": 0, "property": []}
    return view


def _user_view(user: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": user["id"],
        "username": user["username"],
        "name": user.get("name"),
        "email": user.get("email"),
        "href": f"/app/rest/users/id:{user['id']}",
        "roles": {"role": [_role_view(user, role) for role in user["roles"]]},
    }


def _role_view(user: Dict[str, Any], role: Dict[str, str]) -> Dict[str, str]:
    return {
        "roleId": role["roleId"],
        "scope": role["scope"],
        "href": f"/app/rest/users/id:{user['id']}/roles/{role['roleId']}/{role['scope']}",
    }


def _resolve_locator(locator: str) -> str:
    """Accept ``X``, ``id:X`` or ``id:X,...`` style locators."""
    for part in locator.split(","):
        if part.startswith("id:"):
            return part[3:]
    return locator


def _descendants(project_id: str) -> List[str]:
    found = [project_id]
    for candidate in list(PROJECTS.values()):
        if candidate["parentProjectId"] == project_id:
            found.extend(_descendants(candidate["id"]))
    return found


def create_mock_api_app() -> Flask:
    """Create and configure the mock TeamCity Flask app."""
    app = Flask(__name__)
    app.config["TESTING"] = True

    def _current_user() -> Dict[str, Any] | None:
        """Return a principal dict, or None when credentials are rejected."""
        auth = request.authorization
        if auth is None:
            return None
        username = auth.username or ""
        password = auth.password or ""
        if username == MOCK_ADMIN_USERNAME and password == MOCK_ADMIN_PASSWORD:
            return {"username": username, "admin": True}
        if username == "" and password == MOCK_SUPERUSER_TOKEN:
            return {"username": "", "admin": True}
        user = USERS.get(username)
        if user and user["password"] == password:
            return {"username": username, "admin": False, "roles": user["roles"]}
        return None

    def _can_create_in(principal: Dict[str, Any], project_id: str) -> bool:
        if principal["admin"]:
            return True
        allowed = {f"p:{pid}" for pid in _ancestry(project_id)}
        return any(
            role["roleId"] == Role.PROJECT_ADMIN and role["scope"] in allowed
            for role in principal.get("roles", [])
        )

    def _ancestry(project_id: str) -> List[str]:
        chain = []
        current = PROJECTS.get(project_id)
        while current:
            chain.append(current["id"])
            current = PROJECTS.get(current["parentProjectId"]) if current["parentProjectId"] else None
        return chain

    @app.before_request
    def _authenticate():
        principal = _current_user()
        if principal is None:
            response = Response("Authentication required", status=HttpStatus.UNAUTHORIZED, mimetype="text/plain")
            response.headers["WWW-Authenticate"] = 'Basic realm="TeamCity"'
            return response
        g.principal = principal
        return None

    def _principal() -> Dict[str, Any]:
        return g.principal

    # ---- server -------------------------------------------------------------------
    @app.route("/app/rest/server", methods=["GET"])
    def server_info():
        return jsonify(
            {
                "version": "2023.11.1 (build 147412)",
                "versionMajor": 2023,
                "versionMinor": 11,
                "buildNumber": "147412",
                "buildDate": "20231214T000000+0000",
                "internalId": "3a2f3c7e-6a35-4f6a-9d4e-0c8e8f1a2b3c",
                "role": "main_node",
                "webUrl": WEB_ROOT,
            }
        )

    # ---- projects -----------------------------------------------------------------
    @app.route("/app/rest/projects", methods=["GET"])
    def list_projects():
        with _LOCK:
            projects = [_project_view(p) for p in PROJECTS.values()]
        return jsonify({"count": len(projects), "project": projects})

    @app.route("/app/rest/projects", methods=["POST"])
    def create_project():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return _error(HttpStatus.BAD_REQUEST, "Bad Request: request body must be a JSON object")

        parent = data.get("parentProject") or {}
        locator = parent.get("locator") or parent.get("id") or data.get("locator") or ROOT_PROJECT
        parent_id = _resolve_locator(locator)
        name = data.get("name") or ""
        project_id = data.get("id")

        with _LOCK:
            if parent_id not in PROJECTS:
                return _error(HttpStatus.NOT_FOUND, f"Not Found: No project found by locator 'id:{parent_id}'")
            if not _can_create_in(_principal(), parent_id):
                return _error(
                    HttpStatus.FORBIDDEN,
                    f'Forbidden: You do not have "Create subproject" permission in project with id: {parent_id}',
                )
            if not name.strip():
                return _error(HttpStatus.BAD_REQUEST, "Bad Request: Project name cannot be empty.")
            if project_id is None or project_id == "":
                return _error(HttpStatus.BAD_REQUEST, "Bad Request: Project ID must not be empty.")
            if not isinstance(project_id, str) or not _ID_PATTERN.match(project_id):
                return _error(
                    HttpStatus.INTERNAL_SERVER_ERROR,
                    f'Project ID "{project_id}" is invalid: it must start with a latin letter '
                    f"and contain only latin letters, digits and underscores.",
                )
            if project_id in PROJECTS:
                return _error(
                    HttpStatus.BAD_REQUEST,
                    f'Bad Request: Project ID "{project_id}" is already used by another project',
                )
            if any(p["name"] == name and p["parentProjectId"] == parent_id for p in PROJECTS.values()):
                return _error(
                    HttpStatus.BAD_REQUEST,
                    f'Bad Request: Project with this name already exists: "{name}" is already used',
                )

            PROJECTS[project_id] = {
                "id": project_id,
                "name": name,
                "parentProjectId": parent_id,
                "description": data.get("description", ""),
            }
            view = _project_view(PROJECTS[project_id])
        return jsonify(view)

    @app.route("/app/rest/projects/id:<project_id>", methods=["GET"])
    def get_project(project_id: str):
        with _LOCK:
            project = PROJECTS.get(project_id)
            if project is None:
                return _error(HttpStatus.NOT_FOUND, f"Not Found: No project found by locator 'id:{project_id}'")
            view = _project_view(project)
        return jsonify(view)

    @app.route("/app/rest/projects/id:<project_id>", methods=["DELETE"])
    def delete_project(project_id: str):
        with _LOCK:
            if project_id == ROOT_PROJECT:
                return _error(HttpStatus.FORBIDDEN, "Forbidden: Root project cannot be deleted")
            if project_id not in PROJECTS:
                return _error(HttpStatus.NOT_FOUND, f"Not Found: No project found by locator 'id:{project_id}'")
            doomed = set(_descendants(project_id))
            for build_type_id in [bt["id"] for bt in BUILD_TYPES.values() if bt["projectId"] in doomed]:
                del BUILD_TYPES[build_type_id]
            for pid in doomed:
                PROJECTS.pop(pid, None)
        return Response(status=HttpStatus.NO_CONTENT)

    # ---- build types --------------------------------------------------------------
    @app.route("/app/rest/buildTypes", methods=["GET"])
    def list_build_types():
        with _LOCK:
            build_types = [_build_type_ref(bt) for bt in BUILD_TYPES.values()]
        return jsonify({"count": len(build_types), "buildType": build_types})

    @app.route("/app/rest/buildTypes", methods=["POST"])
    def create_build_type():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return _error(HttpStatus.BAD_REQUEST, "Bad Request: request body must be a JSON object")

        project_ref = data.get("project") or {}
        project_id = project_ref.get("id") or data.get("projectId")
        build_type_id = data.get("id")
        name = data.get("name") or ""

        with _LOCK:
            if not project_id:
                return _error(HttpStatus.BAD_REQUEST, "Bad Request: Build type creation request should contain project node.")
            if project_id not in PROJECTS:
                return _error(HttpStatus.NOT_FOUND, f"Not Found: No project found by locator 'id:{project_id}'")
            if not _can_create_in(_principal(), project_id):
                return _error(
                    HttpStatus.FORBIDDEN,
                    f'Forbidden: You do not have "Edit project" permission in project with id: {project_id}',
                )
            if not name.strip():
                return _error(HttpStatus.BAD_REQUEST, "Bad Request: When creating a build type, non empty name should be provided.")
            if not isinstance(build_type_id, str) or not _ID_PATTERN.match(build_type_id):
                return _error(
                    HttpStatus.INTERNAL_SERVER_ERROR,
                    f'Build configuration or template ID "{build_type_id}" is invalid.',
                )
            if build_type_id in BUILD_TYPES:
                return _error(
                    HttpStatus.BAD_REQUEST,
                    f'Bad Request: The build configuration / template ID "{build_type_id}" '
                    f"is already used by another configuration or template",
                )

            BUILD_TYPES[build_type_id] = {"id": build_type_id, "name": name, "projectId": project_id}
            view = _build_type_view(BUILD_TYPES[build_type_id])
        return jsonify(view)

    @app.route("/app/rest/buildTypes/id:<build_type_id>", methods=["GET"])
    def get_build_type(build_type_id: str):
        with _LOCK:
            build_type = BUILD_TYPES.get(build_type_id)
            if build_type is None:
                return _error(HttpStatus.NOT_FOUND, f"Not Found: No build type nor template is found by id '{build_type_id}'.")
            view = _build_type_view(build_type)
        return jsonify(view)

    @app.route("/app/rest/buildTypes/id:<build_type_id>", methods=["DELETE"])
    def delete_build_type(build_type_id: str):
        with _LOCK:
            if BUILD_TYPES.pop(build_type_id, None) is None:
                return _error(HttpStatus.NOT_FOUND, f"Not Found: No build type nor template is found by id '{build_type_id}'.")
        return Response(status=HttpStatus.NO_CONTENT)

    # ---- users --------------------------------------------------------------------
    @app.route("/app/rest/users", methods=["POST"])
    def create_user():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return _error(HttpStatus.BAD_REQUEST, "Bad Request: request body must be a JSON object")
        if not _principal()["admin"]:
            return _error(HttpStatus.FORBIDDEN, 'Forbidden: You do not have "Create users" permission')

        username = (data.get("username") or "").strip()
        with _LOCK:
            if not username:
                return _error(HttpStatus.BAD_REQUEST, "Bad Request: Username must not be empty when creating user.")
            if username in USERS:
                return _error(HttpStatus.BAD_REQUEST, f"Bad Request: Duplicate user account name: {username} is already used")
            user = {
                "id": _NEXT_USER_ID[0],
                "username": username,
                "password": data.get("password") or "",
                "name": data.get("name"),
                "email": data.get("email"),
                "roles": [],
            }
            _NEXT_USER_ID[0] += 1
            USERS[username] = user
            view = _user_view(user)
        return jsonify(view)

    @app.route("/app/rest/users/username:<username>", methods=["GET"])
    def get_user(username: str):
        with _LOCK:
            user = USERS.get(username)
            if user is None:
                return _error(HttpStatus.NOT_FOUND, f"Not Found: No user can be found by username '{username}'.")
            view = _user_view(user)
        return jsonify(view)

    @app.route("/app/rest/users/username:<username>", methods=["DELETE"])
    def delete_user(username: str):
        if not _principal()["admin"]:
            return _error(HttpStatus.FORBIDDEN, 'Forbidden: You do not have "Delete users" permission')
        with _LOCK:
            if USERS.pop(username, None) is None:
                return _error(HttpStatus.NOT_FOUND, f"Not Found: No user can be found by username '{username}'.")
        return Response(status=HttpStatus.NO_CONTENT)

    @app.route("/app/rest/users/username:<username>/roles", methods=["GET"])
    def get_user_roles(username: str):
        with _LOCK:
            user = USERS.get(username)
            if user is None:
                return _error(HttpStatus.NOT_FOUND, f"Not Found: No user can be found by username '{username}'.")
            roles = [_role_view(user, role) for role in user["roles"]]
        return jsonify({"role": roles})

    @app.route("/app/rest/users/username:<username>/roles/<role_id>/<scope>", methods=["PUT"])
    def assign_role(username: str, role_id: str, scope: str):
        if not _principal()["admin"]:
            return _error(HttpStatus.FORBIDDEN, 'Forbidden: You do not have "Change user roles" permission')
        with _LOCK:
            user = USERS.get(username)
            if user is None:
                return _error(HttpStatus.NOT_FOUND, f"Not Found: No user can be found by username '{username}'.")
            if not scope.startswith("p:") or scope[2:] not in PROJECTS:
                return _error(HttpStatus.NOT_FOUND, f"Not Found: No project found by locator '{scope}'")
            if role_id not in {Role.PROJECT_ADMIN, Role.PROJECT_DEVELOPER, Role.PROJECT_VIEWER}:
                return _error(HttpStatus.NOT_FOUND, f"Not Found: No role with id '{role_id}' found")
            role = {"roleId": role_id, "scope": scope}
            if role not in user["roles"]:
                user["roles"].append(role)
            view = _role_view(user, role)
        return jsonify(view)

    return app


reset_mock_state()
