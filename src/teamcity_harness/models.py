"""Response models for the TeamCity entities the suites create.

Each model knows the wire name and JSON type of its fields, so payloads can
be converted with ``from_dict``/``to_dict`` and checked with
``rules.validate_shape``.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, Mapping, Type, TypeVar

T = TypeVar("T", bound="ResponseModel")


def wire_field(wire: str | None = None, json_type: str = "string", optional: bool = False) -> Any:
    metadata = {"wire": wire, "json_type": json_type, "optional": optional}
    if optional:
        return field(default=None, metadata=metadata)
    return field(metadata=metadata)


@dataclass
class ResponseModel:
    @classmethod
    def wire_fields(cls) -> Dict[str, Dict[str, Any]]:
        """Map wire name -> {attr, json_type, optional}."""
        described = {}
        for f in fields(cls):
            wire = f.metadata.get("wire") or f.name
            described[wire] = {
                "attr": f.name,
                "json_type": f.metadata.get("json_type", "string"),
                "optional": f.metadata.get("optional", False),
            }
        return described

    @classmethod
    def from_dict(cls: Type[T], data: Mapping[str, Any]) -> T:
        kwargs = {}
        for wire, spec in cls.wire_fields().items():
            if wire in data:
                kwargs[spec["attr"]] = data[wire]
            elif not spec["optional"]:
                raise KeyError(f"{cls.__name__} payload is missing '{wire}'")
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        data = {}
        for wire, spec in self.wire_fields().items():
            value = getattr(self, spec["attr"])
            if value is None and spec["optional"]:
                continue
            data[wire] = value
        return data


@dataclass
class ProjectResponse(ResponseModel):
    id: str = wire_field()
    name: str = wire_field()
    parent_project_id: str = wire_field("parentProjectId")
    href: str = wire_field()
    web_url: str = wire_field("webUrl")
    virtual: bool | None = wire_field(json_type="boolean", optional=True)
    description: str | None = wire_field(optional=True)
    parent_project: Dict[str, Any] | None = wire_field("parentProject", json_type="object", optional=True)
    build_types: Dict[str, Any] | None = wire_field("buildTypes", json_type="object", optional=True)
    templates: Dict[str, Any] | None = wire_field(json_type="object", optional=True)
    parameters: Dict[str, Any] | None = wire_field(json_type="object", optional=True)
    vcs_roots: Dict[str, Any] | None = wire_field("vcsRoots", json_type="object", optional=True)
    project_features: Dict[str, Any] | None = wire_field("projectFeatures", json_type="object", optional=True)
    projects: Dict[str, Any] | None = wire_field(json_type="object", optional=True)


@dataclass
class BuildTypeResponse(ResponseModel):
    id: str = wire_field()
    name: str = wire_field()
    project_id: str = wire_field("projectId")
    href: str = wire_field()
    web_url: str = wire_field("webUrl")
    project_name: str | None = wire_field("projectName", optional=True)
    paused: bool | None = wire_field(json_type="boolean", optional=True)
    project: Dict[str, Any] | None = wire_field(json_type="object", optional=True)
    parameters: Dict[str, Any] | None = wire_field(json_type="object", optional=True)


@dataclass
class UserResponse(ResponseModel):
    id: int = wire_field(json_type="number")
    username: str = wire_field()
    href: str = wire_field()
    name: str | None = wire_field(optional=True)
    email: str | None = wire_field(optional=True)
    roles: Dict[str, Any] | None = wire_field(json_type="object", optional=True)


@dataclass
class ServerResponse(ResponseModel):
    version: str = wire_field()
    version_major: int = wire_field("versionMajor", json_type="number")
    version_minor: int = wire_field("versionMinor", json_type="number")
    build_number: str = wire_field("buildNumber")
    build_date: str | None = wire_field("buildDate", optional=True)
    internal_id: str | None = wire_field("internalId", optional=True)
    role: str | None = wire_field(optional=True)
    web_url: str | None = wire_field("webUrl", optional=True)
