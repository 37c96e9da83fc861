"""
Catalog declaration parsing and validation.

A catalog file is either the envelope format

    apiVersion: portalight.dev/v1alpha1
    kind: ProjectCatalog
    metadata: {name, title, description, owner, tags, links}
    spec: {services: [...]}

or a flat shorthand mapping with top-level `name`, `owner`, `description`,
`links` and optional `services`. Both produce one PROJECT declaration with
nested SERVICE declarations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import yaml

from portalight.shared.core.exceptions import CatalogParseError

API_VERSION = "portalight.dev/v1alpha1"
PROJECT_CATALOG_KIND = "ProjectCatalog"
CATALOG_EXTENSIONS = (".yaml", ".yml")


class DeclarationKind(str, Enum):
    PROJECT = "project"
    SERVICE = "service"


@dataclass(frozen=True)
class CatalogLink:
    label: str
    url: str
    type: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"label": self.label, "url": self.url}
        if self.type:
            data["type"] = self.type
        return data


@dataclass
class CatalogDeclaration:
    kind: DeclarationKind
    name: str
    path: str
    description: Optional[str] = None
    owner_team: Optional[str] = None
    title: Optional[str] = None
    links: list[CatalogLink] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)
    # SERVICE-only attributes
    language: Optional[str] = None
    environment: Optional[str] = None
    repository: Optional[str] = None
    dependencies: dict[str, list[str]] = field(default_factory=dict)
    # PROJECT-only
    services: list["CatalogDeclaration"] = field(default_factory=list)


def is_catalog_file(path: str) -> bool:
    return path.lower().endswith(CATALOG_EXTENSIONS)


def _as_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_str_list(value: Any, field_name: str, errors: list[str]) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        errors.append(f"{field_name} must be a list")
        return []
    return [str(item).strip() for item in value if str(item).strip()]


def _parse_links(value: Any, field_name: str, errors: list[str]) -> list[CatalogLink]:
    if value is None:
        return []
    if not isinstance(value, list):
        errors.append(f"{field_name} must be a list")
        return []
    links: list[CatalogLink] = []
    for idx, item in enumerate(value):
        if not isinstance(item, dict):
            errors.append(f"{field_name}[{idx}] must be a mapping")
            continue
        url = _as_str(item.get("url"))
        if not url:
            errors.append(f"{field_name}[{idx}].url is required")
            continue
        label = _as_str(item.get("label")) or _as_str(item.get("title")) or url
        links.append(CatalogLink(label=label, url=url, type=_as_str(item.get("type"))))
    return links


def _parse_dependencies(value: Any, field_name: str, errors: list[str]) -> dict[str, list[str]]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        errors.append(f"{field_name} must be a mapping")
        return {}
    return {
        key: _as_str_list(value.get(key), f"{field_name}.{key}", errors)
        for key in ("infrastructure", "services")
        if value.get(key) is not None
    }


def _parse_service(
    item: Any, idx: int, path: str, project_owner: Optional[str], errors: list[str]
) -> Optional[CatalogDeclaration]:
    prefix = f"services[{idx}]"
    if not isinstance(item, dict):
        errors.append(f"{prefix} must be a mapping")
        return None
    name = _as_str(item.get("name"))
    if not name:
        errors.append(f"{prefix}.name is required")
        return None
    return CatalogDeclaration(
        kind=DeclarationKind.SERVICE,
        name=name,
        path=path,
        title=_as_str(item.get("title")) or name,
        description=_as_str(item.get("description")),
        owner_team=_as_str(item.get("owner")) or project_owner,
        language=_as_str(item.get("language")),
        environment=_as_str(item.get("environment")),
        repository=_as_str(item.get("repository")),
        tags=_as_str_list(item.get("tags"), f"{prefix}.tags", errors),
        links=_parse_links(item.get("links"), f"{prefix}.links", errors),
        dependencies=_parse_dependencies(
            item.get("dependencies"), f"{prefix}.dependencies", errors
        ),
        raw=item,
    )


def _parse_services(
    value: Any, path: str, owner: Optional[str], errors: list[str]
) -> list[CatalogDeclaration]:
    if value is None:
        return []
    if not isinstance(value, list):
        errors.append("services must be a list")
        return []
    services: list[CatalogDeclaration] = []
    seen: set[str] = set()
    for idx, item in enumerate(value):
        service = _parse_service(item, idx, path, owner, errors)
        if service is None:
            continue
        if service.name in seen:
            errors.append(f"duplicate service name: {service.name}")
            continue
        seen.add(service.name)
        services.append(service)
    return services


def _from_envelope(document: dict[str, Any], path: str, errors: list[str]) -> CatalogDeclaration:
    if document.get("apiVersion") != API_VERSION:
        errors.append(
            f"unsupported apiVersion: {document.get('apiVersion')!r} (expected {API_VERSION})"
        )
    if document.get("kind") != PROJECT_CATALOG_KIND:
        errors.append(
            f"unsupported kind: {document.get('kind')!r} (expected {PROJECT_CATALOG_KIND})"
        )

    metadata = document.get("metadata")
    if not isinstance(metadata, dict):
        errors.append("metadata is required")
        metadata = {}
    spec = document.get("spec") or {}
    if not isinstance(spec, dict):
        errors.append("spec must be a mapping")
        spec = {}

    name = _as_str(metadata.get("name"))
    if not name:
        errors.append("metadata.name is required")
    owner = _as_str(metadata.get("owner"))

    return CatalogDeclaration(
        kind=DeclarationKind.PROJECT,
        name=name or "",
        path=path,
        title=_as_str(metadata.get("title")) or name,
        description=_as_str(metadata.get("description")),
        owner_team=owner,
        tags=_as_str_list(metadata.get("tags"), "metadata.tags", errors),
        links=_parse_links(metadata.get("links"), "metadata.links", errors),
        services=_parse_services(spec.get("services"), path, owner, errors),
        raw=document,
    )


def _from_flat(document: dict[str, Any], path: str, errors: list[str]) -> CatalogDeclaration:
    kind_raw = str(document.get("kind") or DeclarationKind.PROJECT.value).lower()
    try:
        kind = DeclarationKind(kind_raw)
    except ValueError:
        errors.append(f"unsupported kind: {document.get('kind')!r}")
        kind = DeclarationKind.PROJECT

    name = _as_str(document.get("name"))
    if not name:
        errors.append("name is required")
    owner = _as_str(document.get("owner")) or _as_str(document.get("owner_team"))

    declaration = CatalogDeclaration(
        kind=DeclarationKind.PROJECT,
        name=name or "",
        path=path,
        title=_as_str(document.get("title")) or name,
        description=_as_str(document.get("description")),
        owner_team=owner,
        tags=_as_str_list(document.get("tags"), "tags", errors),
        links=_parse_links(document.get("links"), "links", errors),
        raw=document,
    )
    if kind == DeclarationKind.SERVICE:
        # A single-service file is a project carrying exactly that service.
        service = _parse_service(document, 0, path, owner, errors)
        declaration.services = [service] if service else []
    else:
        declaration.services = _parse_services(document.get("services"), path, owner, errors)
    return declaration


def parse_catalog_document(content: bytes | str, path: str) -> CatalogDeclaration:
    """
    Parse and validate one catalog file.

    Raises:
        CatalogParseError carrying every validation problem found.
    """
    try:
        document = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise CatalogParseError(
            f"Invalid YAML in {path}: {exc}", errors=[f"invalid YAML: {exc}"]
        ) from exc

    if not isinstance(document, dict):
        raise CatalogParseError(
            f"Invalid catalog file {path}: expected a mapping at the top level",
            errors=["expected a mapping at the top level"],
        )

    errors: list[str] = []
    if "apiVersion" in document or "metadata" in document:
        declaration = _from_envelope(document, path, errors)
    else:
        declaration = _from_flat(document, path, errors)

    if errors:
        raise CatalogParseError(
            f"Invalid catalog file {path}: {'; '.join(errors)}", errors=errors
        )
    return declaration
