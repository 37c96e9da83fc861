import pytest

from portalight.modules.catalog.domain.declaration import (
    DeclarationKind,
    is_catalog_file,
    parse_catalog_document,
)
from portalight.shared.core.exceptions import CatalogParseError

ENVELOPE = b"""
apiVersion: portalight.dev/v1alpha1
kind: ProjectCatalog
metadata:
  name: payments
  title: Payments Platform
  description: Card and wallet payments
  owner: payments-team
  tags: [pci, tier-1]
  links:
    - title: Runbook
      url: https://wiki.example.com/payments
spec:
  services:
    - name: payments-api
      language: python
      environment: production
      dependencies:
        infrastructure: [payments-db]
        services: [ledger]
    - name: payments-worker
      owner: payments-oncall
"""


def test_envelope_format_parses_project_and_services():
    declaration = parse_catalog_document(ENVELOPE, "projects/payments.yaml")

    assert declaration.kind == DeclarationKind.PROJECT
    assert declaration.name == "payments"
    assert declaration.title == "Payments Platform"
    assert declaration.owner_team == "payments-team"
    assert declaration.tags == ["pci", "tier-1"]
    assert declaration.links[0].label == "Runbook"
    assert declaration.path == "projects/payments.yaml"

    api, worker = declaration.services
    assert api.kind == DeclarationKind.SERVICE
    assert api.language == "python"
    assert api.dependencies == {"infrastructure": ["payments-db"], "services": ["ledger"]}
    # Services inherit the project owner unless they declare their own.
    assert api.owner_team == "payments-team"
    assert worker.owner_team == "payments-oncall"


def test_flat_format_parses():
    declaration = parse_catalog_document(
        "name: search\nowner: discovery\ndescription: Site search\n", "projects/search.yml"
    )

    assert declaration.name == "search"
    assert declaration.title == "search"
    assert declaration.owner_team == "discovery"
    assert declaration.services == []


def test_flat_service_file_becomes_single_service_project():
    declaration = parse_catalog_document(
        "kind: service\nname: ledger\nlanguage: go\n", "projects/ledger.yaml"
    )

    assert declaration.kind == DeclarationKind.PROJECT
    assert [s.name for s in declaration.services] == ["ledger"]
    assert declaration.services[0].language == "go"


def test_missing_name_reports_every_problem():
    with pytest.raises(CatalogParseError) as exc_info:
        parse_catalog_document(
            "apiVersion: v0\nkind: Other\nmetadata: {}\n", "projects/bad.yaml"
        )

    errors = exc_info.value.errors
    assert any("apiVersion" in e for e in errors)
    assert any("kind" in e for e in errors)
    assert "metadata.name is required" in errors
    assert exc_info.value.details["validation_errors"] == errors
    assert exc_info.value.status_code == 422


def test_invalid_yaml_raises_parse_error():
    with pytest.raises(CatalogParseError) as exc_info:
        parse_catalog_document("name: [unclosed", "projects/broken.yaml")

    assert "Invalid YAML" in exc_info.value.message


def test_non_mapping_document_is_rejected():
    with pytest.raises(CatalogParseError):
        parse_catalog_document("- just\n- a list\n", "projects/list.yaml")


def test_duplicate_service_names_are_rejected():
    content = "name: dup\nservices:\n  - name: api\n  - name: api\n"
    with pytest.raises(CatalogParseError) as exc_info:
        parse_catalog_document(content, "projects/dup.yaml")

    assert "duplicate service name: api" in exc_info.value.errors


def test_link_without_url_is_an_error():
    content = "name: x\nlinks:\n  - title: nowhere\n"
    with pytest.raises(CatalogParseError) as exc_info:
        parse_catalog_document(content, "projects/x.yaml")

    assert "links[0].url is required" in exc_info.value.errors


@pytest.mark.parametrize(
    "path,expected",
    [
        ("projects/a.yaml", True),
        ("projects/a.YML", True),
        ("projects/README.md", False),
        ("projects/a.json", False),
    ],
)
def test_is_catalog_file(path, expected):
    assert is_catalog_file(path) is expected
