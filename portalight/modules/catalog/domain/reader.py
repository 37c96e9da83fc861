from dataclasses import dataclass

import structlog

from portalight.modules.catalog.domain.declaration import (
    CatalogDeclaration,
    is_catalog_file,
    parse_catalog_document,
)
from portalight.modules.catalog.domain.ports import SourceControlClient

logger = structlog.get_logger()


@dataclass(frozen=True)
class RepositoryCoordinate:
    owner: str
    repo: str
    branch: str = "main"
    root: str = "projects"

    @property
    def root_prefix(self) -> str:
        root = self.root.strip("/")
        return f"{root}/" if root else ""

    @property
    def ref(self) -> str:
        return f"refs/heads/{self.branch}"


class CatalogSourceReader:
    """
    Pure read adapter over the catalog repository.

    Transport failures propagate as SourceUnavailableError, a missing file as
    CatalogNotFoundError and bad content as CatalogParseError, so the
    reconciler can tell a transient failure from one that needs a content fix.
    """

    def __init__(self, client: SourceControlClient, coordinate: RepositoryCoordinate) -> None:
        self.client = client
        self.coordinate = coordinate

    async def list_candidate_files(self) -> list[str]:
        c = self.coordinate
        paths = await self.client.list_tree(c.owner, c.repo, c.branch, c.root)
        candidates = sorted(
            p for p in paths if p.startswith(c.root_prefix) and is_catalog_file(p)
        )
        logger.info(
            "catalog_scan_completed",
            repo=f"{c.owner}/{c.repo}",
            branch=c.branch,
            root=c.root,
            files=len(candidates),
        )
        return candidates

    async def fetch_and_parse(self, path: str) -> CatalogDeclaration:
        c = self.coordinate
        content = await self.client.get_file_content(c.owner, c.repo, c.branch, path)
        return parse_catalog_document(content, path)
