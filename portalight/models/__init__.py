"""
Model package initializer.

This module exists to make sure SQLAlchemy's registry is populated in any runtime
that uses the ORM outside of `portalight/main.py` (workers, migrations, tests).
"""

# Import side-effects: register ORM mappings.
from portalight.models import (  # noqa: F401
    catalog_sync_history,
    cloud_secret,
    discovered_resource,
    github_config,
    project,
    provisioned_resource,
    team,
)

# Models that live under module domains.
import portalight.modules.governance.domain.security.audit_log  # noqa: F401, E402
