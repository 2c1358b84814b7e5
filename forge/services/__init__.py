"""Release services.

Services implement the release logic, coordinating between configuration
(core/) and the external systems (registry/, cluster/, git/).
"""

from forge.services.artifacts import ArtifactInfo, ArtifactStore
from forge.services.migration import MigrationJobRunner, MigrationSpec
from forge.services.rollout import RolloutMonitor, RolloutSettings

__all__ = [
    # Metadata
    "ArtifactInfo",
    "ArtifactStore",
    # Cluster jobs
    "MigrationJobRunner",
    "MigrationSpec",
    "RolloutMonitor",
    "RolloutSettings",
]
