"""Persisting a project-wide path regeneration.

Shared by the requirement service (after structural mutations and for the
repair pass) and the project service (after a project prefix change).
"""

import logging

from reqtree.errors import RegenerationError
from reqtree.models import REQUIREMENTS
from reqtree.requirements.paths import generate_paths, path_annotations
from reqtree.store.gateway import DocumentStore

logger = logging.getLogger(__name__)


async def regenerate_project_paths(store: DocumentStore, project_id: str, prefix: str) -> int:
    """Recompute order/level/hierarchical_path for a project and write the changes.

    Only requirements whose annotations differ are updated. Returns how many
    were. Any failure is raised as RegenerationError.
    """
    try:
        nodes = await store.query_by_field(REQUIREMENTS, "project_id", project_id)
        annotations = path_annotations(generate_paths(nodes, prefix))

        batch = store.batch()
        for node in nodes:
            fields = {
                name: value
                for name, value in annotations[node["id"]].items()
                if node.get(name) != value
            }
            if fields:
                batch.update(REQUIREMENTS, node["id"], fields)
        updated = len(batch)
        await batch.commit()
    except Exception as e:
        raise RegenerationError(project_id, e) from e

    logger.info("Regenerated paths for project %s (%d updated)", project_id, updated)
    return updated
