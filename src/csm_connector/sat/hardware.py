"""Hardware section: group membership patches."""

import logging
from typing import Dict, List, Sequence

from csm_connector.errors import GroupNotFound
from csm_connector.gateway.base import ClusterGateway
from csm_connector.models.satfile import HardwareNodes, HardwarePattern, HardwareSpec


logger = logging.getLogger(__name__)


async def apply_hardware(
    gateway: ClusterGateway,
    entries: Sequence[HardwareSpec],
    dry_run: bool = False,
) -> Dict[str, List[str]]:
    """Apply hardware entries; returns group label -> nodes added."""
    added: Dict[str, List[str]] = {}
    for entry in entries:
        if isinstance(entry, HardwarePattern):
            # Pattern based moves belong to the cluster pinning tool.
            logger.warning(
                f"Hardware pattern '{entry.pattern}' from '{entry.parent}' to '{entry.target}' "
                "must be applied with the cluster pinning tool, skipping"
            )
            continue

        nodes = await _missing_nodes(gateway, entry)
        if not nodes:
            logger.info(f"HSM group '{entry.target}' already contains {entry.nodes()}")
            continue

        if dry_run:
            logger.info(f"Dry run mode: add nodes {nodes} to HSM group '{entry.target}'")
        else:
            await gateway.add_group_members(entry.target, nodes)
            logger.info(f"Nodes {nodes} added to HSM group '{entry.target}'")
        added[entry.target] = nodes
    return added


async def _missing_nodes(gateway: ClusterGateway, entry: HardwareNodes) -> List[str]:
    groups = await gateway.get_groups([entry.target])
    if not groups:
        raise GroupNotFound(entry.target)
    members = set(groups[0].member_ids())
    return [node for node in entry.nodes() if node not in members]
