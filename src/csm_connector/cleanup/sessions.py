"""Delete a configuration session, cancelling what it is still doing."""

import logging
from typing import List

from csm_connector.auth import Caller
from csm_connector.errors import CsmError, SessionNotFound, UnauthorizedError
from csm_connector.gateway.base import ClusterGateway
from csm_connector.models.cfs import Session


logger = logging.getLogger(__name__)

RETRY_POLICY_OPTION = "default_batcher_retry_policy"


async def session_xnames(gateway: ClusterGateway, caller: Caller, session: Session) -> List[str]:
    """Nodes touched by a session: members of its groups plus its ansible limit."""
    groups = session.target_groups()
    for group in groups:
        if not caller.can_access(group):
            raise UnauthorizedError(
                f"HSM group '{group}' in CFS session '{session.name}' not allowed",
                group,
                caller.authorized_groups,
            )
    members = await gateway.get_group_members(groups) if session.target_definition() == "dynamic" else []
    return sorted(set(members) | set(session.target_xnames()))


async def cancel_dynamic_session(gateway: ClusterGateway, xnames: List[str], dry_run: bool = False):
    """Stop the batcher retrying nodes by setting their error count to the retry policy."""
    options = await gateway.get_options()
    retry_policy = options.get(RETRY_POLICY_OPTION)
    if retry_policy is None:
        raise CsmError(f"CFS option '{RETRY_POLICY_OPTION}' not found")

    components = [
        c.model_copy(update={"error_count": int(retry_policy)})
        for c in await gateway.get_components(xnames) if c.id in xnames
    ]

    logger.info(f"Update error count on nodes {xnames} to {retry_policy}")
    if dry_run:
        logger.info(f"Dry run mode: update error count on nodes {[c.id for c in components]}")
        return
    await gateway.put_components(components)


async def delete_session_images(gateway: ClusterGateway, image_ids: List[str], dry_run: bool = False):
    """Delete images produced by a session unless a node boots them."""
    boot_parameters = await gateway.get_boot_parameters()
    booted = {params.boot_image() for params in boot_parameters}
    for image_id in image_ids:
        if image_id in booted:
            logger.warning(f"Image '{image_id}' is a boot node image. It will not be deleted.")
            continue
        if dry_run:
            logger.info(f"Dry run mode: CFS session target definition is 'image'. Deleting image '{image_id}'")
            continue
        await gateway.delete_image(image_id)
        logger.info(f"IMS image deleted: {image_id}")


async def delete_and_cancel_session(
    gateway: ClusterGateway,
    caller: Caller,
    session_name: str,
    dry_run: bool = False,
) -> Session:
    """Cancel a dynamic session or clean the images of an image session, then delete it."""
    found = await gateway.get_sessions(session_name)
    if not found:
        raise SessionNotFound(session_name)
    session = found[0]
    logger.debug(f"Deleting session '{session.name}'")

    definition = session.target_definition()
    if definition == "dynamic":
        logger.info("CFS session target definition is 'dynamic'.")
        xnames = await session_xnames(gateway, caller, session)
        await cancel_dynamic_session(gateway, xnames, dry_run=dry_run)
    elif definition == "image":
        await session_xnames(gateway, caller, session)
        image_ids = session.result_ids()
        if image_ids:
            await delete_session_images(gateway, image_ids, dry_run=dry_run)
    else:
        raise CsmError(
            f"CFS session target definition is '{definition}'. Don't know how to continue. Exit"
        )

    if dry_run:
        logger.info(f"Dry run mode: delete CFS session '{session.name}'")
    else:
        await gateway.delete_session(session.name)
        logger.info(f"CFS session deleted: {session.name}")
    return session
