"""Configuration cleanup in two phases.

``get_data_to_delete`` is read-only: it selects configurations and everything
derived from them (sessions, images, boot templates) and refuses to go on when
any of it still configures or boots a node. ``delete`` removes what the first
phase returned, in dependency order.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Set, Tuple

from csm_connector.auth import Caller
from csm_connector.cleanup.filters import filter_configurations, filter_sessions, filter_templates
from csm_connector.errors import ConfigurationDerivativesNotFound, ConfigurationUsedError, CsmError, UnauthorizedError
from csm_connector.gateway.base import ClusterGateway
from csm_connector.models.bss import BootParameters
from csm_connector.models.cfs import Component, Configuration, Session
from csm_connector.utils.retry import RetryPolicy, Sleep, retry


logger = logging.getLogger(__name__)

# (session or template name, configuration name, image id)
Provenance = Tuple[str, str, str]


@dataclass
class DeletionCandidates:
    """Everything selected for deletion, with where each image came from."""
    sessions: List[Session] = field(default_factory=list)
    template_tuples: List[Provenance] = field(default_factory=list)
    image_ids: List[str] = field(default_factory=list)
    configuration_names: List[str] = field(default_factory=list)
    session_tuples: List[Provenance] = field(default_factory=list)
    configurations: List[Configuration] = field(default_factory=list)

    @property
    def session_names(self) -> List[str]:
        """Names of the sessions to delete."""
        return [session.name for session in self.sessions]

    @property
    def template_names(self) -> List[str]:
        """Unique names of the boot templates to delete."""
        return sorted({name for name, _, _ in self.template_tuples})


@dataclass
class DeletionReport:
    """Outcome of the delete phase."""
    deleted: Dict[str, List[str]] = field(default_factory=lambda: defaultdict(list))
    failed: Dict[str, List[str]] = field(default_factory=lambda: defaultdict(list))


def nodes_booting_image(image_id: str, boot_parameters: Sequence[BootParameters]) -> List[str]:
    """Sorted hosts whose boot parameters point at an image."""
    return sorted(
        host for params in boot_parameters if params.boot_image() == image_id
        for host in params.hosts
    )


def nodes_configured_with(configuration_name: str, components: Sequence[Component]) -> List[str]:
    """Sorted nodes whose desired configuration is ``configuration_name``."""
    return sorted(c.id for c in components if c.desired_config == configuration_name)


def _check_scope(caller: Caller, group_names: Sequence[str]):
    for group in group_names:
        if not caller.can_access(group):
            raise UnauthorizedError(f"HSM group '{group}' not allowed", group, caller.authorized_groups)


async def get_data_to_delete(
    gateway: ClusterGateway,
    caller: Caller,
    group_names: Sequence[str],
    pattern: Optional[str] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> DeletionCandidates:
    """Select configurations and derived data safe to delete."""
    _check_scope(caller, group_names)
    xnames = await gateway.get_group_members(list(group_names))

    logger.info("Fetching data from the backend...")
    components, configurations, sessions, templates, boot_parameters = await asyncio.gather(
        gateway.get_components(),
        gateway.get_configurations(),
        gateway.get_sessions(),
        gateway.get_templates(),
        gateway.get_boot_parameters(),
    )

    templates = filter_templates(templates, pattern, group_names, xnames)
    sessions = filter_sessions(sessions, pattern, group_names, xnames, keep_generic_sessions=caller.is_admin)
    scoped_xnames = set(xnames)
    selected = filter_configurations(
        configurations,
        group_names,
        templates,
        sessions,
        [c for c in components if c.id in scoped_xnames],
        pattern=pattern,
        since=since,
        until=until,
        limit=limit,
    )
    selected_names = {c.name for c in selected}
    if (since is not None and until is not None) or limit is not None:
        templates = [t for t in templates if t.configuration_name() in selected_names]
        sessions = [s for s in sessions if s.configuration_name() in selected_names]

    configuration_names = sorted(
        {t.configuration_name() for t in templates if t.configuration_name()}
        | {s.configuration_name() for s in sessions if s.configuration_name()}
    )

    image_ids = list(dict.fromkeys(
        image_id for session in sessions for image_id in session.result_ids()
    ))
    logger.info(f"Image ids to delete: {image_ids}")

    session_tuples: List[Provenance] = [
        (session.name, session.configuration_name() or "", session.first_result_id())
        for session in sessions if session.first_result_id()
    ]
    template_tuples: List[Provenance] = [
        (template.name or "", template.configuration_name() or "", image_id)
        for template in templates for image_id in template.image_ids()
    ]

    images_by_configuration: Dict[str, List[str]] = defaultdict(list)
    for _, configuration_name, image_id in template_tuples + session_tuples:
        if image_id not in images_by_configuration[configuration_name]:
            images_by_configuration[configuration_name].append(image_id)

    used_configurations: Set[str] = set()
    used_images: Set[str] = set()
    candidate_configurations = sorted(set(images_by_configuration) | set(configuration_names) | selected_names)
    for configuration_name in candidate_configurations:
        nodes = nodes_configured_with(configuration_name, components)
        if nodes:
            used_configurations.add(configuration_name)
            logger.warning(
                f"CFS configuration '{configuration_name}' can't be deleted. Reason:\n"
                f"CFS configuration '{configuration_name}' used as desired configuration "
                f"for nodes: {', '.join(nodes)}"
            )

    candidate_images = list(dict.fromkeys(
        image_ids + [i for ids in images_by_configuration.values() for i in ids]
    ))
    for image_id in candidate_images:
        nodes = nodes_booting_image(image_id, boot_parameters)
        if nodes:
            used_images.add(image_id)
            logger.warning(f"Image '{image_id}' used to boot nodes: {', '.join(nodes)}")

    if used_configurations or used_images:
        logger.error("User trying to delete configurations or images used by other clusters/nodes")
        raise ConfigurationUsedError(sorted(used_configurations), sorted(used_images))

    if not image_ids and not session_tuples and not template_tuples:
        requested = configuration_names or sorted(selected_names)
        logger.error(
            "Delete configuration - Not enough information to proceed. Could not find "
            f"information related to CFS configurations '{', '.join(requested)}'"
        )
        raise ConfigurationDerivativesNotFound(requested)

    return DeletionCandidates(
        sessions=sessions,
        template_tuples=template_tuples,
        image_ids=image_ids,
        configuration_names=configuration_names,
        session_tuples=session_tuples,
        configurations=[c for c in selected if c.name in configuration_names],
    )


async def _delete_with_retry(
    kind: str,
    name: str,
    operation,
    policy: RetryPolicy,
    sleep: Sleep,
    report: DeletionReport,
):
    logger.info(f"Deleting {kind} '{name}'")
    try:
        await retry(operation, policy, retry_on=(CsmError,), description=f"Delete {kind} '{name}'", sleep=sleep)
    except CsmError as e:
        logger.error(f"ERROR deleting {kind} {name}, please delete it manually.")
        logger.debug(f"ERROR:\n{e}")
        report.failed[kind].append(name)
        return
    logger.info(f"{kind} deleted: {name}")
    report.deleted[kind].append(name)


async def delete(
    gateway: ClusterGateway,
    configuration_names: Sequence[str],
    image_ids: Sequence[str],
    session_names: Sequence[str],
    template_names: Sequence[str],
    policy: Optional[RetryPolicy] = None,
    sleep: Sleep = asyncio.sleep,
) -> DeletionReport:
    """Delete images, boot sessions, sessions, boot templates then configurations.

    Failures are reported and skipped so one stuck item does not block the rest.
    """
    policy = policy or RetryPolicy()
    report = DeletionReport()

    for image_id in image_ids:
        logger.info(f"Deleting IMS image '{image_id}'")
        try:
            await gateway.delete_image(image_id)
        except CsmError as e:
            logger.error(f"{e}. Continue")
            report.failed["IMS image"].append(image_id)
            continue
        logger.info(f"IMS image deleted: {image_id}")
        report.deleted["IMS image"].append(image_id)

    for bos_session in await gateway.get_bos_sessions():
        if bos_session.template_name in template_names and bos_session.name:
            await gateway.delete_bos_session(bos_session.name)
            logger.info(f"BOS session deleted: {bos_session.name}")
            report.deleted["BOS session"].append(bos_session.name)
        else:
            logger.debug(f"Ignoring BOS session {bos_session.name}")

    for name in session_names:
        await _delete_with_retry(
            "CFS session", name, lambda name=name: gateway.delete_session(name), policy, sleep, report
        )

    for name in template_names:
        await _delete_with_retry(
            "BOS sessiontemplate", name, lambda name=name: gateway.delete_template(name), policy, sleep, report
        )

    for name in configuration_names:
        await _delete_with_retry(
            "CFS configuration", name, lambda name=name: gateway.delete_configuration(name), policy, sleep, report
        )

    return report
