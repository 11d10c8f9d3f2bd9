"""Boot template creation from the session_templates section."""

import json
import logging
from typing import Dict, List, Mapping, Optional, Sequence

from csm_connector.auth import Caller, is_universal_group
from csm_connector.errors import ConfigurationNotFound, CsmError, ImageNotFound, UnauthorizedError
from csm_connector.gateway.base import ClusterGateway
from csm_connector.models.bos import BootSet, BootTemplate, BosSession, Cfs
from csm_connector.models.ims import Image, Link
from csm_connector.models.satfile import (
    BootSetSpec,
    ImageSpec,
    SessionTemplateSpec,
    TemplateImageRef,
    TemplateImsId,
    TemplateImsImage,
)


logger = logging.getLogger(__name__)

DRY_RUN_LINK = Link(path="dryrun_path", etag="dryrun_etag", type="dryrun_type")


class BootTemplateBuilder:
    """Creates boot templates and optionally reboots their nodes."""

    def __init__(
        self,
        gateway: ClusterGateway,
        caller: Caller,
        dry_run: bool = False,
        reboot: bool = False,
    ):
        """Initialize boot template builder."""
        self.gateway = gateway
        self.caller = caller
        self.dry_run = dry_run
        self.reboot = reboot

    async def process_all(
        self,
        templates: Sequence[SessionTemplateSpec],
        registry: Mapping[str, str],
        images: Sequence[ImageSpec] = (),
    ) -> Dict[str, BootTemplate]:
        """Create every template in declaration order; returns name -> template."""
        if not templates:
            logger.warning("No session templates found in SAT file. Nothing to process")
            return {}

        created: Dict[str, BootTemplate] = {}
        for spec in templates:
            template = await self.create(spec, registry, images)
            created[spec.name] = template
            if self.reboot:
                await self.reboot_nodes(spec.name)
        return created

    async def create(
        self,
        spec: SessionTemplateSpec,
        registry: Mapping[str, str],
        images: Sequence[ImageSpec] = (),
    ) -> BootTemplate:
        """Build one boot template and upload it unless in dry run."""
        image = await self.resolve_image(spec, registry, images)
        link = image.link
        if link is None:
            if not self.dry_run:
                raise CsmError(f"Image '{image.id}' has no boot artifact link")
            link = DRY_RUN_LINK

        if not self.dry_run and not await self.gateway.get_configurations(spec.configuration):
            raise ConfigurationNotFound(spec.configuration)

        boot_sets: Dict[str, BootSet] = {}
        for boot_set_name, boot_set_spec in spec.bos_parameters.boot_sets.items():
            boot_sets[boot_set_name] = await self.build_boot_set(
                spec.name, boot_set_name, boot_set_spec, link, spec.configuration
            )

        template = BootTemplate(
            name=spec.name,
            description=spec.description,
            enable_cfs=True,
            cfs=Cfs(configuration=spec.configuration),
            boot_sets=boot_sets,
        )

        if self.dry_run:
            logger.info(
                f"Dry run mode: create BOS session template '{spec.name}':\n"
                f"{json.dumps(template.request_body(), indent=2)}"
            )
            return template

        created = await self.gateway.put_template(template, spec.name)
        logger.info(f"BOS session template '{spec.name}' created")
        return created

    async def build_boot_set(
        self,
        template_name: str,
        boot_set_name: str,
        spec: BootSetSpec,
        link: Link,
        configuration: str,
    ) -> BootSet:
        """Boot set pointing at the image artifact, with its target checked."""
        if spec.node_roles_group and not self.caller.is_admin:
            raise UnauthorizedError(
                f"Boot set '{boot_set_name}' in session template '{template_name}' targets "
                "node roles, only allowed for administrators",
                available=self.caller.authorized_groups,
            )

        for group in spec.node_groups or []:
            if not is_universal_group(group) and not self.caller.can_access(group):
                raise UnauthorizedError(
                    f"HSM group '{group}' in session_templates {template_name} not allowed",
                    group,
                    self.caller.authorized_groups,
                )

        if spec.node_list:
            await self._check_node_list(spec.node_list)

        return BootSet(
            name=boot_set_name,
            path=link.path,
            type=link.type,
            etag=link.etag,
            kernel_parameters=spec.kernel_parameters,
            node_list=spec.node_list,
            node_roles_groups=spec.node_roles_group,
            node_groups=spec.node_groups,
            rootfs_provider=spec.rootfs_provider,
            rootfs_provider_passthrough=spec.rootfs_provider_passthrough,
            cfs=Cfs(configuration=configuration),
            arch=spec.arch,
        )

    async def _check_node_list(self, node_list: List[str]):
        members = set(await self.gateway.get_group_members(self.caller.sorted_groups()))
        outside = sorted(set(node_list) - members)
        if outside:
            raise UnauthorizedError(
                f"Can't access all or any of the HSM members '{', '.join(outside)}'",
                available=self.caller.authorized_groups,
            )

    async def resolve_image(
        self,
        spec: SessionTemplateSpec,
        registry: Mapping[str, str],
        images: Sequence[ImageSpec] = (),
    ) -> Image:
        """Image booted by a template.

        ``image_ref`` and in-file names go through the registry of images built
        in this run; anything else is looked up in the cluster.
        """
        image = spec.image
        image_id: Optional[str] = None
        name: Optional[str] = None

        if isinstance(image, TemplateImageRef):
            image_id = registry.get(image.image_ref)
            if image_id is None:
                name = next(
                    (candidate.name for candidate in images if candidate.ref_name == image.image_ref),
                    image.image_ref,
                )
        elif isinstance(image, TemplateImsImage) and isinstance(image.ims, TemplateImsId):
            image_id = image.ims.id
        else:
            name = spec.image_name_hint()
            image_id = registry.get(name)
            if image_id is None:
                image_id = next(
                    (registry.get(candidate.key) for candidate in images if candidate.name == name),
                    None,
                )

        if image_id is not None:
            found = await self.gateway.get_images(image_id)
            label = image_id
        else:
            found = await self.gateway.search_images(self.caller.sorted_groups(), name=name, limit=1)
            label = name

        if found:
            return found[0]
        if self.dry_run:
            logger.info(f"Dry run mode: image '{label}' not in the cluster, using placeholder artifact")
            return Image(id=image_id, name=name or label, link=DRY_RUN_LINK)
        raise ImageNotFound(label)

    async def reboot_nodes(self, template_name: str):
        """Reboot the nodes of a template through a boot session."""
        session = BosSession(operation="reboot", template_name=template_name)
        if self.dry_run:
            logger.info(
                f"Dry run mode: create BOS session:\n"
                f"{json.dumps(session.model_dump(exclude_none=True), indent=2)}"
            )
            return
        created = await self.gateway.post_bos_session(session)
        logger.info(f"BOS session '{created.name}' created to reboot nodes of '{template_name}'")
