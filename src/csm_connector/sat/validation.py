"""SAT file validation against itself and the live cluster.

Validation is read-only and fails on the first problem found.
"""

import asyncio
import logging
from collections import Counter
from typing import Dict, List, Optional, Sequence

from csm_connector.auth import Caller, filter_system_groups, is_universal_group
from csm_connector.errors import (
    ConfigurationNotFound,
    DanglingReferenceError,
    GroupNotFound,
    ImageNotFound,
    RecipeNotFound,
    SatFileError,
    UnauthorizedError,
)
from csm_connector.gateway.base import ClusterGateway
from csm_connector.models.cfs import Configuration
from csm_connector.models.ims import Image, Recipe, latest_image_named
from csm_connector.models.satfile import (
    ExistingImage,
    ExistingRecipe,
    HardwareNodes,
    HardwarePattern,
    ImageRef,
    ImageSpec,
    Product,
    SatFile,
    SessionTemplateSpec,
    TemplateImageRef,
    TemplateImsId,
    TemplateImsImage,
    UnsupportedBase,
)
from csm_connector.sat.catalog import ProductCatalog, resolve_product
from csm_connector.sat.resolver import dependency_key, in_file_keys, iter_build_order, resolution_key


logger = logging.getLogger(__name__)


def validate_configurations_section(sat_file: SatFile):
    """Configurations need a consumer: an images or a session_templates section."""
    if sat_file.configurations and not sat_file.images and not sat_file.session_templates:
        raise SatFileError(
            "Incorrect SAT file. Please define either an 'images' or a "
            "'session_templates' section"
        )


def check_build_order(specs: Sequence[ImageSpec]):
    """Dry walk of the build order to reject cycles before anything is built."""
    processed = set()
    for spec in iter_build_order(specs, processed):
        processed.add(resolution_key(spec))


def _check_unique(values: List[str], what: str):
    duplicates = sorted(value for value, count in Counter(values).items() if count > 1)
    if duplicates:
        raise SatFileError(f"Duplicated {what} in SAT file: {', '.join(duplicates)}")


class SatFileValidator:
    """Cross checks a SAT file with the cluster before any mutation."""

    def __init__(
        self,
        gateway: ClusterGateway,
        caller: Caller,
        catalog: Optional[ProductCatalog] = None,
        system_groups: Sequence[str] = (),
    ):
        """Initialize validator."""
        self.gateway = gateway
        self.caller = caller
        self.catalog = catalog or {}
        self.system_groups = list(system_groups)

    async def validate(self, sat_file: SatFile, dry_run: bool = False):
        """Run every section validator."""
        await self.validate_hardware_section(sat_file, dry_run)
        configurations, images, recipes = await asyncio.gather(
            self.gateway.get_configurations(),
            self.gateway.get_images(),
            self.gateway.get_recipes(),
        )

        validate_configurations_section(sat_file)
        await self.validate_images_section(sat_file, configurations, images, recipes)
        await self.validate_session_templates_section(sat_file, configurations)
        logger.info("SAT file validated")

    # -- hardware

    async def validate_hardware_section(self, sat_file: SatFile, dry_run: bool = False):
        """Target and parent groups must be in the caller scope and node targets must exist."""
        entries = sat_file.hardware or []
        node_targets = []

        for entry in entries:
            logger.info(f"Validate 'hardware' entry for HSM group '{entry.target}'")
            groups = [entry.target] + ([entry.parent] if entry.parent else [])
            for group in groups:
                if not self.caller.can_access(group):
                    raise UnauthorizedError(
                        f"HSM group '{group}' in hardware section not allowed",
                        group,
                        self.caller.authorized_groups,
                    )

            if isinstance(entry, HardwarePattern):
                if not dry_run:
                    raise SatFileError(
                        f"Hardware pattern '{entry.pattern}' for HSM group '{entry.target}' "
                        "must be applied with the cluster pinning tool"
                    )
            elif isinstance(entry, HardwareNodes):
                node_targets.append(entry.target)

        if node_targets:
            found = {group.label for group in await self.gateway.get_groups(sorted(set(node_targets)))}
            for target in node_targets:
                if target not in found:
                    raise GroupNotFound(target)

    # -- images

    async def validate_images_section(
        self,
        sat_file: SatFile,
        configurations: List[Configuration],
        images: List[Image],
        recipes: List[Recipe],
    ):
        """Validate bases, configurations and target groups of every image."""
        specs = sat_file.images or []
        _check_unique([spec.name for spec in specs], "image names")
        _check_unique([spec.ref_name for spec in specs if spec.ref_name], "image ref_names")

        configuration_names = sat_file.configuration_names() | {c.name for c in configurations}
        ref_names = sat_file.ref_names()
        keys_by_name = in_file_keys(specs)

        for spec in specs:
            logger.info(f"Validate 'image' '{spec.name}'")
            self._validate_image_base(spec, ref_names, keys_by_name, images, recipes)

            if spec.configuration and spec.configuration not in configuration_names:
                logger.error(f"Configuration '{spec.configuration}' not found in SAT file nor in the cluster")
                raise ConfigurationNotFound(spec.configuration)

            self._validate_image_groups(spec)

        check_build_order(specs)

    def _validate_image_base(
        self,
        spec: ImageSpec,
        ref_names,
        keys_by_name: Dict[str, str],
        images: List[Image],
        recipes: List[Recipe],
    ):
        source = spec.source

        if isinstance(source, ImageRef):
            if source.ref_name not in ref_names:
                raise DanglingReferenceError(
                    f"Could not find image with ref name '{source.ref_name}' in SAT file. "
                    f"Cancelling image build process for '{spec.name}'"
                )
        elif isinstance(source, ExistingImage):
            if source.id is not None:
                if not any(image.id == source.id for image in images):
                    raise ImageNotFound(source.id)
            elif dependency_key(spec, keys_by_name) is not None:
                logger.info(f"Base image '{source.name}' of image '{spec.name}' found in SAT file")
            elif latest_image_named(images, source.name) is None:
                logger.error(f"Base image '{source.name}' not found in SAT file nor in the cluster")
                raise ImageNotFound(source.name)
        elif isinstance(source, ExistingRecipe):
            if source.id is not None:
                if not any(recipe.id == source.id for recipe in recipes):
                    raise RecipeNotFound(source.id)
            elif not any(recipe.name == source.name for recipe in recipes):
                raise RecipeNotFound(source.name)
        elif isinstance(source, Product):
            resolve_product(self.catalog, source, spec.name)
        elif isinstance(source, UnsupportedBase):
            raise SatFileError(f"Image '{spec.name}': {source.reason}")

    def _validate_image_groups(self, spec: ImageSpec):
        groups = filter_system_groups(spec.configuration_group_names or [], self.system_groups)
        if not groups:
            raise SatFileError(
                f"Image '{spec.name}' must have group name values assigned to it. "
                "Canceling image build process"
            )
        for group in groups:
            if is_universal_group(group):
                continue
            if not self.caller.can_access(group):
                raise UnauthorizedError(
                    f"HSM group '{group}' in image '{spec.name}' not allowed",
                    group,
                    self.caller.authorized_groups,
                )

    # -- session templates

    async def validate_session_templates_section(self, sat_file: SatFile, configurations: List[Configuration]):
        """Validate groups, image and configuration of every boot template."""
        templates = sat_file.session_templates or []
        _check_unique([template.name for template in templates], "session template names")
        configuration_names = sat_file.configuration_names() | {c.name for c in configurations}

        for template in templates:
            logger.info(f"Validate 'session_template' '{template.name}'")

            groups = template.target_groups()
            if groups is None:
                raise SatFileError(
                    f"No HSM group found in session_templates section in SAT file "
                    f"for '{template.name}'"
                )
            for group in groups:
                if is_universal_group(group):
                    continue
                if not self.caller.can_access(group):
                    raise UnauthorizedError(
                        f"HSM group '{group}' in session_templates {template.name} not allowed",
                        group,
                        self.caller.authorized_groups,
                    )

            await self._validate_template_image(template, sat_file)

            if template.configuration not in configuration_names:
                raise ConfigurationNotFound(template.configuration)

    async def _validate_template_image(self, template: SessionTemplateSpec, sat_file: SatFile):
        image = template.image
        in_file_names = {spec.name for spec in sat_file.images or []}

        if isinstance(image, TemplateImageRef):
            if image.image_ref not in sat_file.ref_names():
                raise DanglingReferenceError(f"Could not find image ref '{image.image_ref}' in SAT file")
            return

        if isinstance(image, TemplateImsImage) and isinstance(image.ims, TemplateImsId):
            if not await self.gateway.get_images(image.ims.id):
                raise ImageNotFound(image.ims.id)
            return

        name = template.image_name_hint()
        if name in sat_file.ref_names() or name in in_file_names:
            return

        logger.warning(f"Image name '{name}' not found in SAT file, looking in the cluster")
        found = await self.gateway.search_images(self.caller.sorted_groups(), name=name, limit=1)
        if not found:
            raise ImageNotFound(name)
