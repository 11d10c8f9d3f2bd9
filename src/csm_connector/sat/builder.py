"""Image build driver for the images section."""

import asyncio
import json
import logging
import uuid
from typing import Callable, Dict, Iterable, MutableMapping, Optional, Sequence

from csm_connector.auth import filter_system_groups
from csm_connector.errors import BuildFailure, ImageNotFound, KeyNotFound, RecipeNotFound, SatFileError
from csm_connector.gateway.base import ClusterGateway
from csm_connector.models.cfs import Session
from csm_connector.models.config import PollingConfig
from csm_connector.models.ims import Job, latest_image_named
from csm_connector.models.satfile import (
    ExistingImage,
    ExistingRecipe,
    ImageRef,
    ImageSpec,
    Product,
    UnsupportedBase,
)
from csm_connector.sat.catalog import ProductCatalog, resolve_product
from csm_connector.sat.resolver import dependency_key, in_file_keys, iter_build_order, resolution_key
from csm_connector.utils.retry import Sleep, poll_until


logger = logging.getLogger(__name__)

ROOT_KEY_NAME = "mgmt root key"

ProcessedImageRegistry = MutableMapping[str, str]


def random_id() -> str:
    """Placeholder artifact id used in dry run."""
    return str(uuid.uuid4())


class ImageBuildDriver:
    """Builds every image of a SAT file in dependency order.

    Each image gets its base artifact (existing image, recipe build, product
    catalog entry or an image built earlier in the same run) and is then
    customized by a configuration session. Built ids are recorded in the
    caller supplied registry under the image's resolution key.
    """

    def __init__(
        self,
        gateway: ClusterGateway,
        catalog: Optional[ProductCatalog] = None,
        dry_run: bool = False,
        ansible_verbosity: Optional[int] = None,
        ansible_passthrough: Optional[str] = None,
        polling: Optional[PollingConfig] = None,
        system_groups: Iterable[str] = (),
        id_generator: Callable[[], str] = random_id,
        sleep: Sleep = asyncio.sleep,
    ):
        """Initialize image build driver."""
        self.gateway = gateway
        self.catalog = catalog or {}
        self.dry_run = dry_run
        self.ansible_verbosity = ansible_verbosity
        self.ansible_passthrough = ansible_passthrough
        self.polling = polling or PollingConfig()
        self.system_groups = list(system_groups)
        self.id_generator = id_generator
        self.sleep = sleep

    async def build_all(self, specs: Sequence[ImageSpec], registry: ProcessedImageRegistry) -> Dict[str, ImageSpec]:
        """Build every spec; returns built image id -> spec.

        Images built before a failure stay in the registry and in the cluster.
        """
        if not specs:
            logger.warning("No images found in SAT file. Nothing to process")
            return {}

        built: Dict[str, ImageSpec] = {}
        keys_by_name = in_file_keys(specs)
        for spec in iter_build_order(specs, registry.keys()):
            image_id = await self.build_image(spec, registry, keys_by_name)
            registry[resolution_key(spec)] = image_id
            built[image_id] = spec
        return built

    async def build_image(
        self,
        spec: ImageSpec,
        registry: ProcessedImageRegistry,
        keys_by_name: Optional[Dict[str, str]] = None,
    ) -> str:
        """Build one image and return its id."""
        base_image_id = await self.resolve_base(spec, registry, keys_by_name)

        if not spec.configuration:
            logger.info(f"Image '{spec.name}' has no configuration, using base image '{base_image_id}'")
            return base_image_id

        groups = filter_system_groups(spec.configuration_group_names or [], self.system_groups)
        session = Session.for_image(
            name=spec.name,
            configuration=spec.configuration,
            groups=groups,
            base_image_id=base_image_id,
            ansible_verbosity=self.ansible_verbosity,
            ansible_passthrough=self.ansible_passthrough,
        )

        if self.dry_run:
            logger.info(
                f"Dry run mode: create CFS session:\n{json.dumps(session.request_body(), indent=2)}"
            )
            image_id = self.id_generator()
        else:
            image_id = await self._run_session(session)

        logger.info(f"Image '{spec.name}' ({image_id}) created")
        return image_id

    async def resolve_base(
        self,
        spec: ImageSpec,
        registry: ProcessedImageRegistry,
        keys_by_name: Optional[Dict[str, str]] = None,
    ) -> str:
        """Id of the base image to customize."""
        source = spec.source
        dependency = dependency_key(spec, keys_by_name or {})
        if isinstance(source, ExistingImage) and dependency is not None:
            if dependency not in registry:
                raise SatFileError(
                    f"Image '{spec.name}' depends on image '{source.name}' which was not built"
                )
            return registry[dependency]

        if isinstance(source, ImageRef):
            if source.ref_name not in registry:
                raise SatFileError(
                    f"Image '{spec.name}' depends on image_ref '{source.ref_name}' which was not built"
                )
            return registry[source.ref_name]

        if isinstance(source, ExistingImage):
            if source.id is not None:
                return source.id
            return await self._image_id_by_name(source.name)

        if isinstance(source, ExistingRecipe):
            recipe_id = source.id or await self._recipe_id_by_name(source.name)
            return await self.build_from_recipe(recipe_id, spec.name)

        if isinstance(source, Product):
            artifact_id = resolve_product(self.catalog, source, spec.name)
            if source.bucket == "recipes":
                logger.info(f"Image '{spec.name}' built from product recipe '{artifact_id}'")
                return await self.build_from_recipe(artifact_id, spec.name)
            return artifact_id

        if isinstance(source, UnsupportedBase):
            raise SatFileError(f"Image '{spec.name}': {source.reason}")

        raise SatFileError(f"Image '{spec.name}' has no usable base")

    async def build_from_recipe(self, recipe_id: str, image_name: str) -> str:
        """Run an image build job from a recipe and return the resulting image id."""
        keys = await self.gateway.get_public_keys(ROOT_KEY_NAME)
        if len(keys) != 1:
            raise KeyNotFound(ROOT_KEY_NAME)

        job = Job(
            image_root_archive_name=image_name,
            artifact_id=recipe_id,
            public_key_id=keys[0].id,
        )

        if self.dry_run:
            logger.info(f"Dry run mode: create IMS job:\n{json.dumps(job.request_body(), indent=2)}")
            return self.id_generator()

        submitted = await self.gateway.post_job(job)
        logger.info(f"IMS job '{submitted.id}' submitted for image '{image_name}'")
        finished = await poll_until(
            lambda: self.gateway.get_job(submitted.id),
            lambda current: current.is_finished(),
            attempts=self.polling.job_attempts,
            interval=self.polling.interval,
            description=f"IMS job '{submitted.id}'",
            sleep=self.sleep,
        )
        if finished.status != "success" or not finished.resultant_image_id:
            raise BuildFailure(f"IMS job '{submitted.id}' for image '{image_name}' failed")
        return finished.resultant_image_id

    async def _run_session(self, session: Session) -> str:
        await self.gateway.post_session(session)
        logger.info(f"CFS session '{session.name}' submitted")

        async def fetch() -> Optional[Session]:
            found = await self.gateway.get_sessions(session.name)
            return found[0] if found else None

        finished = await poll_until(
            fetch,
            lambda current: current is not None and current.is_complete(),
            attempts=self.polling.session_attempts,
            interval=self.polling.interval,
            description=f"CFS session '{session.name}'",
            sleep=self.sleep,
        )
        if not finished.is_success():
            raise BuildFailure(f"CFS session '{session.name}' failed")

        image_id = finished.first_result_id()
        if image_id is None:
            raise BuildFailure(f"CFS session '{session.name}' produced no image")
        return image_id

    async def _recipe_id_by_name(self, name: str) -> str:
        recipes = await self.gateway.get_recipes(name)
        if not recipes:
            raise RecipeNotFound(name)
        return recipes[0].id

    async def _image_id_by_name(self, name: str) -> str:
        image = latest_image_named(await self.gateway.get_images(), name)
        if image is None:
            raise ImageNotFound(name)
        return image.id
