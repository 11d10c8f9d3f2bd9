"""Apply pipeline: validate, then hardware, configurations, images and templates."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from csm_connector.auth import Caller
from csm_connector.gateway.base import ClusterGateway
from csm_connector.models.bos import BootTemplate
from csm_connector.models.cfs import Configuration
from csm_connector.models.config import ConnectorConfig
from csm_connector.models.satfile import ImageSpec, SatFile
from csm_connector.sat.builder import ImageBuildDriver, random_id
from csm_connector.sat.catalog import ProductCatalog
from csm_connector.sat.configurations import ConfigurationBuilder
from csm_connector.sat.hardware import apply_hardware
from csm_connector.sat.templates import BootTemplateBuilder
from csm_connector.sat.validation import SatFileValidator
from csm_connector.utils.retry import Sleep


logger = logging.getLogger(__name__)


@dataclass
class ApplyOptions:
    """Switches of one apply run."""
    dry_run: bool = False
    overwrite: bool = False
    reboot: bool = False
    ansible_verbosity: Optional[int] = None
    ansible_passthrough: Optional[str] = None


@dataclass
class ApplyResult:
    """What an apply run created, or would have created in dry run."""
    hardware: Dict[str, List[str]] = field(default_factory=dict)
    configurations: Dict[str, Configuration] = field(default_factory=dict)
    registry: Dict[str, str] = field(default_factory=dict)
    images: Dict[str, ImageSpec] = field(default_factory=dict)
    templates: Dict[str, BootTemplate] = field(default_factory=dict)


class SatApplyPipeline:
    """Runs a SAT file against the cluster.

    Validation covers the whole file before the first mutation. Later steps
    stop at the first failure and leave what was already created in place.
    """

    def __init__(
        self,
        gateway: ClusterGateway,
        caller: Caller,
        config: Optional[ConnectorConfig] = None,
        catalog: Optional[ProductCatalog] = None,
        id_generator: Callable[[], str] = random_id,
        sleep: Sleep = asyncio.sleep,
    ):
        """Initialize apply pipeline."""
        self.gateway = gateway
        self.caller = caller
        self.config = config or ConnectorConfig()
        self.catalog = catalog or {}
        self.id_generator = id_generator
        self.sleep = sleep

    async def validate(self, sat_file: SatFile, dry_run: bool = False):
        """Validate the file without touching the cluster."""
        validator = SatFileValidator(
            self.gateway,
            self.caller,
            catalog=self.catalog,
            system_groups=self.config.auth.system_groups,
        )
        await validator.validate(sat_file, dry_run=dry_run)

    async def apply(self, sat_file: SatFile, options: Optional[ApplyOptions] = None) -> ApplyResult:
        """Validate then apply every section present in the file."""
        options = options or ApplyOptions()
        result = ApplyResult()

        await self.validate(sat_file, dry_run=options.dry_run)

        if sat_file.hardware:
            result.hardware = await apply_hardware(self.gateway, sat_file.hardware, dry_run=options.dry_run)

        if sat_file.configurations:
            builder = ConfigurationBuilder(
                self.gateway,
                self.catalog,
                clone_url_rewrites=self.config.vcs.clone_url_rewrites,
            )
            result.configurations = await builder.create_all(
                sat_file.configurations,
                overwrite=options.overwrite,
                dry_run=options.dry_run,
            )

        if sat_file.images:
            driver = ImageBuildDriver(
                self.gateway,
                catalog=self.catalog,
                dry_run=options.dry_run,
                ansible_verbosity=options.ansible_verbosity,
                ansible_passthrough=options.ansible_passthrough,
                polling=self.config.polling,
                system_groups=self.config.auth.system_groups,
                id_generator=self.id_generator,
                sleep=self.sleep,
            )
            result.images = await driver.build_all(sat_file.images, result.registry)

        if sat_file.session_templates:
            templates = BootTemplateBuilder(
                self.gateway,
                self.caller,
                dry_run=options.dry_run,
                reboot=options.reboot,
            )
            result.templates = await templates.process_all(
                sat_file.session_templates,
                result.registry,
                sat_file.images or [],
            )

        logger.info(f"User: {self.caller.username} ({self.caller.name}) ; Operation: Apply cluster")
        return result
