"""Backend connector: token-first entry points over the CSM gateway."""

import asyncio
import logging
from datetime import datetime
from typing import Callable, List, Optional, Sequence

import httpx

from csm_connector.auth import Caller, resolve_caller
from csm_connector.cleanup import DeletionCandidates, DeletionReport, delete, delete_and_cancel_session, get_data_to_delete
from csm_connector.gateway.http import CsmGateway
from csm_connector.models.bss import BootParameters
from csm_connector.models.cfs import Configuration, Session
from csm_connector.models.config import ConnectorConfig
from csm_connector.models.ims import Image
from csm_connector.models.satfile import SatFile
from csm_connector.sat.apply import ApplyOptions, ApplyResult, SatApplyPipeline
from csm_connector.sat.builder import random_id
from csm_connector.sat.catalog import ProductCatalog
from csm_connector.utils.retry import RetryPolicy, Sleep


logger = logging.getLogger(__name__)


class CsmBackend:
    """Operations against one CSM system.

    Every call takes the caller's bearer token first and opens its own
    gateway session, so one backend serves many callers.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        root_cert: Optional[str] = None,
        gitea_base_url: Optional[str] = None,
        gitea_token: Optional[str] = None,
        config: Optional[ConnectorConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        id_generator: Callable[[], str] = random_id,
        sleep: Sleep = asyncio.sleep,
    ):
        """Initialize backend."""
        self.config = config or ConnectorConfig()
        self.base_url = base_url or self.config.backend.base_url
        self.root_cert = root_cert or self.config.backend.root_cert
        self.gitea_base_url = gitea_base_url or self.config.backend.gitea_base_url
        self.gitea_token = gitea_token
        self.transport = transport
        self.id_generator = id_generator
        self.sleep = sleep

    def gateway(self, token: str) -> CsmGateway:
        """Gateway authenticated with ``token``."""
        return CsmGateway(
            token,
            self.base_url,
            root_cert=self.root_cert,
            gitea_base_url=self.gitea_base_url,
            gitea_token=self.gitea_token,
            timeout=self.config.backend.timeout,
            transport=self.transport,
        )

    def retry_policy(self) -> RetryPolicy:
        """Deletion retry policy from config."""
        retry = self.config.retry
        return RetryPolicy(attempts=retry.attempts, delay=retry.delay, backoff=retry.backoff)

    async def get_caller(self, token: str) -> Caller:
        """Caller identity and group scope."""
        async with self.gateway(token) as gateway:
            return await resolve_caller(token, gateway, self.config.auth)

    # -- SAT files

    def _pipeline(self, gateway: CsmGateway, caller: Caller, catalog: Optional[ProductCatalog]) -> SatApplyPipeline:
        return SatApplyPipeline(
            gateway,
            caller,
            config=self.config,
            catalog=catalog,
            id_generator=self.id_generator,
            sleep=self.sleep,
        )

    async def validate_sat_file(
        self,
        token: str,
        sat_file: SatFile,
        catalog: Optional[ProductCatalog] = None,
    ):
        """Validate a SAT file against the cluster."""
        async with self.gateway(token) as gateway:
            caller = await resolve_caller(token, gateway, self.config.auth)
            await self._pipeline(gateway, caller, catalog).validate(sat_file)

    async def apply_sat_file(
        self,
        token: str,
        sat_file: SatFile,
        options: Optional[ApplyOptions] = None,
        catalog: Optional[ProductCatalog] = None,
    ) -> ApplyResult:
        """Validate and apply a SAT file."""
        async with self.gateway(token) as gateway:
            caller = await resolve_caller(token, gateway, self.config.auth)
            return await self._pipeline(gateway, caller, catalog).apply(sat_file, options)

    # -- cleanup

    async def get_data_to_delete(
        self,
        token: str,
        group_names: Sequence[str],
        pattern: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> DeletionCandidates:
        """Select configurations and derived data safe to delete."""
        async with self.gateway(token) as gateway:
            caller = await resolve_caller(token, gateway, self.config.auth)
            return await get_data_to_delete(gateway, caller, group_names, pattern, since, until, limit)

    async def delete_configurations_and_data_related(
        self,
        token: str,
        configuration_names: Sequence[str],
        image_ids: Sequence[str],
        session_names: Sequence[str],
        template_names: Sequence[str],
    ) -> DeletionReport:
        """Delete what ``get_data_to_delete`` selected."""
        async with self.gateway(token) as gateway:
            return await delete(
                gateway,
                configuration_names,
                image_ids,
                session_names,
                template_names,
                policy=self.retry_policy(),
                sleep=self.sleep,
            )

    async def delete_and_cancel_session(self, token: str, session_name: str, dry_run: bool = False) -> Session:
        """Cancel and delete a session."""
        async with self.gateway(token) as gateway:
            caller = await resolve_caller(token, gateway, self.config.auth)
            return await delete_and_cancel_session(gateway, caller, session_name, dry_run=dry_run)

    # -- passthroughs

    async def get_configurations(self, token: str, name: Optional[str] = None) -> List[Configuration]:
        """Get configurations."""
        async with self.gateway(token) as gateway:
            return await gateway.get_configurations(name)

    async def get_images(self, token: str, image_id: Optional[str] = None) -> List[Image]:
        """Get images."""
        async with self.gateway(token) as gateway:
            return await gateway.get_images(image_id)

    async def get_group_members(self, token: str, labels: List[str]) -> List[str]:
        """Get node ids of groups."""
        async with self.gateway(token) as gateway:
            return await gateway.get_group_members(labels)

    async def get_boot_parameters(self, token: str, hosts: Optional[List[str]] = None) -> List[BootParameters]:
        """Get boot parameters."""
        async with self.gateway(token) as gateway:
            return await gateway.get_boot_parameters(hosts)
