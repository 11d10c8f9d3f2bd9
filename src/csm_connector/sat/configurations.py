"""Configuration creation from the configurations section."""

import json
import logging
from typing import Dict, List, Mapping, Optional

from csm_connector.errors import CsmError
from csm_connector.gateway.base import ClusterGateway
from csm_connector.models.cfs import AdditionalInventory, Configuration, Layer
from csm_connector.models.satfile import ConfigurationSpec, LayerSpec
from csm_connector.sat.catalog import ProductCatalog, configuration_details


logger = logging.getLogger(__name__)


class ConfigurationBuilder:
    """Turns configuration specs into pinned configurations and uploads them."""

    def __init__(
        self,
        gateway: ClusterGateway,
        catalog: ProductCatalog,
        clone_url_rewrites: Optional[Mapping[str, str]] = None,
    ):
        """Initialize configuration builder."""
        self.gateway = gateway
        self.catalog = catalog
        self.clone_url_rewrites = dict(clone_url_rewrites or {})

    def _rewrite(self, url: str) -> str:
        for internal, external in self.clone_url_rewrites.items():
            url = url.replace(internal, external)
        return url

    async def _git_layer(self, spec: LayerSpec, configuration_name: str) -> Layer:
        git = spec.git
        commit = git.commit
        if commit is None and git.tag is not None:
            try:
                commit = await self.gateway.get_tag_id(git.url, git.tag)
            except CsmError as e:
                raise CsmError(
                    f"Could not get details for git tag '{git.tag}' in CFS configuration "
                    f"'{configuration_name}'. Reason:\n{e}"
                ) from e
        elif commit is None and git.branch is not None:
            commit = await self.gateway.get_branch_commit(git.url, git.branch)

        # The API rejects layers carrying both a commit and a branch.
        return Layer(
            name=spec.name,
            clone_url=git.url,
            playbook=spec.playbook,
            commit=commit,
            branch=None if commit else git.branch,
        )

    async def _product_layer(self, spec: LayerSpec) -> Layer:
        product = spec.product
        details = configuration_details(self.catalog, product.name, product.version)
        logger.debug(f"Product catalog details for {product.name} {product.version}: {details}")
        clone_url = self._rewrite(details["clone_url"])

        if product.commit:
            commit = product.commit
        elif product.branch:
            commit = await self.gateway.get_branch_commit(clone_url, product.branch)
        else:
            commit = details.get("commit")

        return Layer(
            name=spec.name or product.name,
            clone_url=clone_url,
            playbook=spec.playbook,
            commit=commit,
            branch=None if commit else product.branch,
        )

    async def build(self, spec: ConfigurationSpec) -> Configuration:
        """Resolve every layer of a configuration spec."""
        layers: List[Layer] = []
        for layer_spec in spec.layers:
            if layer_spec.git is not None:
                layers.append(await self._git_layer(layer_spec, spec.name))
            else:
                layers.append(await self._product_layer(layer_spec))

        inventory = None
        if spec.additional_inventory is not None:
            source = spec.additional_inventory
            commit = source.commit
            if commit is None and source.branch:
                commit = await self.gateway.get_branch_commit(source.url, source.branch)
            inventory = AdditionalInventory(
                name=source.name,
                clone_url=source.url,
                commit=commit,
                branch=None if commit else source.branch,
            )

        return Configuration(name=spec.name, layers=layers, additional_inventory=inventory)

    async def create(self, spec: ConfigurationSpec, overwrite: bool = False, dry_run: bool = False) -> Configuration:
        """Build a configuration and upload it unless in dry run."""
        configuration = await self.build(spec)
        if dry_run:
            logger.info(
                f"Dry run mode: create CFS configuration '{configuration.name}':\n"
                f"{json.dumps(configuration.request_body(), indent=2)}"
            )
            return configuration

        created = await self.gateway.put_configuration(configuration, overwrite=overwrite)
        logger.info(f"CFS configuration '{created.name}' created")
        return created

    async def create_all(
        self,
        specs: List[ConfigurationSpec],
        overwrite: bool = False,
        dry_run: bool = False,
    ) -> Dict[str, Configuration]:
        """Create configurations in declaration order."""
        created: Dict[str, Configuration] = {}
        for spec in specs:
            created[spec.name] = await self.create(spec, overwrite=overwrite, dry_run=dry_run)
        return created
