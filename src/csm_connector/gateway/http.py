"""HTTP implementation of the cluster gateway over the CSM REST APIs."""

import logging
import ssl
from typing import Any, Dict, List, Optional

import httpx

from csm_connector.errors import ConfigurationAlreadyExists, RemoteFailure
from csm_connector.gateway.base import ClusterGateway
from csm_connector.gateway.gitea import GiteaClient
from csm_connector.models.bos import BootTemplate, BosSession
from csm_connector.models.bss import BootParameters
from csm_connector.models.cfs import Component, Configuration, Session
from csm_connector.models.hsm import Group
from csm_connector.models.ims import Image, Job, PublicKey, Recipe


logger = logging.getLogger(__name__)


def _items(data: Any, key: str) -> List[Dict[str, Any]]:
    """Unwrap list endpoints that answer either a bare list or {key: [...]}."""
    if data is None:
        return []
    if isinstance(data, dict):
        return data.get(key) or []
    return data


class CsmGateway(ClusterGateway):
    """Gateway talking to the CSM API gateway with a bearer token."""

    def __init__(
        self,
        token: str,
        base_url: str,
        root_cert: Optional[str] = None,
        gitea_base_url: Optional[str] = None,
        gitea_token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize gateway."""
        verify: Any = ssl.create_default_context(cafile=root_cert) if root_cert else True
        self.client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {token}"},
            verify=verify,
            timeout=timeout,
            transport=transport,
        )
        self.gitea: Optional[GiteaClient] = None
        if gitea_base_url:
            self.gitea = GiteaClient(
                gitea_base_url,
                token=gitea_token,
                verify=verify,
                timeout=timeout,
                transport=transport,
            )

    async def __aenter__(self) -> "CsmGateway":
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def close(self):
        """Close HTTP clients."""
        await self.client.aclose()
        if self.gitea:
            await self.gitea.close()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send a request and decode the JSON answer."""
        logger.debug(f"{method} {path}")
        try:
            response = await self.client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.RequestError as e:
            raise RemoteFailure(f"Connection error: {e}") from e
        except httpx.HTTPStatusError as e:
            try:
                payload = e.response.json()
            except ValueError:
                payload = e.response.text
            raise RemoteFailure(
                f"HTTP error {e.response.status_code} on {method} {path}: {payload}",
                status_code=e.response.status_code,
                payload=payload,
            ) from e
        if not response.content:
            return None
        return response.json()

    async def _get_optional(self, path: str, **kwargs: Any) -> Any:
        """GET a single item, None on 404."""
        try:
            return await self._request("GET", path, **kwargs)
        except RemoteFailure as e:
            if e.status_code == 404:
                return None
            raise

    # -- configurations

    async def get_configurations(self, name: Optional[str] = None) -> List[Configuration]:
        """Get all configurations or the one with the given name."""
        if name:
            data = await self._get_optional(f"/cfs/v3/configurations/{name}")
            return [Configuration(**data)] if data else []
        data = await self._request("GET", "/cfs/v3/configurations")
        return [Configuration(**item) for item in _items(data, "configurations")]

    async def put_configuration(self, configuration: Configuration, overwrite: bool = False) -> Configuration:
        """Create or replace a configuration."""
        if not overwrite and await self.get_configurations(configuration.name):
            raise ConfigurationAlreadyExists(configuration.name)
        data = await self._request(
            "PUT",
            f"/cfs/v3/configurations/{configuration.name}",
            json=configuration.request_body(),
        )
        return Configuration(**data)

    async def delete_configuration(self, name: str) -> None:
        """Delete a configuration."""
        await self._request("DELETE", f"/cfs/v3/configurations/{name}")

    # -- images and recipes

    async def get_images(self, image_id: Optional[str] = None) -> List[Image]:
        """Get all images or the one with the given id."""
        if image_id:
            data = await self._get_optional(f"/ims/v3/images/{image_id}")
            return [Image(**data)] if data else []
        data = await self._request("GET", "/ims/v3/images")
        return [Image(**item) for item in _items(data, "images")]

    async def search_images(self, groups: List[str], name: Optional[str] = None, limit: Optional[int] = None) -> List[Image]:
        """Images whose name contains ``name``, scoped to names containing a group."""
        images = await self.get_images()
        if name:
            images = [image for image in images if name in image.name]
        if groups:
            images = [
                image for image in images
                if any(group in image.name for group in groups) or (name and image.name == name)
            ]
        images.sort(key=lambda image: image.created or "", reverse=True)
        return images[:limit] if limit else images

    async def delete_image(self, image_id: str) -> None:
        """Delete an image."""
        await self._request("DELETE", f"/ims/v3/images/{image_id}")

    async def get_recipes(self, name: Optional[str] = None) -> List[Recipe]:
        """Get all recipes or those with the given name."""
        data = await self._request("GET", "/ims/v3/recipes")
        recipes = [Recipe(**item) for item in _items(data, "recipes")]
        if name:
            recipes = [recipe for recipe in recipes if recipe.name == name]
        return recipes

    async def get_public_keys(self, name: Optional[str] = None) -> List[PublicKey]:
        """Get image build public keys."""
        data = await self._request("GET", "/ims/v3/public-keys")
        keys = [PublicKey(**item) for item in _items(data, "public_keys")]
        if name:
            keys = [key for key in keys if key.name == name]
        return keys

    async def post_job(self, job: Job) -> Job:
        """Submit an image build job."""
        data = await self._request("POST", "/ims/v3/jobs", json=job.request_body())
        return Job(**data)

    async def get_job(self, job_id: str) -> Job:
        """Get an image build job."""
        data = await self._request("GET", f"/ims/v3/jobs/{job_id}")
        return Job(**data)

    # -- sessions

    async def post_session(self, session: Session) -> Session:
        """Submit a configuration session."""
        data = await self._request("POST", "/cfs/v3/sessions", json=session.request_body())
        return Session(**data)

    async def get_sessions(self, name: Optional[str] = None) -> List[Session]:
        """Get all sessions or the one with the given name."""
        if name:
            data = await self._get_optional(f"/cfs/v3/sessions/{name}")
            return [Session(**data)] if data else []
        data = await self._request("GET", "/cfs/v3/sessions")
        return [Session(**item) for item in _items(data, "sessions")]

    async def delete_session(self, name: str) -> None:
        """Delete a session."""
        await self._request("DELETE", f"/cfs/v3/sessions/{name}")

    async def get_components(self, ids: Optional[List[str]] = None) -> List[Component]:
        """Get configuration components."""
        params = {"ids": ",".join(ids)} if ids else None
        data = await self._request("GET", "/cfs/v3/components", params=params)
        return [Component(**item) for item in _items(data, "components")]

    async def put_components(self, components: List[Component]) -> None:
        """Update configuration components."""
        await self._request(
            "PUT",
            "/cfs/v2/components",
            json=[component.model_dump(exclude_none=True) for component in components],
        )

    async def get_options(self) -> Dict[str, Any]:
        """Get global configuration service options."""
        return await self._request("GET", "/cfs/v3/options") or {}

    # -- boot templates and boot sessions

    async def get_templates(self, name: Optional[str] = None) -> List[BootTemplate]:
        """Get all boot templates or the one with the given name."""
        if name:
            data = await self._get_optional(f"/bos/v2/sessiontemplates/{name}")
            return [BootTemplate(**data)] if data else []
        data = await self._request("GET", "/bos/v2/sessiontemplates")
        return [BootTemplate(**item) for item in _items(data, "session_templates")]

    async def put_template(self, template: BootTemplate, name: str) -> BootTemplate:
        """Create or replace a boot template."""
        data = await self._request(
            "PUT", f"/bos/v2/sessiontemplates/{name}", json=template.request_body()
        )
        return BootTemplate(**data)

    async def delete_template(self, name: str) -> None:
        """Delete a boot template."""
        await self._request("DELETE", f"/bos/v2/sessiontemplates/{name}")

    async def post_bos_session(self, session: BosSession) -> BosSession:
        """Submit a boot session."""
        data = await self._request(
            "POST", "/bos/v2/sessions", json=session.model_dump(exclude_none=True)
        )
        return BosSession(**data)

    async def get_bos_sessions(self) -> List[BosSession]:
        """Get all boot sessions."""
        data = await self._request("GET", "/bos/v2/sessions")
        return [BosSession(**item) for item in _items(data, "sessions")]

    async def delete_bos_session(self, name: str) -> None:
        """Delete a boot session."""
        await self._request("DELETE", f"/bos/v2/sessions/{name}")

    # -- boot parameters and groups

    async def get_boot_parameters(self, hosts: Optional[List[str]] = None) -> List[BootParameters]:
        """Get boot parameters."""
        params = {"name": ",".join(hosts)} if hosts else None
        data = await self._request("GET", "/bss/boot/v1/bootparameters", params=params)
        return [BootParameters(**item) for item in _items(data, "bootparameters")]

    async def get_groups(self, labels: Optional[List[str]] = None) -> List[Group]:
        """Get all groups or those with the given labels."""
        params = [("group", label) for label in labels] if labels else None
        data = await self._request("GET", "/smd/hsm/v2/groups", params=params)
        return [Group(**item) for item in _items(data, "groups")]

    async def add_group_members(self, label: str, xnames: List[str]) -> None:
        """Add nodes to a group."""
        for xname in xnames:
            await self._request(
                "POST", f"/smd/hsm/v2/groups/{label}/members", json={"id": xname}
            )

    # -- git refs

    async def get_tag_id(self, repo_url: str, tag: str) -> str:
        """Resolve a git tag to the id of the tag object."""
        return await self._git().get_tag_id(repo_url, tag)

    async def get_branch_commit(self, repo_url: str, branch: str) -> str:
        """Resolve a git branch to the commit it points to."""
        return await self._git().get_branch_commit(repo_url, branch)

    def _git(self) -> GiteaClient:
        if self.gitea is None:
            raise RemoteFailure("Git server URL not configured")
        return self.gitea
