"""Caller identity and authorization scope from the bearer token."""

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from csm_connector.errors import CsmError
from csm_connector.models.config import AuthConfig


logger = logging.getLogger(__name__)

# Role names treated as universal; no authorization needed to target them.
UNIVERSAL_GROUPS = ("compute", "application", "application_uan")


def get_claims(token: str) -> Dict[str, Any]:
    """Decode the claims segment of a JWT. The signature is not checked."""
    if token.startswith("Bearer "):
        token = token[len("Bearer "):]
    parts = token.split(".")
    if len(parts) < 2:
        raise CsmError("JWT token not valid")
    segment = parts[1]
    segment += "=" * (-len(segment) % 4)
    try:
        return json.loads(base64.urlsafe_b64decode(segment))
    except (binascii.Error, ValueError) as e:
        raise CsmError(f"Could not get claims in JWT token. Reason:\n{e}") from e


def is_universal_group(group: str) -> bool:
    """Whether a group is one of the universal role names."""
    return group.lower() in UNIVERSAL_GROUPS


def filter_system_groups(groups: Iterable[str], system_groups: Iterable[str]) -> List[str]:
    """Drop site wide group names."""
    system = set(system_groups)
    return [group for group in groups if group not in system]


@dataclass(frozen=True)
class Caller:
    """Who is calling and which groups they may touch."""
    username: str
    name: str
    roles: FrozenSet[str] = field(default_factory=frozenset)
    authorized_groups: FrozenSet[str] = field(default_factory=frozenset)
    is_admin: bool = False

    @classmethod
    def from_token(cls, token: str, auth: Optional[AuthConfig] = None) -> "Caller":
        """Build a caller from token claims; groups are the non system roles."""
        auth = auth or AuthConfig()
        claims = get_claims(token)
        roles = (claims.get("realm_access") or {}).get("roles") or []
        is_admin = auth.admin_role in roles
        groups = [
            role for role in roles
            if role != auth.admin_role
            and role not in auth.ignored_roles
            and not any(role.startswith(prefix) for prefix in auth.ignored_role_prefixes)
        ]
        groups = filter_system_groups(groups, auth.system_groups)
        return cls(
            username=claims.get("preferred_username", ""),
            name=claims.get("name", ""),
            roles=frozenset(roles),
            authorized_groups=frozenset(groups),
            is_admin=is_admin,
        )

    def with_groups(self, groups: Iterable[str]) -> "Caller":
        """Copy with a different authorized group set."""
        return replace(self, authorized_groups=frozenset(groups))

    def can_access(self, group: str) -> bool:
        """Whether the caller may target a group."""
        return group in self.authorized_groups

    def sorted_groups(self) -> List[str]:
        """Authorized groups in stable order, for messages."""
        return sorted(self.authorized_groups)


async def resolve_caller(token: str, gateway, auth: Optional[AuthConfig] = None) -> Caller:
    """Caller whose groups are every group in the system when admin."""
    caller = Caller.from_token(token, auth)
    if caller.is_admin:
        logger.debug("User is admin, authorizing every group in the system")
        groups = await gateway.get_groups()
        caller = caller.with_groups(group.label for group in groups)
    return caller
