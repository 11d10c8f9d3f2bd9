"""Tests for caller identity and scope."""

from unittest.mock import AsyncMock

import pytest

from csm_connector.auth import Caller, filter_system_groups, get_claims, is_universal_group, resolve_caller
from csm_connector.errors import CsmError
from csm_connector.models.hsm import Group


class TestClaims:
    """Test token decoding."""

    def test_bearer_prefix(self, token_factory):
        """Test that a Bearer prefix is accepted."""
        claims = get_claims("Bearer " + token_factory(["team-a"]))

        assert claims["preferred_username"] == "jdoe"

    def test_invalid_token(self):
        """Test a token without a claims segment."""
        with pytest.raises(CsmError, match="JWT token not valid"):
            get_claims("nodots")

    def test_undecodable_claims(self):
        """Test a claims segment that is not JSON."""
        with pytest.raises(CsmError, match="Could not get claims"):
            get_claims("a.bm90IGpzb24.c")


class TestCaller:
    """Test scope computation."""

    def test_tenant(self, token_factory):
        """Test that ignored and system roles are not groups."""
        token = token_factory(["team-a", "offline_access", "default-roles-shasta", "alps"])

        caller = Caller.from_token(token)

        assert caller.authorized_groups == frozenset({"team-a"})
        assert not caller.is_admin
        assert caller.can_access("team-a")
        assert not caller.can_access("team-b")

    def test_admin_role(self, token_factory):
        """Test that the admin role flags the caller and is not a group."""
        caller = Caller.from_token(token_factory(["pa_admin", "team-a"]))

        assert caller.is_admin
        assert caller.sorted_groups() == ["team-a"]

    @pytest.mark.asyncio
    async def test_admin_gets_every_group(self, token_factory):
        """Test that administrators are scoped to every group in the system."""
        gateway = AsyncMock()
        gateway.get_groups.return_value = [Group(label="team-b"), Group(label="team-a")]

        caller = await resolve_caller(token_factory(["pa_admin"]), gateway)

        assert caller.sorted_groups() == ["team-a", "team-b"]

    @pytest.mark.asyncio
    async def test_tenant_not_expanded(self, token_factory):
        """Test that tenants keep their token groups."""
        gateway = AsyncMock()

        caller = await resolve_caller(token_factory(["team-a"]), gateway)

        assert caller.sorted_groups() == ["team-a"]
        gateway.get_groups.assert_not_awaited()


def test_group_helpers():
    """Test universal and system group helpers."""
    assert is_universal_group("Compute")
    assert is_universal_group("Application_UAN")
    assert not is_universal_group("team-a")
    assert filter_system_groups(["alps", "team-a"], ["alps"]) == ["team-a"]
