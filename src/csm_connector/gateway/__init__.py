"""Gateways to the remote cluster state."""

from csm_connector.gateway.base import ClusterGateway
from csm_connector.gateway.http import CsmGateway

__all__ = ["ClusterGateway", "CsmGateway"]
