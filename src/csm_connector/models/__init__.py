"""Pydantic models for configuration, the SAT file and cluster records."""

from csm_connector.models.config import ConnectorConfig, BackendConfig, PollingConfig, RetryConfig
from csm_connector.models.satfile import SatFile, ConfigurationSpec, ImageSpec, SessionTemplateSpec
from csm_connector.models.cfs import Configuration, Layer, Session, Component
from csm_connector.models.ims import Image, Recipe, Job, PublicKey, Link
from csm_connector.models.bos import BootTemplate, BootSet, BosSession
from csm_connector.models.bss import BootParameters
from csm_connector.models.hsm import Group

__all__ = [
    "ConnectorConfig",
    "BackendConfig",
    "PollingConfig",
    "RetryConfig",
    "SatFile",
    "ConfigurationSpec",
    "ImageSpec",
    "SessionTemplateSpec",
    "Configuration",
    "Layer",
    "Session",
    "Component",
    "Image",
    "Recipe",
    "Job",
    "PublicKey",
    "Link",
    "BootTemplate",
    "BootSet",
    "BosSession",
    "BootParameters",
    "Group",
]
