"""
CSM Connector - Backend connector for Cray/HPE System Management.

Adapts cluster management operations onto the CSM REST APIs and drives
SAT file based cluster builds: configurations, images and boot templates,
plus safe cleanup of configurations and everything derived from them.
"""

__version__ = "0.1.0"
__author__ = "CSM Connector Development Team"

# Re-export key components for easier access
from csm_connector.auth import Caller
from csm_connector.connector import CsmBackend
from csm_connector.errors import CsmError
from csm_connector.models.satfile import SatFile

__all__ = [
    "Caller",
    "CsmBackend",
    "CsmError",
    "SatFile",
]
