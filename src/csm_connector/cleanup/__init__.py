"""Cleanup of configurations, images, boot templates and sessions."""

from csm_connector.cleanup.collector import DeletionCandidates, DeletionReport, delete, get_data_to_delete
from csm_connector.cleanup.sessions import delete_and_cancel_session

__all__ = [
    "DeletionCandidates",
    "DeletionReport",
    "delete",
    "delete_and_cancel_session",
    "get_data_to_delete",
]
