"""Adapters for collaborators reached over the network."""

from .http import (
    HttpAccountStore,
    HttpAuditStore,
    HttpAdminDirectory,
    create_client,
)

__all__ = [
    "HttpAccountStore",
    "HttpAuditStore",
    "HttpAdminDirectory",
    "create_client",
]
