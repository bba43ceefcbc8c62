"""
Adapters layer - External integrations (Microsoft Graph API).
"""

from .graph_authenticator import GraphAuthenticator
from .graph_client import BusyPage, GraphClient
from .mock_graph_client import MockGraphClient

__all__ = ["BusyPage", "GraphAuthenticator", "GraphClient", "MockGraphClient"]
