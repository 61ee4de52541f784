"""Client for the generation server's REST API."""

from remote.forge_api import ForgeApiClient, ForgeApiError

__all__ = ["ForgeApiClient", "ForgeApiError"]
