from .api_client import ApiClient
from .endpoints import Endpoints
from .token_cache import TokenCache

__all__ = ["ApiClient", "Endpoints", "TokenCache"]
