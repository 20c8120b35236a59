"""Configuration module for JPYCWatch.

Usage:
    from jpycwatch.config import get_settings

    settings = get_settings()  # Cached singleton
    print(settings.rpc_url_for(ChainId.ETHEREUM))
"""

from jpycwatch.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
