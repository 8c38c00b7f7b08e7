from snapsight.core.config import Settings, get_config, load_api_key
from snapsight.core.logging import setup_logging

__all__ = ["Settings", "get_config", "load_api_key", "setup_logging"]
