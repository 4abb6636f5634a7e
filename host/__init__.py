"""Host application wiring: configuration, logging and the state container."""

from host.config import Config, get_config, load_config
from host.context import ExtensionHost

__all__ = ["Config", "ExtensionHost", "get_config", "load_config"]
