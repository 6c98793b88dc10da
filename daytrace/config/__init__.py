from .loader import ConfigLoader, get_config, get_config_dir, load_config, reset_config

__all__ = ["ConfigLoader", "get_config", "get_config_dir", "load_config", "reset_config"]
