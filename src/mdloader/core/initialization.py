"""
mdloader startup initialization.

Orders the startup steps every command shares:
1. Config (file, environment overlay, validation)
2. Typed loader settings
3. Logging
"""

import os
from pathlib import Path

from mdloader.config.loader import Config, load_config
from mdloader.config.settings import LoaderSettings
from mdloader.utils.logging import setup_logging_from_config

ENV_VARIABLE = "MDLOADER_ENV"


def initialize(config_dir: Path | None = None, env: str | None = None, verbose: bool = False) -> LoaderSettings:
    """
    Load configuration and set logging up.

    Args:
        config_dir: Directory holding config.yaml (default: current directory)
        env: Environment overlay (default: from MDLOADER_ENV)
        verbose: Force DEBUG logging

    Raises:
        ConfigurationError: If the configuration is invalid
    """
    config_dir = Path(config_dir) if config_dir is not None else Path.cwd()
    config: Config = load_config(config_dir, env=env or os.environ.get(ENV_VARIABLE))
    settings = LoaderSettings.from_config(config)
    setup_logging_from_config(settings.logging, base_dir=config_dir, verbose=verbose)
    return settings
