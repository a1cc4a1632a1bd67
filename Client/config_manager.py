"""
SafawiNet Client - Configuration Manager

Reads and writes the client's config.json and keeps the login password in
the OS credential store. Only the identifier used to log in is written to
disk.

Author: SafawiNet Project
"""

import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Dict, Any, Tuple

import keyring
from keyring.errors import PasswordDeleteError

# Configure logging
logger = logging.getLogger(__name__)

KEYRING_SERVICE = "SafawiNet"

# Overrides where config.json and logs/ live
HOME_ENV_VAR = "SAFAWINET_CLIENT_HOME"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

DEFAULT_CONFIG = {
    "server_url": "http://localhost",
    "server_port": 5000,
    "verify_ssl": True,
    "username": None,
    "remember_me": False,
    "page_size": 10,
    "log_level": "INFO",
    "log_retention_days": 30
}


def default_base_dir() -> Path:
    """
    Folder holding config.json: $SAFAWINET_CLIENT_HOME, else the folder of a
    frozen executable, else the working directory.
    """
    if os.environ.get(HOME_ENV_VAR):
        return Path(os.environ[HOME_ENV_VAR])
    if getattr(sys, 'frozen', False):
        return Path(sys.executable).parent
    return Path.cwd()


class ConfigManager:
    """
    Client settings backed by config.json plus credentials backed by keyring.
    """

    def __init__(self, base_dir: Optional[Path] = None):
        self.base_dir = Path(base_dir) if base_dir is not None else default_base_dir()
        self.config_file = self.base_dir / "config.json"
        self.config: Dict[str, Any] = {}

    def load_config(self) -> Dict[str, Any]:
        """
        Load config.json, filling in defaults for missing keys.

        A missing file is created with the defaults. Values of the wrong type
        are replaced by their default with a warning.

        Returns:
            Configuration dictionary
        """
        stored: Dict[str, Any] = {}
        if self.config_file.exists():
            with open(self.config_file, 'r') as f:
                stored = json.load(f)
            logger.debug(f"Loaded configuration from {self.config_file}")

        self.config = {**DEFAULT_CONFIG, **stored}
        self._check_values()

        if not self.config_file.exists():
            logger.info(f"Writing default configuration to {self.config_file}")
            self.save_config()

        return self.config

    def _check_values(self):
        for key in ("server_port", "page_size", "log_retention_days"):
            value = self.config.get(key)
            if not isinstance(value, int) or isinstance(value, bool):
                logger.warning(f"Invalid {key} '{value}' in {self.config_file}, using {DEFAULT_CONFIG[key]}")
                self.config[key] = DEFAULT_CONFIG[key]

        if str(self.config.get("log_level", "")).upper() not in LOG_LEVELS:
            logger.warning(f"Invalid log_level '{self.config.get('log_level')}', using INFO")
            self.config["log_level"] = "INFO"

    def save_config(self):
        self.base_dir.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, 'w') as f:
            json.dump(self.config, f, indent=2)

    def get(self, key: str, default=None) -> Any:
        return self.config.get(key, default)

    def set(self, key: str, value: Any):
        """Change one value and write config.json."""
        self.config[key] = value
        self.save_config()

    # ==================== Credentials ====================

    def store_credentials(self, username: str, password: str):
        """
        Remember the identifier in config.json and the password in keyring.

        Args:
            username: Username, email or phone used to log in
            password: Password (never written to config.json)
        """
        keyring.set_password(KEYRING_SERVICE, username, password)
        self.set("username", username)
        logger.info(f"Stored credentials for '{username}'")

    def get_credentials(self) -> Optional[Tuple[str, str]]:
        """
        Returns:
            (username, password), or None when nothing usable is stored
        """
        username = self.get("username")
        if not username:
            return None

        password = keyring.get_password(KEYRING_SERVICE, username)
        if not password:
            logger.warning(f"No password in credential store for '{username}'")
            return None
        return username, password

    def clear_credentials(self) -> Optional[str]:
        """
        Forget the stored identifier and password.

        Returns:
            The identifier that was removed, or None if none was stored
        """
        username = self.get("username")
        if not username:
            return None

        try:
            keyring.delete_password(KEYRING_SERVICE, username)
        except PasswordDeleteError:
            logger.debug(f"No stored password to delete for '{username}'")
        self.set("username", None)
        logger.info(f"Cleared stored credentials for '{username}'")
        return username
