"""Server configuration store.

Loads the server configuration document on every dispatch. The
document is either a list of server records or a mapping with a
``servers`` list. ``.json`` files are parsed as JSON, anything else as
YAML.
"""

import json
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from shared.logging import get_logger
from shared.models import ServerConfig

logger = get_logger(__name__)


class ConfigError(Exception):
    """Base exception for configuration loading errors."""
    kind = "Error"


class ConfigNotFoundError(ConfigError):
    """The configuration document does not exist."""
    kind = "NotFound"


class ConfigMalformedError(ConfigError):
    """The configuration document cannot be parsed or validated."""
    kind = "Malformed"


class ConfigStore:
    """Read-only access to the server configuration document."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> list[ServerConfig]:
        """
        Load and validate all server records.

        Returns:
            Servers in document order

        Raises:
            ConfigNotFoundError: If the document is missing
            ConfigMalformedError: If it cannot be parsed or a record is invalid
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise ConfigNotFoundError(f"Configuration not found at {self.path}") from e
        except IsADirectoryError as e:
            raise ConfigNotFoundError(f"Configuration path {self.path} is a directory") from e
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigMalformedError(f"Cannot read configuration {self.path}: {e}") from e

        document = self._parse(text)
        records = self._records(document)

        servers: list[ServerConfig] = []
        for index, record in enumerate(records):
            if not isinstance(record, dict):
                raise ConfigMalformedError(
                    f"Server entry {index} in {self.path} is not a mapping"
                )
            try:
                servers.append(ServerConfig.model_validate(record))
            except ValidationError as e:
                raise ConfigMalformedError(
                    f"Server entry {index} in {self.path} is invalid: {e}"
                ) from e

        logger.debug("Configuration loaded", path=str(self.path), servers=len(servers))
        return servers

    def _parse(self, text: str) -> Any:
        try:
            if self.path.suffix.lower() == ".json":
                return json.loads(text)
            return yaml.safe_load(text)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigMalformedError(f"Cannot parse configuration {self.path}: {e}") from e

    def _records(self, document: Any) -> list[Any]:
        if isinstance(document, dict) and "servers" in document:
            document = document["servers"]
        if not isinstance(document, list):
            raise ConfigMalformedError(
                f"Configuration {self.path} must be a list of servers "
                "or a mapping with a 'servers' list"
            )
        return document
