"""Credential resolution from the process environment.

Credentials are looked up fresh on every dispatch and never cached or
logged; only the variable name appears in diagnostics.
"""

import os
from typing import Mapping, Optional

from pydantic import SecretStr

from shared.logging import get_logger
from shared.models import CredentialResolution, ServerConfig

logger = get_logger(__name__)


class CredentialResolver:
    """Resolves a server's credential from environment variables."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None) -> None:
        self._environ = environ

    @property
    def environ(self) -> Mapping[str, str]:
        return os.environ if self._environ is None else self._environ

    def resolve(self, server: ServerConfig) -> CredentialResolution:
        """
        Resolve the credential a server requires.

        Args:
            server: Server whose ``credential_env_var`` names the variable

        Returns:
            Resolution: not required, resolved, or required but missing
        """
        var_name = (server.credential_env_var or "").strip()
        if not var_name:
            return CredentialResolution(required=False)

        value = self.environ.get(var_name)
        if value is None or not value.strip():
            reason = f"environment variable {var_name} is not set or empty"
            logger.warning(
                "Required credential missing",
                server=server.name,
                variable=var_name
            )
            return CredentialResolution(required=True, reason=reason)

        return CredentialResolution(required=True, credential=SecretStr(value))
