"""Client configuration loading and validation.

Configuration comes from a YAML file or from environment variables. It is
passed explicitly to the transport factory and the session; nothing here
is process-wide state.
"""

from __future__ import annotations

import os
import re
import shlex
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from mcp_client_cli.protocol.lifecycle import MCP_PROTOCOL_VERSION

# Environment variables read by config_from_env
ENV_SERVER_URL = "MCP_SERVER_URL"
ENV_SERVER_COMMAND = "MCP_SERVER_COMMAND"
ENV_BASE_URL = "EP_BASE_URL"
ENV_ACCESS_TOKEN = "EP_ACCESS_TOKEN"


class ConfigLoadError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


def expand_env_vars(value: str, environ: Mapping[str, str] | None = None) -> str:
    """Expand environment variables in a string.

    Supports ${VAR_NAME} syntax. Unknown variables are left unchanged.

    Args:
        value: String potentially containing environment variable references.
        environ: Variables to expand from (defaults to os.environ).

    Returns:
        String with known environment variables expanded.
    """
    env = os.environ if environ is None else environ
    pattern = re.compile(r"\$\{([^}]+)\}")

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        env_value = env.get(var_name)
        if env_value is not None:
            return env_value
        if var_name == "HOME":
            return os.path.expanduser("~")
        return match.group(0)

    return pattern.sub(replacer, value)


def _expand(value: Any, environ: Mapping[str, str] | None) -> Any:
    if isinstance(value, str):
        return expand_env_vars(value, environ)
    if isinstance(value, dict):
        return {k: _expand(v, environ) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand(v, environ) for v in value]
    return value


@dataclass
class ClientConfig:
    """Client configuration.

    Exactly one of ``server_url`` (SSE transport) and ``server_command``
    (stdio transport) must be set.
    """

    server_url: str = ""
    server_headers: dict[str, str] = field(default_factory=dict)
    server_command: str = ""
    server_args: list[str] = field(default_factory=list)
    server_env: dict[str, str] = field(default_factory=dict)

    client_name: str = "mcp-client-cli"
    client_version: str = "1.0.0"
    protocol_version: str = MCP_PROTOCOL_VERSION

    connect_timeout: float = 30.0
    call_timeout: float | None = None

    # Merged into the arguments of every tool call
    tool_arguments: dict[str, Any] = field(default_factory=dict)

    audit_log_file: str = ""
    log_level: str = "INFO"

    @classmethod
    def from_dict(
        cls,
        config: dict[str, Any],
        environ: Mapping[str, str] | None = None,
    ) -> ClientConfig:
        """Create a ClientConfig from a configuration dictionary.

        String values anywhere in the mapping have ${VAR} references
        expanded.

        Args:
            config: Dictionary parsed from YAML configuration.
            environ: Variables used for expansion (defaults to os.environ).

        Returns:
            ClientConfig instance with all settings populated.

        Raises:
            ConfigLoadError: If a section has the wrong shape.
        """
        config = _expand(config, environ)
        server = config.get("server", {}) or {}
        client = config.get("client", {}) or {}
        tools = config.get("tools", {}) or {}
        logging_section = config.get("logging", {}) or {}

        for section_name, section in (
            ("server", server),
            ("client", client),
            ("tools", tools),
            ("logging", logging_section),
        ):
            if not isinstance(section, dict):
                raise ConfigLoadError(f"'{section_name}' section must be a mapping")

        command = server.get("command", "")
        args = server.get("args")
        if isinstance(command, list):
            command, args = (command[0], command[1:]) if command else ("", [])
        elif args is None and command:
            # A bare command string may carry its own arguments
            command, *args = shlex.split(command)

        call_timeout = tools.get("timeout")
        return cls(
            server_url=server.get("url", "") or "",
            server_headers={str(k): str(v) for k, v in (server.get("headers") or {}).items()},
            server_command=command or "",
            server_args=[str(a) for a in (args or [])],
            server_env={str(k): str(v) for k, v in (server.get("env") or {}).items()},
            client_name=client.get("name", "mcp-client-cli"),
            client_version=str(client.get("version", "1.0.0")),
            protocol_version=client.get("protocol_version", MCP_PROTOCOL_VERSION),
            connect_timeout=float(server.get("timeout", 30.0)),
            call_timeout=float(call_timeout) if call_timeout is not None else None,
            tool_arguments=dict(tools.get("arguments") or {}),
            audit_log_file=logging_section.get("audit_log_file", "") or "",
            log_level=str(logging_section.get("level", "INFO")).upper(),
        )

    def validate(self) -> None:
        """Check that the configuration names exactly one server.

        Raises:
            ConfigLoadError: If neither or both of url and command are set.
        """
        if not self.server_url and not self.server_command:
            raise ConfigLoadError(
                f"No server configured: set {ENV_SERVER_URL} or {ENV_SERVER_COMMAND}"
            )
        if self.server_url and self.server_command:
            raise ConfigLoadError("Configure either a server URL or a server command, not both")
        if self.server_url and not self.server_url.startswith(("http://", "https://")):
            raise ConfigLoadError(f"Server URL must be http(s): {self.server_url}")


def load_config(path: Path, environ: Mapping[str, str] | None = None) -> ClientConfig:
    """Load client configuration from a YAML file.

    Args:
        path: Path to the configuration YAML file.
        environ: Variables used for ${VAR} expansion.

    Returns:
        ClientConfig instance.

    Raises:
        ConfigLoadError: If the file cannot be found or parsed.
    """
    if not path.exists():
        raise ConfigLoadError(f"Config file not found: {path}")

    try:
        with open(path) as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"Failed to parse config YAML: {e}") from e

    if config is None:
        config = {}
    if not isinstance(config, dict):
        raise ConfigLoadError("Config must be a YAML mapping")

    return ClientConfig.from_dict(config, environ)


def config_from_env(environ: Mapping[str, str] | None = None) -> ClientConfig:
    """Build configuration from environment variables.

    Reads the server address or launch command, plus the base URL and
    access token that are forwarded to tools as ``baseUrl`` and
    ``accessToken`` arguments.

    Args:
        environ: Environment to read (defaults to os.environ).

    Returns:
        ClientConfig instance (not yet validated).
    """
    env = os.environ if environ is None else environ

    command_line = env.get(ENV_SERVER_COMMAND, "").strip()
    command, args = "", []
    if command_line:
        command, *args = shlex.split(command_line)

    tool_arguments: dict[str, Any] = {}
    if env.get(ENV_BASE_URL):
        tool_arguments["baseUrl"] = env[ENV_BASE_URL]
    if env.get(ENV_ACCESS_TOKEN):
        tool_arguments["accessToken"] = env[ENV_ACCESS_TOKEN]

    return ClientConfig(
        server_url=env.get(ENV_SERVER_URL, "").strip(),
        server_command=command,
        server_args=args,
        tool_arguments=tool_arguments,
    )
