"""Login data for DOCUMENTS server sessions.

Reads connection settings from CLI args, environment variables, .env
files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    DOCUMENTS_SERVER: Server host name (required)
    DOCUMENTS_PORT: Server port (optional, default: 11000)
    DOCUMENTS_USERNAME: Login name (required)
    DOCUMENTS_PASSWORD: Password (optional, may be empty)
    DOCUMENTS_PRINCIPAL: Principal to select after login (required at
        session time)
    DOCUMENTS_TIMEOUT: Per-call timeout in seconds (optional, default: 60)
"""

import logging
import os
from dataclasses import dataclass

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_PORT = 11000
DEFAULT_TIMEOUT = 60.0


@dataclass
class LoginData:
    server: str
    username: str
    password: str = ""
    principal: str = ""
    port: int = DEFAULT_PORT
    timeout: float = DEFAULT_TIMEOUT
    # Filled in while a session runs
    user_id: int | str | None = None
    documents_version: str | None = None
    last_warning: str | None = None


def validate_login_data(login_data: LoginData) -> None:
    """Validate connection values and raise ConfigurationError if invalid.

    The principal is not checked here: an empty principal is rejected by
    the session after authentication.

    Raises:
        ConfigurationError: If server or username is empty, or port or
            timeout is out of range.
    """
    login_data.server = login_data.server.strip()
    if not login_data.server:
        raise ConfigurationError(
            "Server cannot be empty. Set DOCUMENTS_SERVER environment variable."
        )

    if not login_data.username.strip():
        raise ConfigurationError(
            "Username cannot be empty. Set DOCUMENTS_USERNAME environment variable."
        )

    if not (1 <= login_data.port <= 65535):
        raise ConfigurationError(
            f"Invalid port {login_data.port}: must be between 1 and 65535"
        )

    if login_data.timeout <= 0:
        raise ConfigurationError(
            f"Invalid timeout {login_data.timeout}: must be positive"
        )


def _parse_number(raw: str, key: str, kind: type) -> int | float:
    try:
        return kind(raw)
    except ValueError:
        raise ConfigurationError(
            f"Invalid {key} '{raw}': must be a number"
        ) from None


def load_login_data(
    server: str | None = None,
    port: int | None = None,
    username: str | None = None,
    password: str | None = None,
    principal: str | None = None,
    timeout: float | None = None,
    yaml_fallbacks: dict | None = None,
) -> LoginData:
    """Load login data with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        server: Override server host.
        port: Override server port.
        username: Override login name.
        password: Override password.
        principal: Override principal.
        timeout: Override per-call timeout in seconds.
        yaml_fallbacks: Values from the YAML config ``server`` section.

    Returns:
        Validated LoginData instance.

    Raises:
        ConfigurationError: If server or username is missing after
            checking all sources, or a numeric value is malformed.
    """
    fb = yaml_fallbacks or {}

    final_server = server or os.getenv("DOCUMENTS_SERVER") or fb.get("host")
    if not final_server:
        raise ConfigurationError(
            "Server not found. Set DOCUMENTS_SERVER environment variable, "
            "pass --server CLI argument, or add 'host' to config.yml."
        )

    final_username = (
        username or os.getenv("DOCUMENTS_USERNAME") or fb.get("username")
    )
    if not final_username:
        raise ConfigurationError(
            "Username not found. Set DOCUMENTS_USERNAME environment variable, "
            "pass --username CLI argument, or add 'username' to config.yml."
        )

    # Empty password and principal are legitimate values at this point
    if password is not None:
        final_password = password
    else:
        final_password = (
            os.getenv("DOCUMENTS_PASSWORD") or fb.get("password") or ""
        )

    if principal is not None:
        final_principal = principal
    else:
        final_principal = (
            os.getenv("DOCUMENTS_PRINCIPAL") or fb.get("principal") or ""
        )

    if port is not None:
        final_port = port
    elif (port_raw := os.getenv("DOCUMENTS_PORT")) is not None:
        final_port = _parse_number(port_raw, "DOCUMENTS_PORT", int)
    else:
        final_port = int(fb.get("port", DEFAULT_PORT))

    if timeout is not None:
        final_timeout = timeout
    elif (timeout_raw := os.getenv("DOCUMENTS_TIMEOUT")) is not None:
        final_timeout = _parse_number(
            timeout_raw, "DOCUMENTS_TIMEOUT", float
        )
    else:
        final_timeout = float(fb.get("timeout", DEFAULT_TIMEOUT))

    login_data = LoginData(
        server=final_server,
        username=final_username.strip(),
        password=final_password,
        principal=final_principal.strip(),
        port=int(final_port),
        timeout=float(final_timeout),
    )

    validate_login_data(login_data)
    logger.debug(
        "Login data resolved: %s@%s:%d principal=%r",
        login_data.username,
        login_data.server,
        login_data.port,
        login_data.principal,
    )

    return login_data
