"""Loads and validates the client configuration.

Configuration lives in an `.ini` file with one section per server, by
default `[SFTP]`:

    [SFTP]
    host = sftp.example.com
    port = 22
    username = deploy
    private_key_file = ~/.ssh/id_ed25519
    passphrase = ENC:...            ; optional, see encryption_utils
    connect_timeout = 10            ; optional
    keepalive_interval = 30         ; optional
    max_attempts = 2                ; optional

`private_key` may be given inline instead of `private_key_file`. Timeout
defaults can also be overridden through environment variables (see
`Timeouts`).
"""
import configparser
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .encryption_utils import decrypt_secret
from .exceptions import ConfigurationError
from .executor import MAX_RETRY_ATTEMPTS

logger = logging.getLogger(__name__)

DEFAULT_SECTION = "SFTP"
DEFAULT_PORT = 22


class Timeouts:
    CONNECT = float(os.getenv('RSFTP_CONNECT_TIMEOUT', '10'))
    KEEPALIVE = int(os.getenv('RSFTP_KEEPALIVE_INTERVAL', '30'))


@dataclass(frozen=True)
class ClientConfig:
    """Immutable connection settings for one SFTP server."""
    host: str
    port: int
    username: str
    credential: bytes = field(repr=False)
    passphrase: Optional[str] = field(default=None, repr=False)
    connect_timeout: float = Timeouts.CONNECT
    keepalive_interval: int = Timeouts.KEEPALIVE
    max_attempts: int = MAX_RETRY_ATTEMPTS
    retry_delay: float = 0


class ConfigValidator:
    """Validates one server section of a `ConfigParser` object.

    Attributes:
        config: The configuration object to validate.
        section: Name of the section describing the server.
        errors: Critical problems. If non-empty, the configuration is invalid.
        warnings: Non-critical problems that do not invalidate the configuration.
    """

    REQUIRED_OPTIONS = ['host', 'username']

    NUMERIC_OPTIONS = {
        'connect_timeout': (1, 300),
        'keepalive_interval': (0, 600),
        'max_attempts': (1, 10),
        'retry_delay': (0, 60),
    }

    FLOAT_OPTIONS = {'connect_timeout', 'retry_delay'}

    def __init__(self, config: configparser.ConfigParser, section: str = DEFAULT_SECTION):
        self.config = config
        self.section = section
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def validate(self) -> bool:
        """Runs all checks and logs the resulting errors and warnings.

        Returns:
            `True` if the configuration has no errors, `False` otherwise.
        """
        if not self.config.has_section(self.section):
            self.errors.append(f"Missing required section: [{self.section}]")
        else:
            self._check_required_options()
            self._check_port()
            self._check_private_key()
            self._check_numeric_values()

        for warning in self.warnings:
            logger.warning(f"CONFIG: {warning}")
        for error in self.errors:
            logger.error(f"CONFIG: {error}")
        return not self.errors

    def _check_required_options(self) -> None:
        for option in self.REQUIRED_OPTIONS:
            if not self.config.has_option(self.section, option):
                self.errors.append(f"Missing option '{option}' in [{self.section}]")
            elif not self.config.get(self.section, option).strip():
                self.errors.append(f"Option '{option}' in [{self.section}] is empty")

    def _check_port(self) -> None:
        if not self.config.has_option(self.section, 'port'):
            return
        try:
            port = self.config.getint(self.section, 'port')
        except ValueError:
            self.errors.append(f"Option 'port' in [{self.section}] must be an integer")
            return
        if not (1 <= port <= 65535):
            self.errors.append(f"port={port} in [{self.section}] is not a valid TCP port")

    def _check_private_key(self) -> None:
        key_file = self.config.get(self.section, 'private_key_file', fallback='').strip()
        inline_key = self.config.get(self.section, 'private_key', fallback='').strip()
        if not key_file and not inline_key:
            self.errors.append(f"[{self.section}] needs either 'private_key_file' or 'private_key'")
        elif key_file and inline_key:
            self.warnings.append(f"[{self.section}] sets both 'private_key_file' and 'private_key'; using the file")
        if key_file and not Path(key_file).expanduser().is_file():
            self.errors.append(f"private_key_file '{key_file}' does not exist")

    def _check_numeric_values(self) -> None:
        for option, (min_val, max_val) in self.NUMERIC_OPTIONS.items():
            if not self.config.has_option(self.section, option):
                continue
            getter = self.config.getfloat if option in self.FLOAT_OPTIONS else self.config.getint
            try:
                value = getter(self.section, option)
            except ValueError:
                kind = "a number" if option in self.FLOAT_OPTIONS else "an integer"
                self.errors.append(f"Option '{option}' must be {kind}")
                continue
            if option == 'max_attempts' and value < 1:
                self.errors.append(f"max_attempts={value:g} must be at least 1")
            elif not (min_val <= value <= max_val):
                self.warnings.append(f"{option}={value:g} is outside recommended range [{min_val}-{max_val}]")


def read_config_file(config_path: str) -> configparser.ConfigParser:
    """Reads an `.ini` file into a `ConfigParser`.

    Raises:
        ConfigurationError: If the file does not exist.
    """
    config_file = Path(config_path).expanduser()
    if not config_file.is_file():
        logger.error(f"Configuration file not found at '{config_path}'.")
        raise ConfigurationError(f"Configuration file not found: {config_path}")
    config = configparser.ConfigParser()
    config.read(config_file, encoding='utf-8')
    return config


def config_from_section(config: configparser.ConfigParser, section: str = DEFAULT_SECTION) -> ClientConfig:
    """Builds a `ClientConfig` from a validated section.

    Raises:
        ConfigurationError: If validation fails or the key cannot be read.
    """
    validator = ConfigValidator(config, section)
    if not validator.validate():
        raise ConfigurationError("; ".join(validator.errors))

    options = config[section]
    key_file = options.get('private_key_file', '').strip()
    if key_file:
        try:
            credential = Path(key_file).expanduser().read_bytes()
        except OSError as e:
            raise ConfigurationError(f"Could not read private_key_file '{key_file}'", cause=e) from e
    else:
        credential = options.get('private_key').strip().encode('utf-8')

    passphrase = options.get('passphrase', '').strip()
    return ClientConfig(
        host=options.get('host').strip(),
        port=options.getint('port', DEFAULT_PORT),
        username=options.get('username').strip(),
        credential=credential,
        passphrase=decrypt_secret(passphrase) if passphrase else None,
        connect_timeout=options.getfloat('connect_timeout', Timeouts.CONNECT),
        keepalive_interval=options.getint('keepalive_interval', Timeouts.KEEPALIVE),
        max_attempts=options.getint('max_attempts', MAX_RETRY_ATTEMPTS),
        retry_delay=options.getfloat('retry_delay', 0),
    )


def load_config(config_path: str, section: str = DEFAULT_SECTION) -> ClientConfig:
    """Loads a `ClientConfig` from the given section of an `.ini` file."""
    logger.debug(f"Loading configuration from '{config_path}' [{section}]")
    return config_from_section(read_config_file(config_path), section)
