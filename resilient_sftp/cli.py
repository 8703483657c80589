"""Command line interface: `resilient-sftp` / `python -m resilient_sftp`."""
import argparse
import dataclasses
import getpass
import logging
import sys
from pathlib import Path
from typing import List, Optional

import argcomplete
from rich.console import Console
from rich.logging import RichHandler

from . import __version__
from .builder import SftpClientBuilder
from .client import SftpClient
from .config import DEFAULT_PORT, DEFAULT_SECTION, ClientConfig, load_config
from .encryption_utils import encrypt_secret
from .exceptions import ConfigurationError, InvalidArgumentError, SftpClientError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "~/.config/resilient-sftp/config.ini"


def setup_logging(debug: bool, simple: bool) -> None:
    """Configures the root logger for console output.

    Rich output goes to stderr so command results on stdout stay pipeable.
    `--simple` switches to a plain `StreamHandler`, better suited to
    `screen`, `tmux` and log files.
    """
    logger_root = logging.getLogger()
    log_level = logging.DEBUG if debug else logging.INFO
    logger_root.setLevel(log_level)

    if logger_root.hasHandlers():
        logger_root.handlers.clear()

    if simple:
        handler: logging.Handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter('%(asctime)s - %(levelname)s - %(message)s'))
    else:
        handler = RichHandler(level=log_level, show_path=False, rich_tracebacks=True, console=Console(stderr=True))
        handler.setFormatter(logging.Formatter('%(message)s'))
    logger_root.addHandler(handler)

    logging.getLogger("paramiko").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="resilient-sftp",
        description="Upload, download, list, move and delete files over SFTP with automatic retry.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument('--config', default=DEFAULT_CONFIG_PATH, help='Path to the configuration file.')
    parser.add_argument('--section', default=DEFAULT_SECTION, help='Server section to read from the configuration file.')
    parser.add_argument('--host', help='SFTP host, overriding the configuration file.')
    parser.add_argument('--port', type=int, help='SFTP port, overriding the configuration file.')
    parser.add_argument('--username', help='Login name, overriding the configuration file.')
    parser.add_argument('--key-file', help='Private key file, overriding the configuration file.')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging.')
    parser.add_argument('--simple', action='store_true', help='Use plain log output instead of rich formatting.')
    parser.add_argument('--version', action='version', version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest='command', required=True)

    ls_parser = subparsers.add_parser('ls', help='List a remote directory.')
    ls_parser.add_argument('remote_dir')

    upload_parser = subparsers.add_parser('upload', help='Upload a local file into a remote directory.')
    upload_parser.add_argument('local_file')
    upload_parser.add_argument('remote_dir')

    download_parser = subparsers.add_parser('download', help='Download a remote file to a local file or directory.')
    download_parser.add_argument('remote_path')
    download_parser.add_argument('local_destination', nargs='?', default='.')

    mv_parser = subparsers.add_parser('mv', help='Move or rename a remote file.')
    mv_parser.add_argument('remote_from')
    mv_parser.add_argument('remote_to')

    rm_parser = subparsers.add_parser('rm', help='Delete one or more remote files.')
    rm_parser.add_argument('remote_paths', nargs='+')

    subparsers.add_parser('encrypt-passphrase',
                          help='Encrypt a key passphrase for the configuration file and exit.')
    return parser


def resolve_config(args: argparse.Namespace) -> ClientConfig:
    """Loads the configuration file (if present) and applies command line overrides."""
    config_path = Path(args.config).expanduser()
    if config_path.is_file():
        config = load_config(str(config_path), args.section)
    else:
        if args.config != DEFAULT_CONFIG_PATH:
            raise ConfigurationError(f"Configuration file not found: {args.config}")
        if not (args.host and args.username and args.key_file):
            raise ConfigurationError("No configuration file found; --host, --username and --key-file are required")
        config = ClientConfig(host=args.host, port=DEFAULT_PORT, username=args.username, credential=b"")

    overrides = {}
    if args.host:
        overrides['host'] = args.host
    if args.port:
        overrides['port'] = args.port
    if args.username:
        overrides['username'] = args.username
    if args.key_file:
        try:
            overrides['credential'] = Path(args.key_file).expanduser().read_bytes()
        except OSError as e:
            raise ConfigurationError(f"Could not read key file '{args.key_file}'", cause=e) from e
    return dataclasses.replace(config, **overrides)


def run_command(client: SftpClient, args: argparse.Namespace) -> None:
    if args.command == 'ls':
        for name in client.list_directory(args.remote_dir):
            print(name)
    elif args.command == 'upload':
        client.upload(args.local_file, args.remote_dir)
    elif args.command == 'download':
        local_file = client.download(args.remote_path, args.local_destination)
        logger.info(f"Downloaded to {local_file}")
    elif args.command == 'mv':
        client.move(args.remote_from, args.remote_to)
    elif args.command == 'rm':
        paths = args.remote_paths
        client.delete(paths[0] if len(paths) == 1 else paths)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    argcomplete.autocomplete(parser)
    args = parser.parse_args(argv)
    setup_logging(args.debug, args.simple)

    if args.command == 'encrypt-passphrase':
        try:
            print(encrypt_secret(getpass.getpass("Passphrase: ")))
        except ConfigurationError as e:
            logger.error(f"Could not encrypt passphrase: {e}")
            return 2
        return 0

    try:
        config = resolve_config(args)
        client = SftpClientBuilder.from_config(config).build()
    except (ConfigurationError, InvalidArgumentError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    with client:
        try:
            run_command(client, args)
        except SftpClientError as e:
            logger.error(f"{args.command} failed ({e.kind.value}): {e}")
            return 1
    return 0
