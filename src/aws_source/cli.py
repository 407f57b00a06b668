#!/usr/bin/env python3
"""
aws-source CLI
Discovers AWS resources and answers discovery queries over NATS.
"""

import argparse
import asyncio
import logging
import signal
import socket
import sys
from typing import List, Mapping, Optional

from botocore.exceptions import BotoCoreError, ClientError
from ruamel.yaml import YAMLError

from . import __version__
from .auth import STRATEGIES, get_account_id
from .config import DEFAULT_CONFIG_PATH, Settings, load_config, validate_config
from .engine import Engine, NatsOptions
from .health import create_health_server
from .logs import setup_logging
from .sources.registry import SourceRegistry, client_config
from .tracing import init_tracing, shutdown_tracing

logger = logging.getLogger(__name__)

ENGINE_NAME = "aws-source"


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser.

    Flags default to None so that only flags given on the command line
    override the environment and config file.
    """
    parser = argparse.ArgumentParser(
        prog="aws-source",
        description="Discovers AWS resources and serves them to the discovery network over NATS",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Every flag can also be set in the config file, or with an environment
variable named after the flag in upper case with dashes as underscores,
e.g. --aws-regions as AWS_REGIONS.

Examples:
  %(prog)s --aws-regions eu-west-2,us-east-1
  %(prog)s -a --aws-regions eu-west-2 --log debug
  %(prog)s --aws-access-strategy external-id --aws-target-role-arn arn:aws:iam::123456789012:role/discovery \\
      --aws-external-id 3c1b1c8e --aws-regions eu-west-2
        """
    )

    parser.add_argument('--version', action='version', version=f"%(prog)s {__version__}")
    parser.add_argument('--config', default=DEFAULT_CONFIG_PATH,
                        help=f'Config file path (default: {DEFAULT_CONFIG_PATH})')
    parser.add_argument('--log',
                        help='Log level: panic, fatal, error, warn, info, debug, trace (default: info)')

    nats_group = parser.add_argument_group('NATS')
    nats_group.add_argument('--nats-servers', action='append',
                            help='NATS server to connect to, repeatable '
                                 '(default: nats://localhost:4222, nats://nats:4222)')
    nats_group.add_argument('--nats-name-prefix',
                            help='Prefix for the NATS connection name, which is {prefix}.{hostname}')
    nats_group.add_argument('--nats-creds-file', help='NATS user credentials (JWT + NKey) file')
    nats_group.add_argument('--nats-nkey-seed-file', help='NATS NKey seed file')
    nats_group.add_argument('--nats-tls-cert', help='Client certificate for NATS TLS')
    nats_group.add_argument('--nats-tls-key', help='Client key for NATS TLS')
    nats_group.add_argument('--nats-tls-ca', help='CA bundle to verify the NATS server')

    parser.add_argument('--max-parallel', type=int,
                        help='Max number of queries to run in parallel (default: 2000)')
    parser.add_argument('--health-check-port', type=int,
                        help='Port the /healthz endpoint listens on (default: 8080)')
    parser.add_argument('--honeycomb-api-key', help='Send traces to Honeycomb with this key')
    parser.add_argument('--sentry-dsn', help='Report errors to Sentry')
    parser.add_argument('--run-mode', choices=['release', 'debug', 'test'],
                        help='Run mode (default: release)')

    aws_group = parser.add_argument_group('AWS')
    aws_group.add_argument('--aws-access-strategy', choices=STRATEGIES,
                           help='How to access the AWS account (default: defaults)')
    aws_group.add_argument('--aws-access-key-id', help='Access key ID, for the access-key strategy')
    aws_group.add_argument('--aws-secret-access-key', help='Secret access key, for the access-key strategy')
    aws_group.add_argument('--aws-external-id', help='External ID to use when assuming the target role')
    aws_group.add_argument('--aws-target-role-arn', help='Role to assume, for the external-id strategy')
    aws_group.add_argument('--aws-profile', help='Profile to use, for the sso-profile strategy')
    aws_group.add_argument('--aws-regions', help='Comma separated list of regions to discover')
    aws_group.add_argument('-a', '--auto-config', action='store_true', default=None,
                           help='Use the local AWS config, as the AWS CLI would')

    return parser


def load_settings(args: argparse.Namespace, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Merge flags, environment and config file into validated settings.

    Raises:
        ValueError: If the merged configuration is invalid
    """
    flags = {key: value for key, value in vars(args).items() if key != 'config'}
    config = load_config(args.config, environ, **flags)
    return validate_config(config)


def connection_name(prefix: str) -> str:
    hostname = socket.gethostname()
    if not hostname:
        raise RuntimeError("could not determine hostname for use in NATS connection name")
    return f"{prefix}.{hostname}" if prefix else hostname


def nats_options(settings: Settings) -> NatsOptions:
    return NatsOptions(
        servers=settings.nats_servers,
        connection_name=connection_name(settings.nats_name_prefix),
        creds_file=settings.nats_creds_file,
        nkey_seed_file=settings.nats_nkey_seed_file,
        tls_cert=settings.nats_tls_cert,
        tls_key=settings.nats_tls_key,
        tls_ca=settings.nats_tls_ca,
    )


def build_engine(settings: Settings, registry: SourceRegistry) -> Engine:
    """
    Create the engine with sources for every configured region.

    Account-wide sources are added once per account, from the first region
    that account is seen in.

    Raises:
        ValueError: If the AWS auth config is invalid
        RuntimeError: If the caller identity can't be found for a region
    """
    sessions = settings.auth_config().create_sessions()
    engine = Engine(ENGINE_NAME, nats_options(settings), settings.max_parallel)
    accounts = set()

    for region, session in sessions:
        try:
            account_id = get_account_id(session, client_config())
        except (ClientError, BotoCoreError) as e:
            raise RuntimeError(f"error getting caller identity for region {region}: {e}") from e

        engine.add_sources(*registry.build_regional_sources(session, account_id, region))

        if account_id not in accounts:
            accounts.add(account_id)
            engine.add_sources(*registry.build_global_sources(session, account_id, region))

    logger.info(f"Built {len(engine.sources)} sources for {len(accounts)} accounts in {len(sessions)} regions")
    return engine


async def run(engine: Engine, health_check_port: int) -> int:
    """Serve health checks and queries until SIGINT or SIGTERM.

    uvicorn may take over the signals while it serves, in which case the
    health server exiting is the signal to stop.
    """
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    server = create_health_server(engine, health_check_port)
    server_task = asyncio.create_task(server.serve())
    logger.debug(f"Starting healthcheck server on port {health_check_port}")

    stopped = asyncio.create_task(stop.wait())
    starting = asyncio.create_task(engine.start())
    await asyncio.wait([starting, stopped, server_task], return_when=asyncio.FIRST_COMPLETED)

    exit_code = 0
    if not starting.done():
        starting.cancel()
        logger.info("Stopped before the engine finished starting")
    elif starting.exception() is not None:
        logger.critical(f"Could not start engine: {starting.exception()}")
        exit_code = 1
    else:
        await asyncio.wait([stopped, server_task], return_when=asyncio.FIRST_COMPLETED)

    logger.info("Stopping engine")
    await engine.stop()

    server.should_exit = True
    await asyncio.gather(server_task, return_exceptions=True)
    stopped.cancel()

    logger.info("Stopped")
    return exit_code


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings(args)
    except (ValueError, OSError, YAMLError) as e:
        setup_logging()
        logger.critical(f"Invalid configuration: {e}")
        return 1

    setup_logging(settings.log)
    logger.info(f"Got config: {settings.redacted()}")

    init_tracing(settings.honeycomb_api_key, settings.sentry_dsn, settings.run_mode)
    registry = SourceRegistry()

    try:
        engine = build_engine(settings, registry)
    except (ValueError, RuntimeError) as e:
        logger.critical(f"Could not initialize aws source: {e}")
        registry.stop()
        shutdown_tracing()
        return 1

    try:
        return asyncio.run(run(engine, settings.health_check_port))
    except KeyboardInterrupt:
        return 0
    finally:
        registry.stop()
        shutdown_tracing()


if __name__ == '__main__':
    sys.exit(main())
