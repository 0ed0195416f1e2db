# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import argparse
import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Callable
from typing import Sequence

from cluster_config import ClusterConfig
from cluster_config import ConfigError
from cluster_config import ServiceHostPlan
from cluster_config import read_cluster_config
from installation import ClusterInstaller
from installation import ConfigurationDistributor
from installation import HostValidationError
from installation import SiteConfiguration
from os_access import HostAccess
from os_access import SshAccess
from os_access import SshNotConnected
from ozone_services import OzoneNotInstalled
from ozone_services import ServiceOrchestrator

_logger = logging.getLogger(__name__)

AccessFactory = Callable[[ClusterConfig], HostAccess]


def main(args: Sequence[str]) -> int:
    parsed_args = parse_args(args)
    _init_logging(parsed_args.command, parsed_args.verbose)
    return run(parsed_args)


def parse_args(args: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Install and run an Apache Ozone cluster over SSH")
    parser.add_argument(
        '--config',
        type=Path,
        default=Path(os.environ.get('OZONE_CLUSTER_CONFIG', 'multi-host.conf')),
        help="Cluster configuration file (default: $OZONE_CLUSTER_CONFIG or ./multi-host.conf)")
    parser.add_argument('--verbose', action='store_true', help="Show debug messages")
    commands = parser.add_subparsers(dest='command', required=True)
    install_parser = commands.add_parser('install', help="Prepare hosts and install Ozone")
    install_parser.add_argument(
        '--jdk-version',
        choices=['8', '11', '17', '21'],
        help="OpenJDK to install; JDK_VERSION from the configuration by default")
    configure_parser = commands.add_parser(
        'configure', help="Generate configuration files and copy them to every host")
    configure_parser.add_argument(
        '--output-dir',
        type=Path,
        default=Path('ozone-config'),
        help="Where generated files are kept locally")
    start_parser = commands.add_parser('start', help="Start services in dependency order")
    start_parser.add_argument(
        '--first-time',
        action='store_true',
        help="Format SCM and OM metadata before starting them")
    stop_parser = commands.add_parser('stop', help="Stop services")
    stop_parser.add_argument(
        'service', nargs='?',
        help="scm, om, datanode, recon, s3gateway, httpfs or all (all requires a host)")
    stop_parser.add_argument('host', nargs='?', help="Only stop on this host")
    commands.add_parser('status', help="Show which services run on which hosts")
    return parser.parse_args(args)


def run(parsed_args: argparse.Namespace, make_access: AccessFactory = SshAccess) -> int:
    try:
        config = read_cluster_config(parsed_args.config)
    except ConfigError as e:
        _logger.error("Configuration: %s", e)
        return 1
    access = make_access(config)
    try:
        return _run_command(parsed_args, config, access)
    except HostValidationError as e:
        _logger.error("%s", e)
        return 1
    except SshNotConnected as e:
        _logger.error("SSH: %s", e)
        return 1
    except OzoneNotInstalled as e:
        _logger.error("%s; run the install command first", e)
        return 1
    finally:
        access.close()


def _run_command(parsed_args, config: ClusterConfig, access: HostAccess) -> int:
    if parsed_args.command == 'install':
        installer = ClusterInstaller(config, access)
        installer.install(jdk_version=parsed_args.jdk_version)
        _logger.info("Next: run the configure command, then start --first-time")
        return 0
    if parsed_args.command == 'configure':
        site = SiteConfiguration(config)
        files = site.write(parsed_args.output_dir)
        distributor = ConfigurationDistributor(
            access, config.conf_dir, config.max_concurrent_transfers)
        distributor.distribute(files, ServiceHostPlan(config).all_hosts())
        return 0
    orchestrator = ServiceOrchestrator(config, access)
    if parsed_args.command == 'start':
        orchestrator.check_installation()
        report = orchestrator.start(format_first=parsed_args.first_time)
        if not report.ready:
            _logger.warning("Cluster started but has not left safe mode yet")
        return 0
    if parsed_args.command == 'stop':
        try:
            orchestrator.stop(parsed_args.service, parsed_args.host)
        except (ValueError, KeyError) as e:
            _logger.error("Cannot stop: %s", e)
            return 1
        return 0
    if parsed_args.command == 'status':
        orchestrator.status()
        return 0
    raise RuntimeError(f"Unknown command {parsed_args.command}")


def _init_logging(command: str, verbose: bool):
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    log_dir = Path('~/.cache/ozone_cluster_logs').expanduser()
    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.handlers.RotatingFileHandler(
        log_dir / f'{command}.log', maxBytes=50 * 1024**2, backupCount=6)
    file_handler.setFormatter(logging.Formatter('%(asctime)s %(name)s %(levelname)s %(message)s'))
    file_handler.setLevel(logging.DEBUG)
    root.addHandler(file_handler)
    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s %(message)s'))
    stream_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.addHandler(stream_handler)
    logging.getLogger('paramiko').setLevel(logging.WARNING)


if __name__ == '__main__':
    exit(main(sys.argv[1:]))
