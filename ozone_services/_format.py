# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
from enum import Enum
from typing import Sequence

from cluster_config import ClusterConfig
from os_access import HostAccess
from os_access import quote_arg
from ozone_services._scripts import OzoneScript
from ozone_services._services import OzoneService


class FormatResult(Enum):
    FORMATTED = 'formatted'
    ALREADY_INITIALIZED = 'already initialized'
    FAILED = 'failed'


def scm_format_flag(scm_hosts: Sequence[str], host: str) -> str:
    """Choose how SCM storage is initialized on the host.

    The first SCM host creates the cluster; the others join it.

    >>> scm_format_flag(['s1', 's2', 's3'], 's1')
    '--init'
    >>> scm_format_flag(['s1', 's2', 's3'], 's3')
    '--bootstrap'
    >>> scm_format_flag(['s1'], 's1')
    '--init'
    """
    if len(scm_hosts) <= 1 or scm_hosts[0] == host:
        return '--init'
    return '--bootstrap'


def format_flag(service: OzoneService, hosts: Sequence[str], host: str) -> str:
    if not service.supports_format:
        raise ValueError(f"{service.display_name} has no storage to format")
    if service.name == 'scm':
        return scm_format_flag(hosts, host)
    return '--init'


class ServiceFormatter:

    def __init__(self, config: ClusterConfig, access: HostAccess, script: OzoneScript):
        self._config = config
        self._access = access
        self._script = script

    def format(self, host: str, service: OzoneService, hosts: Sequence[str]) -> FormatResult:
        """Initialize storage of the service on the host.

        A failed format is expected on every run after the first one.
        It is told apart from a real failure by looking for the storage
        VERSION file the service writes once initialized.
        """
        flag = format_flag(service, hosts, host)
        service_directories = self._config.service_directories(service.name)
        directories = ' '.join(quote_arg(d) for d in service_directories)
        _logger.info("%s: %s: format with %s", host, service.display_name, flag)
        shell = self._access.shell(host)
        result = shell.run_script(self._script.build(
            f'"$OZONE_CMD" {service.daemon_name} {flag}', directories=service_directories))
        if result.returncode == 0:
            _logger.info("%s: %s: formatted", host, service.display_name)
            return FormatResult.FORMATTED
        # language=Bash
        probe = shell.run_script(self._script.build(f'''
            for dir in {directories}; do
                for version in "$dir/current/VERSION" "$dir/{service.name}/current/VERSION"; do
                    if [ -f "$version" ]; then
                        echo "$version"
                        exit 0
                    fi
                done
            done
            exit 1
            '''))
        if probe.returncode == 0:
            _logger.warning(
                "%s: %s: format exited with %d; storage already initialized (%s)",
                host, service.display_name, result.returncode,
                probe.stdout.decode(errors='backslashreplace').strip())
            return FormatResult.ALREADY_INITIALIZED
        output = (result.stdout + result.stderr).decode(errors='backslashreplace').strip()
        _logger.error(
            "%s: %s: format failed with %d: %s",
            host, service.display_name, result.returncode, output[-2000:])
        return FormatResult.FAILED


_logger = logging.getLogger(__name__)
