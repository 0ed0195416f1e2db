# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
from typing import Mapping
from typing import Tuple

from cluster_config._config import ClusterConfig

_logger = logging.getLogger(__name__)

# Start order; stopping goes the other way round.
SERVICE_NAMES = ('scm', 'om', 'datanode', 'recon', 's3gateway', 'httpfs')


class ServiceHostPlan:
    """Which hosts run which service.

    Services without explicit hosts run on the first cluster host,
    except datanodes which run on every cluster host.
    """

    def __init__(self, config: ClusterConfig):
        self._cluster_hosts = config.cluster_hosts
        self._hosts: Mapping[str, Tuple[str, ...]] = {}
        for service in SERVICE_NAMES:
            configured = config.service_hosts(service)
            if configured:
                self._hosts[service] = configured
            elif service == 'datanode':
                self._hosts[service] = config.cluster_hosts
            else:
                self._hosts[service] = (config.cluster_hosts[0],)

    def __repr__(self):
        return f'<ServiceHostPlan {self.describe_line()}>'

    def hosts(self, service: str) -> Tuple[str, ...]:
        return self._hosts[service]

    def all_hosts(self) -> Tuple[str, ...]:
        result = list(self._cluster_hosts)
        for service in SERVICE_NAMES:
            for host in self._hosts[service]:
                if host not in result:
                    result.append(host)
        return tuple(result)

    def services_on(self, host: str) -> Tuple[str, ...]:
        return tuple(s for s in SERVICE_NAMES if host in self._hosts[s])

    def is_ha(self, service: str) -> bool:
        return len(self._hosts[service]) > 1

    def describe_line(self) -> str:
        return '; '.join(f'{s}={",".join(self._hosts[s])}' for s in SERVICE_NAMES)

    def describe(self):
        _logger.info("Service distribution:")
        for service in SERVICE_NAMES:
            _logger.info("  %-10s %s", service, ', '.join(self._hosts[service]))
