# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from cluster_config._config import ClusterConfig
from cluster_config._config import ConfigError
from cluster_config._config import parse_hosts
from cluster_config._config import read_cluster_config
from cluster_config._config import read_config_values
from cluster_config._host_plan import SERVICE_NAMES
from cluster_config._host_plan import ServiceHostPlan

__all__ = [
    'ClusterConfig',
    'ConfigError',
    'SERVICE_NAMES',
    'ServiceHostPlan',
    'parse_hosts',
    'read_cluster_config',
    'read_config_values',
    ]
