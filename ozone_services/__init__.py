# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
"""Lifecycle of Ozone services on cluster hosts.

Services start in a fixed order: SCM, OM, DataNodes, then Recon and
the gateways. They stop in reverse. Whether a service runs is always
asked from the host, never remembered.
"""
from ozone_services._format import FormatResult
from ozone_services._format import ServiceFormatter
from ozone_services._format import scm_format_flag
from ozone_services._orchestrator import OzoneNotInstalled
from ozone_services._orchestrator import ServiceOrchestrator
from ozone_services._orchestrator import StartReport
from ozone_services._process_probe import ProcessProbe
from ozone_services._process_probe import ProcessProbeFailed
from ozone_services._readiness import SafeModeStatus
from ozone_services._readiness import SafeModeWaiter
from ozone_services._readiness import classify
from ozone_services._scripts import OzoneScript
from ozone_services._services import ALL_SERVICES
from ozone_services._services import OzoneService
from ozone_services._services import get_service

__all__ = [
    'ALL_SERVICES',
    'FormatResult',
    'OzoneNotInstalled',
    'OzoneScript',
    'OzoneService',
    'ProcessProbe',
    'ProcessProbeFailed',
    'SafeModeStatus',
    'SafeModeWaiter',
    'ServiceFormatter',
    'ServiceOrchestrator',
    'StartReport',
    'classify',
    'get_service',
    'scm_format_flag',
    ]
