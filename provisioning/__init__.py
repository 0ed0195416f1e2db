# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
"""Work run on a fleet of cluster hosts.

Every action is formulated in terms of a command run on one host.
Commands are run only via a fleet, which bounds concurrency, captures
failures per host and logs a summary.

Commands must be idempotent.
The second run must not "accumulate" changes.
Running it multiple times must be safe.
"""
from provisioning._core import Command
from provisioning._core import CompositeCommand
from provisioning._core import Fleet
from provisioning._core import HostOutcome
from provisioning._core import Script
from provisioning._core import ScriptFailed
from provisioning._host_setup import ConfigureCpuGovernor
from provisioning._host_setup import ConfigureSwappiness
from provisioning._host_setup import DisableSelinux
from provisioning._host_setup import DisableTransparentHugePages
from provisioning._host_setup import InstallGrafana
from provisioning._host_setup import InstallJdk
from provisioning._host_setup import InstallPrometheus
from provisioning._host_setup import InstallTimeSync
from provisioning._host_setup import PrepareDirectories

__all__ = [
    'Command',
    'CompositeCommand',
    'ConfigureCpuGovernor',
    'ConfigureSwappiness',
    'DisableSelinux',
    'DisableTransparentHugePages',
    'Fleet',
    'HostOutcome',
    'InstallGrafana',
    'InstallJdk',
    'InstallPrometheus',
    'InstallTimeSync',
    'PrepareDirectories',
    'Script',
    'ScriptFailed',
    ]
