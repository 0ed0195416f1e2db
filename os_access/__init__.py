# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from os_access._access import HostAccess
from os_access._access import SshAccess
from os_access._command import HostShell
from os_access._posix_shell import augment_script
from os_access._posix_shell import command_to_script
from os_access._posix_shell import env_to_command
from os_access._posix_shell import quote_arg
from os_access._ssh_shell import Ssh
from os_access._ssh_shell import SshNotConnected
from os_access._ssh_shell import TRANSPORT_ERRORS
from os_access._ssh_shell import load_private_key

__all__ = [
    'HostAccess',
    'HostShell',
    'Ssh',
    'SshAccess',
    'SshNotConnected',
    'TRANSPORT_ERRORS',
    'augment_script',
    'command_to_script',
    'env_to_command',
    'load_private_key',
    'quote_arg',
    ]
