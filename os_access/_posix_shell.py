# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import os
import shlex
from textwrap import dedent
from typing import Mapping
from typing import Optional

_PROHIBITED_ENV_NAMES = {'PATH', 'HOME', 'USER', 'SHELL', 'PWD', 'TERM'}


def quote_arg(arg):
    """Quote for bash.

    >>> quote_arg('/opt/ozone')
    '/opt/ozone'
    >>> quote_arg('a b')
    "'a b'"
    >>> quote_arg(22)
    '22'
    """
    return shlex.quote(str(arg))


def command_to_script(command):
    """Join arguments into one command line.

    >>> command_to_script(['stat', '-c%s', '/tmp/a b'])
    "stat -c%s '/tmp/a b'"
    """
    str_args = []
    for arg in command:
        if isinstance(arg, str):
            str_args.append(arg)
        elif isinstance(arg, int) and not isinstance(arg, bool):
            str_args.append(str(arg))
        elif isinstance(arg, os.PathLike):
            str_args.append(os.fspath(arg))
        else:
            raise TypeError(f"Unsupported arg type {arg} in command {command}")
    return shlex.join(str_args)


def env_to_command(env: Mapping[str, object]):
    """Turn a mapping into export lines.

    >>> env_to_command({'OZONE_HOME': '/opt/ozone', 'ENABLED': True})
    ['export OZONE_HOME=/opt/ozone', 'export ENABLED=true']
    """
    command = []
    for name, value in env.items():
        if name in _PROHIBITED_ENV_NAMES:
            raise ValueError(f"Potential name clash with built-in name: {name}")
        if isinstance(value, bool):  # Beware: bool is subclass of int.
            value = 'true' if value else 'false'
        elif value is None:
            value = ''
        elif isinstance(value, os.PathLike):
            value = os.fspath(value)
        elif not isinstance(value, (str, int)):
            raise RuntimeError(f"Unexpected value {value!r} of type {type(value)}")
        command.append(f'export {name}={quote_arg(value)}')
    return command


def augment_script(script: str, env: Optional[Mapping[str, object]] = None, set_eu=True):
    """Prepend strict mode and environment to a script body.

    >>> print(augment_script('''
    ...     echo "$A"
    ...     ''', env={'A': 'x y'}))
    set -eu
    export A='x y'
    echo "$A"
    """
    lines = []
    if set_eu:
        # language=Bash
        lines.append('set -eu')
    if env is not None:
        lines.extend(env_to_command(env))
    lines.append(dedent(script).strip())
    return '\n'.join(lines)
