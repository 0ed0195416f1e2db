# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from doubles.fake_hosts._fake_shell import FakeHostAccess
from doubles.fake_hosts._fake_shell import FakeShell

__all__ = [
    'FakeHostAccess',
    'FakeShell',
    ]
