# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import posixpath
from typing import Mapping
from typing import NamedTuple
from typing import Sequence
from typing import Tuple

from os_access import HostAccess
from os_access import TRANSPORT_ERRORS

# Listing is sent over stdin, so this script is never among its own results.
# language=Bash
_LIST_PROCESSES = '''
if command -v ps >/dev/null 2>&1; then
    echo method=ps
    ps -eo pid=,args=
else
    echo method=proc
    for cmdline in /proc/[0-9]*/cmdline; do
        pid=${cmdline#/proc/}
        pid=${pid%/cmdline}
        args=$(tr '\\0' ' ' < "$cmdline" 2>/dev/null) || continue
        if [ -n "$args" ]; then
            echo "$pid $args"
        fi
    done
fi
'''


class ProcessProbeFailed(Exception):
    pass


class _Process(NamedTuple):
    pid: int
    args: Tuple[str, ...]

    def runs_class(self, class_token: str) -> bool:
        """Tell if this is a JVM with the class among its arguments.

        >>> _Process(1, ('/usr/bin/java', '-Xmx1g', 'a.B')).runs_class('a.B')
        True
        >>> _Process(2, ('grep', 'a.B')).runs_class('a.B')
        False
        >>> _Process(3, ('java', '-Dmain=a.B')).runs_class('a.B')
        False
        """
        if not self.args or not posixpath.basename(self.args[0]).startswith('java'):
            return False
        return class_token in self.args[1:]


def parse_process_listing(output: str) -> Sequence[_Process]:
    """Parse "pid args" lines, skipping the method marker.

    >>> parse_process_listing('method=ps\\n  12 java -cp x Main\\n 7 bash\\n')
    [_Process(pid=12, args=('java', '-cp', 'x', 'Main')), _Process(pid=7, args=('bash',))]
    """
    processes = []
    for line in output.splitlines():
        line = line.strip()
        if not line or line.startswith('method='):
            continue
        [pid, *args] = line.split()
        if not pid.isdigit():
            continue
        processes.append(_Process(int(pid), tuple(args)))
    return processes


class ProcessProbe:
    """Find service processes by their main class, always asking the host afresh.

    A process matches only when it is a JVM and one of its arguments
    equals the token exactly; substrings of longer arguments and tools
    like grep or tail mentioning the class do not count.
    """

    def __init__(self, access: HostAccess):
        self._access = access

    def list_processes(self, host: str) -> Sequence[_Process]:
        try:
            result = self._access.shell(host).run_script(_LIST_PROCESSES)
        except TRANSPORT_ERRORS as e:
            raise ProcessProbeFailed(f"{host}: cannot list processes: {e}")
        if result.returncode != 0:
            raise ProcessProbeFailed(
                f"{host}: process listing exited with {result.returncode}: "
                f"{result.stderr.decode(errors='backslashreplace').strip()}")
        return parse_process_listing(result.stdout.decode(errors='backslashreplace'))

    def find(self, host: str, class_token: str) -> Tuple[int, ...]:
        return tuple(p.pid for p in self.list_processes(host) if p.runs_class(class_token))

    def find_many(self, host: str, class_tokens: Sequence[str]) -> Mapping[str, Tuple[int, ...]]:
        processes = self.list_processes(host)
        return {
            token: tuple(p.pid for p in processes if p.runs_class(token))
            for token in class_tokens
            }

    def is_running(self, host: str, class_token: str) -> bool:
        return bool(self.find(host, class_token))

    def stop(self, host: str, class_token: str, display_name: str) -> bool:
        """Terminate matching processes; kill those that refuse.

        No matching process is success. Each process gets one TERM and,
        if the signal is rejected, one KILL; there are no retries.
        """
        pids = self.find(host, class_token)
        if not pids:
            _logger.info("%s: %s: not running", host, display_name)
            return True
        shell = self._access.shell(host)
        stopped = True
        for pid in pids:
            _logger.info("%s: %s: stopping PID %d", host, display_name, pid)
            result = shell.run(['kill', '-TERM', str(pid)])
            if result.returncode == 0:
                continue
            _logger.warning("%s: %s: TERM rejected for PID %d, sending KILL", host, display_name, pid)
            result = shell.run(['kill', '-KILL', str(pid)])
            if result.returncode != 0:
                _logger.error(
                    "%s: %s: cannot kill PID %d: %s", host, display_name, pid,
                    (result.stdout + result.stderr).decode(errors='backslashreplace').strip())
                stopped = False
        if stopped:
            _logger.info("%s: %s: stopped", host, display_name)
        return stopped


_logger = logging.getLogger(__name__)
