# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import time
from enum import Enum
from typing import Callable

from os_access import HostAccess
from os_access import TRANSPORT_ERRORS
from ozone_services._scripts import OzoneScript


class SafeModeStatus(Enum):
    READY = 'ready'
    NOT_READY = 'not ready'
    PROBE_FAILED = 'probe failed'


_READY_MARKERS = ('OFF', 'exited', 'out of safe mode')


def classify(returncode: int, output: str) -> SafeModeStatus:
    """Interpret "ozone admin safemode status".

    >>> classify(0, 'SCM is out of safe mode.')
    <SafeModeStatus.READY: 'ready'>
    >>> classify(0, 'SCM is in safe mode.')
    <SafeModeStatus.NOT_READY: 'not ready'>
    >>> classify(255, '')
    <SafeModeStatus.PROBE_FAILED: 'probe failed'>
    >>> classify(0, 'FAILED')
    <SafeModeStatus.PROBE_FAILED: 'probe failed'>
    """
    if returncode != 0 or not output.strip() or 'FAILED' in output:
        return SafeModeStatus.PROBE_FAILED
    if any(marker in output for marker in _READY_MARKERS):
        return SafeModeStatus.READY
    return SafeModeStatus.NOT_READY


class SafeModeWaiter:
    """Poll one host until the cluster leaves safe mode.

    A failed probe is not a verdict: polling goes on until the cluster
    is ready or attempts run out. Running out is reported, not raised.
    """

    def __init__(
            self,
            access: HostAccess,
            script: OzoneScript,
            max_attempts: int = 60,
            poll_interval_sec: float = 10,
            sleep: Callable[[float], None] = time.sleep,
            ):
        self._access = access
        self._script = script
        self._max_attempts = max_attempts
        self._poll_interval_sec = poll_interval_sec
        self._sleep = sleep

    def poll(self, host: str) -> SafeModeStatus:
        try:
            result = self._access.shell(host).run_script(self._script.build(
                '"$OZONE_CMD" admin safemode status 2>/dev/null'))
        except TRANSPORT_ERRORS as e:
            _logger.info("%s: safe mode probe: %r", host, e)
            return SafeModeStatus.PROBE_FAILED
        output = result.stdout.decode(errors='backslashreplace')
        status = classify(result.returncode, output)
        if status == SafeModeStatus.NOT_READY:
            _logger.info("%s: safe mode status: %s", host, output.strip())
        return status

    def wait(self, host: str) -> bool:
        _logger.info("%s: waiting for Ozone to exit safe mode", host)
        for attempt in range(1, self._max_attempts + 1):
            _logger.info(
                "%s: checking safe mode status (attempt %d/%d)",
                host, attempt, self._max_attempts)
            status = self.poll(host)
            if status == SafeModeStatus.READY:
                _logger.info("%s: Ozone has exited safe mode", host)
                return True
            if status == SafeModeStatus.PROBE_FAILED:
                _logger.warning(
                    "%s: unable to check safe mode status, services may still be starting", host)
            if attempt < self._max_attempts:
                self._sleep(self._poll_interval_sec)
        _logger.warning(
            "%s: safe mode not exited after %d attempts; "
            "check manually with: ozone admin safemode status",
            host, self._max_attempts)
        return False


_logger = logging.getLogger(__name__)
