# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from textwrap import dedent
from typing import Sequence

from os_access import augment_script
from os_access import quote_arg


class OzoneScript:
    """Build scripts that run the ozone command on a cluster host.

    The preamble finds Java and the ozone binary and exports the
    environment; the body then refers to "$OZONE_CMD".
    """

    def __init__(self, install_dir: str = '/opt/ozone', conf_dir: str = '/etc/hadoop/conf'):
        self._install_dir = install_dir
        self._conf_dir = conf_dir

    def __repr__(self):
        return f'OzoneScript({self._install_dir!r}, {self._conf_dir!r})'

    def preamble(self) -> str:
        # language=Bash
        return dedent('''
            if command -v java >/dev/null 2>&1; then
                java_bin=$(readlink -f "$(command -v java)")
                export JAVA_HOME=$(dirname "$(dirname "$java_bin")")
            else
                export JAVA_HOME=/usr/lib/jvm/java
            fi
            if [ -x "$OZONE_INSTALL_DIR/bin/ozone" ]; then
                export OZONE_HOME=$OZONE_INSTALL_DIR
            elif [ -x /usr/local/ozone/bin/ozone ]; then
                export OZONE_HOME=/usr/local/ozone
            elif command -v ozone >/dev/null 2>&1; then
                export OZONE_HOME=$(dirname "$(dirname "$(readlink -f "$(command -v ozone)")")")
            else
                echo "ERROR: Ozone command not found" >&2
                exit 127
            fi
            OZONE_CMD=$OZONE_HOME/bin/ozone
            export PATH="$OZONE_HOME/bin:$PATH"
            ''').strip()

    def build(self, body: str, directories: Sequence[str] = ()) -> str:
        parts = [self.preamble()]
        if directories:
            parts.append(ensure_directories(directories))
        parts.append(dedent(body).strip())
        env = {'OZONE_INSTALL_DIR': self._install_dir, 'OZONE_CONF_DIR': self._conf_dir}
        return augment_script('\n'.join(parts), env=env)


def ensure_directories(directories: Sequence[str]) -> str:
    """Create missing directories for the SSH user; only the top level is touched.

    >>> print(ensure_directories(['/data/om']))
    for dir in /data/om; do
        if [ ! -d "$dir" ]; then
            sudo mkdir -p "$dir"
            sudo chown "$(id -un):$(id -gn)" "$dir"
            sudo chmod 750 "$dir"
        elif [ ! -w "$dir" ]; then
            sudo chown "$(id -un):$(id -gn)" "$dir"
        fi
    done
    """
    quoted = ' '.join(quote_arg(d) for d in directories)
    # language=Bash
    return dedent(f'''
        for dir in {quoted}; do
            if [ ! -d "$dir" ]; then
                sudo mkdir -p "$dir"
                sudo chown "$(id -un):$(id -gn)" "$dir"
                sudo chmod 750 "$dir"
            elif [ ! -w "$dir" ]; then
                sudo chown "$(id -un):$(id -gn)" "$dir"
            fi
        done
        ''').strip()
