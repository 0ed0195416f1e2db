# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
"""Host preparation steps for storage nodes.

Each step is idempotent: a second run finds the setting in place and
changes nothing. Problems that do not prevent Ozone from running are
reported as WARNING lines rather than failures.
"""
from typing import Sequence

from os_access import HostAccess
from os_access import quote_arg
from provisioning._core import Script

# language=Bash
_DETECT_PACKAGE_MANAGER = '''
    PKG_MGR=
    for candidate in yum dnf apt-get zypper; do
        if command -v "$candidate" >/dev/null 2>&1; then
            PKG_MGR=$candidate
            break
        fi
    done
    if [ -z "$PKG_MGR" ]; then
        echo "No supported package manager found" >&2
        exit 1
    fi
    echo "Using package manager: $PKG_MGR"
    '''


class ConfigureCpuGovernor(Script):

    def __init__(self, access: HostAccess):
        # language=Bash
        super().__init__(access, "Set CPU governor to performance", '''
            governor=/sys/devices/system/cpu/cpu0/cpufreq/scaling_governor
            if [ ! -f "$governor" ]; then
                echo "CPU frequency scaling not available"
                exit 0
            fi
            if [ "$(cat "$governor")" = performance ]; then
                echo "CPU governor already set to performance"
                exit 0
            fi
            for cpu_governor in /sys/devices/system/cpu/cpu*/cpufreq/scaling_governor; do
                echo performance | sudo tee "$cpu_governor" >/dev/null
            done
            ''')


class DisableTransparentHugePages(Script):

    def __init__(self, access: HostAccess):
        # language=Bash
        super().__init__(access, "Disable transparent huge pages", '''
            thp=/sys/kernel/mm/transparent_hugepage
            if [ ! -f "$thp/enabled" ]; then
                echo "Transparent huge pages not supported"
                exit 0
            fi
            if ! grep -q '\\[never\\]' "$thp/enabled"; then
                echo never | sudo tee "$thp/enabled" >/dev/null
                echo never | sudo tee "$thp/defrag" >/dev/null
            fi
            if [ -f /etc/default/grub ] && ! grep -q transparent_hugepage=never /etc/default/grub; then
                sudo sed -i 's/GRUB_CMDLINE_LINUX="/GRUB_CMDLINE_LINUX="transparent_hugepage=never /' /etc/default/grub
                echo "WARNING: GRUB updated; the setting persists after the next grub config rebuild"
            fi
            ''')


class DisableSelinux(Script):

    def __init__(self, access: HostAccess):
        # language=Bash
        super().__init__(access, "Disable SELinux", '''
            if ! command -v getenforce >/dev/null 2>&1; then
                echo "SELinux not installed"
                exit 0
            fi
            if [ "$(getenforce)" != Disabled ]; then
                sudo setenforce 0 || true
                if [ -f /etc/selinux/config ]; then
                    sudo sed -i 's/^SELINUX=.*/SELINUX=disabled/' /etc/selinux/config
                fi
                echo "WARNING: SELinux is fully disabled only after a reboot"
            fi
            ''')


class ConfigureSwappiness(Script):

    def __init__(self, access: HostAccess, value: int = 1):
        # language=Bash
        super().__init__(access, f"Set vm.swappiness to {value}", f'''
            if [ "$(sysctl -n vm.swappiness)" != {value} ]; then
                sudo sysctl -w vm.swappiness={value}
            fi
            if ! grep -q '^vm.swappiness = {value}$' /etc/sysctl.conf 2>/dev/null; then
                sudo sed -i '/^vm.swappiness/d' /etc/sysctl.conf 2>/dev/null || true
                echo 'vm.swappiness = {value}' | sudo tee -a /etc/sysctl.conf >/dev/null
            fi
            ''')


class PrepareDirectories(Script):
    """Create data directories owned by the SSH user, report their filesystems."""

    def __init__(self, access: HostAccess, directories: Sequence[str]):
        quoted = ' '.join(quote_arg(d) for d in directories)
        # language=Bash
        super().__init__(access, f"Prepare {len(directories)} data directories", f'''
            for dir in {quoted}; do
                sudo mkdir -p "$dir"
                sudo chown -R "$(id -un):$(id -gn)" "$dir"
                sudo chmod -R 750 "$dir"
                fs_type=$(df -T "$dir" | tail -1 | awk '{{print $2}}')
                mount_options=$(findmnt -n -o OPTIONS --target "$dir" 2>/dev/null || true)
                echo "$dir: $fs_type ($mount_options)"
                case "$fs_type" in
                    ext4|xfs) ;;
                    *) echo "WARNING: $dir is on $fs_type; ext4 or xfs recommended" ;;
                esac
                case "$mount_options" in
                    *noatime*) ;;
                    *) echo "WARNING: $dir is mounted without noatime" ;;
                esac
            done
            ''')


class InstallJdk(Script):
    """Install OpenJDK; where JDK 8 is not packaged, take JDK 11."""

    def __init__(self, access: HostAccess, version: str):
        # language=Bash
        super().__init__(access, f"Install OpenJDK {version}", _DETECT_PACKAGE_MANAGER + f'''
            if command -v java >/dev/null 2>&1 && java -version 2>&1 | grep -q 'version "\\(1\\.\\)\\?{version}[."]'; then
                echo "OpenJDK {version} already installed"
                exit 0
            fi
            version={quote_arg(version)}
            case "$PKG_MGR" in
                yum|dnf)
                    if [ "$version" = 8 ]; then
                        if $PKG_MGR list available java-1.8.0-openjdk >/dev/null 2>&1; then
                            packages="java-1.8.0-openjdk java-1.8.0-openjdk-devel"
                        else
                            echo "WARNING: OpenJDK 8 is not available, installing OpenJDK 11"
                            packages="java-11-openjdk java-11-openjdk-devel"
                        fi
                    else
                        packages="java-$version-openjdk java-$version-openjdk-devel"
                    fi
                    sudo $PKG_MGR install -y $packages
                    ;;
                apt-get)
                    sudo apt-get update -y
                    if apt-cache show "openjdk-$version-jdk" >/dev/null 2>&1; then
                        sudo apt-get install -y "openjdk-$version-jdk"
                    else
                        echo "WARNING: OpenJDK $version is not available, installing OpenJDK 11"
                        sudo apt-get install -y openjdk-11-jdk
                    fi
                    ;;
                zypper)
                    if [ "$version" = 8 ]; then
                        packages="java-1_8_0-openjdk java-1_8_0-openjdk-devel"
                    else
                        packages="java-$version-openjdk java-$version-openjdk-devel"
                    fi
                    sudo zypper refresh
                    sudo zypper install -y $packages
                    ;;
            esac
            java -version
            ''')


class InstallTimeSync(Script):

    def __init__(self, access: HostAccess):
        # language=Bash
        super().__init__(access, "Install time synchronization", _DETECT_PACKAGE_MANAGER + '''
            if [ "$PKG_MGR" = apt-get ]; then
                chrony_unit=chrony
                ntp_unit=ntp
            else
                chrony_unit=chronyd
                ntp_unit=ntpd
            fi
            if sudo $PKG_MGR install -y chrony; then
                sudo systemctl enable --now "$chrony_unit"
                echo "Chrony installed and started"
            elif sudo $PKG_MGR install -y ntp; then
                sudo systemctl enable --now "$ntp_unit"
                echo "NTP installed and started"
            else
                echo "WARNING: neither chrony nor ntp could be installed"
            fi
            ''')


class InstallPrometheus(Script):
    """Unpack the Prometheus release for the host architecture; keep an existing one."""

    def __init__(self, access: HostAccess, version: str, install_dir: str, data_dir: str):
        # language=Bash
        super().__init__(access, f"Install Prometheus {version}", f'''
            install_dir={quote_arg(install_dir)}
            data_dir={quote_arg(data_dir)}
            if [ -f "$install_dir/prometheus" ]; then
                echo "Prometheus already installed at $install_dir"
                "$install_dir/prometheus" --version 2>/dev/null || echo "WARNING: Prometheus version check failed"
                exit 0
            fi
            case "$(uname -m)" in
                x86_64) arch=amd64 ;;
                aarch64|arm64) arch=arm64 ;;
                *) echo "Unsupported architecture: $(uname -m)" >&2; exit 1 ;;
            esac
            name=prometheus-{version}.linux-$arch
            url=https://github.com/prometheus/prometheus/releases/download/v{version}/$name.tar.gz
            temp_dir=$(mktemp -d /tmp/prometheus_install_XXXXXX)
            cd "$temp_dir"
            if command -v wget >/dev/null 2>&1; then
                wget -q "$url" -O prometheus.tar.gz
            elif command -v curl >/dev/null 2>&1; then
                curl -fsSL "$url" -o prometheus.tar.gz
            else
                echo "Neither wget nor curl found, cannot download Prometheus" >&2
                exit 1
            fi
            tar -xzf prometheus.tar.gz
            sudo mkdir -p "$install_dir" "$data_dir"
            for item in prometheus promtool prometheus.yml console_libraries consoles; do
                if [ -e "$name/$item" ]; then
                    sudo cp -r "$name/$item" "$install_dir/"
                fi
            done
            sudo chown -R "$(id -un):$(id -gn)" "$install_dir" "$data_dir"
            sudo chmod +x "$install_dir/prometheus" "$install_dir/promtool"
            for binary in prometheus promtool; do
                if [ ! -e "/usr/local/bin/$binary" ]; then
                    sudo ln -sf "$install_dir/$binary" "/usr/local/bin/$binary"
                fi
            done
            cd /
            rm -rf "$temp_dir"
            "$install_dir/prometheus" --version
            echo "Prometheus installed at $install_dir, data in $data_dir"
            ''')


class InstallGrafana(Script):
    """Install Grafana from its package repository; keep an existing one."""

    def __init__(self, access: HostAccess, data_dir: str, logs_dir: str):
        # language=Bash
        super().__init__(access, "Install Grafana", _DETECT_PACKAGE_MANAGER + f'''
            data_dir={quote_arg(data_dir)}
            logs_dir={quote_arg(logs_dir)}
            if command -v grafana-server >/dev/null 2>&1; then
                echo "Grafana already installed"
                grafana-server -v 2>/dev/null || echo "WARNING: Grafana version check failed"
                exit 0
            fi
            case "$PKG_MGR" in
                yum|dnf)
                    printf '%s\\n' \\
                        '[grafana]' \\
                        'name=grafana' \\
                        'baseurl=https://rpm.grafana.com' \\
                        'repo_gpgcheck=1' \\
                        'enabled=1' \\
                        'gpgcheck=1' \\
                        'gpgkey=https://rpm.grafana.com/gpg.key' \\
                        'sslverify=1' \\
                        'sslcacert=/etc/pki/tls/certs/ca-bundle.crt' \\
                        | sudo tee /etc/yum.repos.d/grafana.repo >/dev/null
                    sudo $PKG_MGR install -y grafana
                    ;;
                apt-get)
                    sudo apt-get update -y
                    sudo apt-get install -y apt-transport-https software-properties-common wget gnupg
                    sudo mkdir -p /etc/apt/keyrings
                    wget -q -O - https://apt.grafana.com/gpg.key | gpg --dearmor | sudo tee /etc/apt/keyrings/grafana.gpg >/dev/null
                    echo "deb [signed-by=/etc/apt/keyrings/grafana.gpg] https://apt.grafana.com stable main" | sudo tee /etc/apt/sources.list.d/grafana.list >/dev/null
                    sudo apt-get update -y
                    sudo apt-get install -y grafana
                    ;;
                zypper)
                    if ! zypper repos grafana >/dev/null 2>&1; then
                        sudo zypper addrepo https://rpm.grafana.com grafana
                    fi
                    sudo zypper --gpg-auto-import-keys refresh
                    sudo zypper install -y grafana
                    ;;
            esac
            sudo mkdir -p "$data_dir" "$logs_dir"
            sudo chown -R grafana:grafana "$data_dir" "$logs_dir"
            grafana-server -v
            echo "Grafana installed; start it with: sudo systemctl enable --now grafana-server"
            ''')
