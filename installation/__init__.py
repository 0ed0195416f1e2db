# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
"""Install Ozone on cluster hosts and give them a shared configuration."""
from installation._installer import ClusterInstaller
from installation._installer import HostFacts
from installation._installer import HostValidationError
from installation._installer import InstallOzone
from installation._site_configuration import ConfigurationDistributor
from installation._site_configuration import SiteConfiguration
from installation._site_configuration import properties_to_xml

__all__ = [
    'ClusterInstaller',
    'ConfigurationDistributor',
    'HostFacts',
    'HostValidationError',
    'InstallOzone',
    'SiteConfiguration',
    'properties_to_xml',
    ]
