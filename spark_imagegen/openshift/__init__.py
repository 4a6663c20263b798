"""OpenShift access module.

This module handles:
- The PlatformClient interface and its `oc` implementation
- Read-only probes of build configurations, image streams and builds
- Ownership checks gating destructive operations
"""

from spark_imagegen.openshift.client import (
    NotLoggedInError,
    OcClient,
    PlatformClient,
    PlatformCommandError,
    PlatformError,
    PlatformUnavailableError,
    get_client,
)

__all__ = [
    "NotLoggedInError",
    "OcClient",
    "PlatformClient",
    "PlatformCommandError",
    "PlatformError",
    "PlatformUnavailableError",
    "get_client",
]
