"""Target catalog module.

Static mapping from target names to builder images, complete images,
and the configuration objects that consume them.
"""

from spark_imagegen.targets.catalog import (
    CATALOG,
    ConsumerKind,
    Target,
    TargetName,
    available_targets,
    resolve_target,
)

__all__ = [
    "CATALOG",
    "ConsumerKind",
    "Target",
    "TargetName",
    "available_targets",
    "resolve_target",
]
