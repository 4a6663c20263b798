"""Ownership checks for platform objects.

Objects created by this tool carry the ownership label with the owning
target's name as value. Only such objects may be deleted or recreated.
"""

from typing import Any

from spark_imagegen.openshift.probe import BuildConfigState


class OwnershipConflictError(Exception):
    """Raised when an object blocking a target was not created by this tool."""

    def __init__(self, kind: str, name: str, code: str = "ownership_conflict") -> None:
        """Initialize OwnershipConflictError.

        Args:
            kind: Kind of the blocking object.
            name: Name of the blocking object.
            code: Error code for structured error handling.
        """
        super().__init__(
            f"{kind}/{name} exists but can't be recreated automatically. "
            f"Delete it manually (oc delete {kind} {name}) and try again."
        )
        self.kind = kind
        self.name = name
        self.code = code


def is_owned_by_tool(build_config: BuildConfigState, label_key: str) -> bool:
    """Check whether a build configuration was created by this tool.

    Args:
        build_config: Probed build configuration.
        label_key: Ownership label key.

    Returns:
        True if the label is present and equals the object's own name.
    """
    return build_config.labels.get(label_key) == build_config.name


def is_resource_owned(resource: dict[str, Any], label_key: str) -> bool:
    """Ownership check for a raw platform object of any kind."""
    metadata = resource.get("metadata", {})
    labels = metadata.get("labels") or {}
    return labels.get(label_key) == metadata.get("name")


def owner_labels(label_key: str, target: str) -> dict[str, str]:
    """Labels to put on every object created for a target."""
    return {label_key: target}


__all__ = [
    "OwnershipConflictError",
    "is_owned_by_tool",
    "is_resource_owned",
    "owner_labels",
]
