"""Build configuration reconciliation.

This module handles:
- Comparing a target's desired binary build configuration with the
  probed platform state
- Deciding between leaving it in place, recreating it, or creating it
- Clearing dangling image stream tags that would block creation
- Composing the manifests for the builder stream, destination stream
  and build configuration

Only build configurations carrying this tool's ownership label are ever
deleted.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from spark_imagegen.openshift.ownership import (
    OwnershipConflictError,
    is_owned_by_tool,
    owner_labels,
)
from spark_imagegen.openshift.probe import (
    BINARY_SOURCE,
    BuildConfigState,
    ResourceProber,
)
from spark_imagegen.types import ReconcileAction, RunOptions

if TYPE_CHECKING:
    from spark_imagegen.openshift.client import PlatformClient
    from spark_imagegen.targets.catalog import Target

logger = logging.getLogger(__name__)


def builder_stream_manifest(target: Target, labels: dict[str, str]) -> dict[str, Any]:
    """Image stream importing the incomplete builder image."""
    tag = target.builder_ref.split(":", 1)[1]
    return {
        "apiVersion": "image.openshift.io/v1",
        "kind": "ImageStream",
        "metadata": {"name": target.builder_stream, "labels": dict(labels)},
        "spec": {
            "tags": [
                {
                    "name": tag,
                    "from": {"kind": "DockerImage", "name": target.builder_image},
                    "referencePolicy": {"type": "Source"},
                }
            ]
        },
    }


def destination_stream_manifest(
    target: Target, labels: dict[str, str]
) -> dict[str, Any]:
    """Image stream receiving completed images, resolvable by short name."""
    return {
        "apiVersion": "image.openshift.io/v1",
        "kind": "ImageStream",
        "metadata": {"name": target.name, "labels": dict(labels)},
        "spec": {"lookupPolicy": {"local": True}},
    }


def build_config_manifest(
    target: Target, tag: str, labels: dict[str, str]
) -> dict[str, Any]:
    """Binary source-strategy build configuration for a target."""
    return {
        "apiVersion": "build.openshift.io/v1",
        "kind": "BuildConfig",
        "metadata": {"name": target.name, "labels": dict(labels)},
        "spec": {
            "source": {"type": BINARY_SOURCE, "binary": {}},
            "strategy": {
                "type": "Source",
                "sourceStrategy": {
                    "from": {"kind": "ImageStreamTag", "name": target.builder_ref}
                },
            },
            "output": {
                "to": {"kind": "ImageStreamTag", "name": target.destination(tag)}
            },
        },
    }


def find_mismatches(
    config: BuildConfigState,
    target: Target,
    tag: str,
    builder_missing: bool = False,
) -> list[str]:
    """List the reasons an existing build configuration must be recreated.

    Args:
        config: Probed build configuration (must exist).
        target: Catalog target.
        tag: Desired destination tag.
        builder_missing: Whether the builder image stream tag is missing.

    Returns:
        Human-readable mismatch reasons; empty if the configuration matches.
    """
    reasons: list[str] = []
    if builder_missing:
        reasons.append(f"builder imagestreamtag {target.builder_ref} is missing")
    if config.source_type != BINARY_SOURCE:
        reasons.append(f"source type is {config.source_type}, not {BINARY_SOURCE}")
    if config.source_image != target.builder_ref:
        reasons.append(
            f"source image is {config.source_image}, not {target.builder_ref}"
        )
    if config.destination != target.destination(tag):
        reasons.append(
            f"destination is {config.destination}, not {target.destination(tag)}"
        )
    return reasons


class Reconciler:
    """Drives a target's build configuration to the desired state."""

    def __init__(
        self,
        client: PlatformClient,
        label_key: str,
        options: RunOptions | None = None,
    ) -> None:
        self.client = client
        self.prober = ResourceProber(client)
        self.label_key = label_key
        self.options = options or RunOptions()

    def reconcile(self, target: Target, tag: str | None = None) -> ReconcileAction:
        """Reconcile one target.

        Args:
            target: Catalog target.
            tag: Destination tag; defaults to the run's tag.

        Returns:
            The action taken.

        Raises:
            OwnershipConflictError: If a mismatched build configuration is
                not owned by this tool.
            PlatformCommandError: If a delete or create call fails.
            PlatformUnavailableError: If a probe fails.
        """
        tag = tag or self.options.tag

        builder_missing = not self.prober.image_stream_tag_exists(target.builder_ref)
        if builder_missing:
            # The stream and its build config have to be recreated together
            logger.info(
                "Builder imagestreamtag %s is missing, removing imagestream %s",
                target.builder_ref,
                target.builder_stream,
            )
            self.client.delete("imagestream", target.builder_stream)

        config = self.prober.build_config(target.name)
        if not config.exists:
            self._remove_dangling_destination(target, tag)
            self._create(target, tag)
            logger.info("Created buildconfig %s", target.name)
            return ReconcileAction.CREATED

        reasons = find_mismatches(config, target, tag, builder_missing)
        if not reasons:
            logger.info("Buildconfig %s is up to date", target.name)
            return ReconcileAction.UNCHANGED

        if not is_owned_by_tool(config, self.label_key):
            logger.warning(
                "Buildconfig %s does not match (%s) and is not owned by this tool",
                target.name,
                "; ".join(reasons),
            )
            raise OwnershipConflictError("buildconfig", target.name)

        logger.info("Recreating buildconfig %s: %s", target.name, "; ".join(reasons))
        self._remove_dangling_destination(target, tag)
        self.client.delete("buildconfig", target.name)
        self._create(target, tag)
        return ReconcileAction.RECREATED

    def _remove_dangling_destination(self, target: Target, tag: str) -> None:
        if self.prober.is_dangling_tag(target.name, tag):
            logger.info("Removing dangling tag %s", target.destination(tag))
            self.client.untag(target.destination(tag))

    def _create(self, target: Target, tag: str) -> None:
        labels = owner_labels(self.label_key, target.name)
        items: list[dict[str, Any]] = []
        if self.prober.image_stream(target.builder_stream) is None:
            items.append(builder_stream_manifest(target, labels))
        if self.prober.image_stream(target.name) is None:
            items.append(destination_stream_manifest(target, labels))
        items.append(build_config_manifest(target, tag, labels))
        self.client.create({"apiVersion": "v1", "kind": "List", "items": items})


__all__ = [
    "Reconciler",
    "build_config_manifest",
    "builder_stream_manifest",
    "destination_stream_manifest",
    "find_mismatches",
]
