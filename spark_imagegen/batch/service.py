"""Batch operations over catalog targets.

This module provides the per-command batch API:
- build_targets(): reconcile and build each target
- clean_targets(): remove owned build and image stream objects
- list_owned_resources(): enumerate everything carrying the ownership label
- use_tag(): repoint consuming templates and config maps at a tag

Each batch makes one sequential pass and records every requested target
in exactly one of Succeeded, Failed or Ignored. Platform unavailability
aborts the pass by propagating PlatformUnavailableError.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from spark_imagegen.batch.consumers import (
    ConsumerError,
    point_config_map,
    point_template,
)
from spark_imagegen.builds.driver import (
    BuildDriver,
    BuildExecutionError,
    BuildInProgressError,
    LocalBuildDriver,
    RemoteBuildDriver,
)
from spark_imagegen.builds.reconciler import Reconciler
from spark_imagegen.openshift.client import PlatformCommandError, label_selector
from spark_imagegen.openshift.ownership import (
    OwnershipConflictError,
    is_owned_by_tool,
    is_resource_owned,
    owner_labels,
)
from spark_imagegen.openshift.probe import ResourceProber
from spark_imagegen.targets.catalog import (
    ConsumerKind,
    Target,
    available_targets,
    resolve_target,
)
from spark_imagegen.types import (
    BatchResult,
    BuildMode,
    CleanScope,
    RunOptions,
    TargetOutcome,
    TargetResult,
)

if TYPE_CHECKING:
    from spark_imagegen.config import Settings
    from spark_imagegen.openshift.client import PlatformClient

logger = logging.getLogger(__name__)

# Kinds removed by each clean scope, dependents first
BUILD_KINDS = ("build", "buildconfig")
IMAGE_STREAM_KINDS = ("imagestreamtag", "imagestream")

# Kinds shown by list
LISTED_KINDS = ("buildconfig", "build", "imagestream")

# Per-target failures; anything else aborts the batch
TARGET_ERRORS = (
    BuildExecutionError,
    BuildInProgressError,
    ConsumerError,
    OwnershipConflictError,
    PlatformCommandError,
)


@dataclass
class OwnedResource:
    """A platform object carrying the ownership label."""

    kind: str
    name: str
    owner: str


def requested_names(names: Sequence[str] | None, settings: Settings) -> list[str]:
    """Return the target names to process, in order and without repeats.

    Args:
        names: Names given on the command line; all catalog targets if empty.
        settings: Application settings.

    Returns:
        List of names.
    """
    if not names:
        return [t.name for t in available_targets(enable_r=settings.r_enabled)]
    return list(dict.fromkeys(names))


def _failure(name: str, error: Exception) -> TargetResult:
    logger.error("%s: %s", name, error)
    return TargetResult(
        target=name,
        outcome=TargetOutcome.FAILED,
        message=str(error),
        code=getattr(error, "code", None),
    )


def _ignored(name: str) -> TargetResult:
    logger.warning("Ignoring unknown target %s", name)
    return TargetResult(target=name, outcome=TargetOutcome.IGNORED)


def build_targets(
    client: PlatformClient | None,
    names: Sequence[str] | None,
    options: RunOptions,
    settings: Settings,
) -> BatchResult:
    """Reconcile and build each requested target.

    Remote mode reconciles the build configuration before starting a
    platform build. Local mode skips the platform entirely.

    Args:
        client: Platform client (unused in local mode).
        names: Requested target names.
        options: Run options including mode, tag and build context.
        settings: Application settings.

    Returns:
        BatchResult with one entry per requested target.

    Raises:
        PlatformUnavailableError: If the platform cannot be queried.
    """
    reconciler: Reconciler | None = None
    driver: BuildDriver
    if options.mode == BuildMode.LOCAL:
        driver = LocalBuildDriver(options, s2i_binary=settings.s2i_binary)
    else:
        if client is None:
            raise ValueError("A platform client is required for remote builds")
        reconciler = Reconciler(client, settings.owner_label, options)
        driver = RemoteBuildDriver(client, options)

    batch = BatchResult()
    for name in requested_names(names, settings):
        target = resolve_target(name, enable_r=settings.r_enabled)
        if target is None:
            batch.record(_ignored(name))
            continue

        logger.info("Processing %s", name)
        try:
            action = reconciler.reconcile(target, options.tag) if reconciler else None
            outcome = driver.run_build(target)
        except TARGET_ERRORS as e:
            batch.record(_failure(name, e))
            continue

        details: dict[str, object] = {"exit_code": outcome.exit_code}
        if action is not None:
            details["action"] = action.value
        if outcome.build_name:
            details["build"] = outcome.build_name
        batch.record(
            TargetResult(
                target=name,
                outcome=(
                    TargetOutcome.SUCCEEDED if outcome.success else TargetOutcome.FAILED
                ),
                message=None
                if outcome.success
                else f"Build exited with status {outcome.exit_code}",
                code=None if outcome.success else "build_failed",
                log=outcome.log,
                details=details,
            )
        )
    return batch


def _clean_builds(client: PlatformClient, target: Target, label_key: str) -> None:
    config = ResourceProber(client).build_config(target.name)
    if config.exists and not is_owned_by_tool(config, label_key):
        raise OwnershipConflictError("buildconfig", target.name)
    logger.info("Deleting builds and buildconfigs of %s", target.name)
    client.delete_labeled(BUILD_KINDS, label_selector(label_key, target.name))


def _clean_image_streams(client: PlatformClient, target: Target, label_key: str) -> None:
    stream = client.get("imagestream", target.name)
    if stream is not None and not is_resource_owned(stream, label_key):
        raise OwnershipConflictError("imagestream", target.name)
    logger.info("Deleting imagestreams of %s", target.name)
    client.delete_labeled(IMAGE_STREAM_KINDS, label_selector(label_key, target.name))

    # Restore the stream pointing at the published complete image
    source = f"{target.complete_image}:{target.default_tag}"
    client.tag(source, target.destination(target.default_tag))
    client.label("imagestream", target.name, owner_labels(label_key, target.name))
    client.patch("imagestream", target.name, {"spec": {"lookupPolicy": {"local": True}}})
    logger.info("Restored imagestream %s from %s", target.name, source)


def clean_targets(
    client: PlatformClient,
    scope: CleanScope,
    names: Sequence[str] | None,
    settings: Settings,
) -> BatchResult:
    """Remove the objects this tool created for each requested target.

    Args:
        client: Platform client.
        scope: What to remove; ``all`` cleans builds, then image streams.
        names: Requested target names.
        settings: Application settings.

    Returns:
        BatchResult with one entry per requested target.

    Raises:
        PlatformUnavailableError: If the platform cannot be queried.
    """
    batch = BatchResult()
    for name in requested_names(names, settings):
        target = resolve_target(name, enable_r=settings.r_enabled)
        if target is None:
            batch.record(_ignored(name))
            continue

        try:
            if scope in (CleanScope.BUILD, CleanScope.ALL):
                _clean_builds(client, target, settings.owner_label)
            if scope in (CleanScope.IMAGESTREAM, CleanScope.ALL):
                _clean_image_streams(client, target, settings.owner_label)
        except TARGET_ERRORS as e:
            batch.record(_failure(name, e))
            continue

        batch.record(
            TargetResult(
                target=name,
                outcome=TargetOutcome.SUCCEEDED,
                details={"scope": scope.value},
            )
        )
    return batch


def list_owned_resources(
    client: PlatformClient, settings: Settings
) -> list[OwnedResource]:
    """List every object carrying the ownership label, whatever its target.

    Args:
        client: Platform client.
        settings: Application settings.

    Returns:
        List of OwnedResource entries.
    """
    items = client.list(LISTED_KINDS, label_selector(settings.owner_label))
    resources: list[OwnedResource] = []
    for item in items:
        metadata = item.get("metadata", {})
        resources.append(
            OwnedResource(
                kind=item.get("kind", ""),
                name=metadata.get("name", ""),
                owner=(metadata.get("labels") or {}).get(settings.owner_label, ""),
            )
        )
    return resources


def use_tag(
    client: PlatformClient,
    names: Sequence[str] | None,
    tag: str | None,
    settings: Settings,
) -> BatchResult:
    """Repoint each target's consuming template or config map at a tag.

    Args:
        client: Platform client.
        names: Requested target names.
        tag: Tag to use; None selects each target's default tag.
        settings: Application settings.

    Returns:
        BatchResult with one entry per requested target.

    Raises:
        PlatformUnavailableError: If the platform cannot be queried.
    """
    batch = BatchResult()
    for name in requested_names(names, settings):
        target = resolve_target(name, enable_r=settings.r_enabled)
        if target is None:
            batch.record(_ignored(name))
            continue

        effective_tag = tag or target.default_tag
        try:
            if target.consumer_kind == ConsumerKind.CONFIG_MAP:
                reference = point_config_map(client, target, effective_tag)
            else:
                reference = point_template(client, target, effective_tag)
        except TARGET_ERRORS as e:
            batch.record(_failure(name, e))
            continue

        batch.record(
            TargetResult(
                target=name,
                outcome=TargetOutcome.SUCCEEDED,
                details={
                    "consumer": f"{target.consumer_kind.value}/{target.config_object}",
                    "reference": reference,
                },
            )
        )
    return batch


__all__ = [
    "OwnedResource",
    "build_targets",
    "clean_targets",
    "list_owned_resources",
    "requested_names",
    "use_tag",
]
