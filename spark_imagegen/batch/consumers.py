"""Repointing templates and config maps at an image stream tag.

Config maps carry the cluster image under a single well-known key.
Templates reference the builder image from the source strategy of their
build configurations, and sometimes from container specs.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from spark_imagegen.targets.catalog import SPARK_IMAGE_KEY, local_image_ref

if TYPE_CHECKING:
    from spark_imagegen.openshift.client import PlatformClient
    from spark_imagegen.targets.catalog import Target

logger = logging.getLogger(__name__)


class ConsumerError(Exception):
    """Raised when a consuming object cannot be repointed."""

    def __init__(self, message: str, code: str = "consumer_error") -> None:
        """Initialize ConsumerError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


def image_stream_name(image: str) -> str:
    """Return the stream name an image reference points at.

    ``radanalyticsio/radanalytics-pyspark:stable`` and
    ``radanalytics-pyspark@sha256:...`` both yield ``radanalytics-pyspark``.
    """
    ref = local_image_ref(image).split("@", 1)[0]
    return ref.rsplit(":", 1)[0]


def config_map_patch(value: str) -> dict[str, Any]:
    """Merge patch setting the cluster image key of a config map."""
    return {"data": {SPARK_IMAGE_KEY: value}}


def template_patch_ops(
    template: dict[str, Any], stream: str, tag: str
) -> list[dict[str, Any]]:
    """Compose JSON patch operations repointing a template at ``stream:tag``.

    Args:
        template: Template object.
        stream: Image stream name to match.
        tag: Tag to point at.

    Returns:
        List of JSON patch operations (empty if nothing references the stream).
    """
    reference = f"{stream}:{tag}"
    ops: list[dict[str, Any]] = []
    for i, obj in enumerate(template.get("objects") or []):
        spec = obj.get("spec") or {}

        if obj.get("kind") == "BuildConfig":
            source_from = spec.get("strategy", {}).get("sourceStrategy", {}).get("from")
            if source_from and image_stream_name(source_from.get("name", "")) == stream:
                ops.append(
                    {
                        "op": "replace",
                        "path": f"/objects/{i}/spec/strategy/sourceStrategy/from",
                        "value": {"kind": "ImageStreamTag", "name": reference},
                    }
                )

        containers = spec.get("template", {}).get("spec", {}).get("containers") or []
        for j, container in enumerate(containers):
            if image_stream_name(container.get("image", "")) == stream:
                ops.append(
                    {
                        "op": "replace",
                        "path": f"/objects/{i}/spec/template/spec/containers/{j}/image",
                        "value": reference,
                    }
                )
    return ops


def resolve_pull_spec(client: PlatformClient, ref: str) -> str:
    """Look up the fully qualified pull spec of an image stream tag.

    Raises:
        ConsumerError: If the tag does not exist or has no image.
    """
    istag = client.get("imagestreamtag", ref)
    if istag is None:
        raise ConsumerError(f"imagestreamtag {ref} not found", code="tag_not_found")
    pull_spec = istag.get("image", {}).get("dockerImageReference")
    if not pull_spec:
        raise ConsumerError(f"imagestreamtag {ref} has no image reference")
    return str(pull_spec)


def point_config_map(client: PlatformClient, target: Target, tag: str) -> str:
    """Repoint a target's config map at a tag.

    The default tag is written as a short ``stream:tag`` reference. Any
    other tag is written as a fully qualified pull spec, since short
    references only resolve for tags the cluster image lookup knows about.

    Returns:
        The image reference written.

    Raises:
        ConsumerError: If the config map or image stream tag is missing.
        PlatformCommandError: If the patch fails.
    """
    if client.get("configmap", target.config_object) is None:
        raise ConsumerError(
            f"configmap {target.config_object} not found", code="consumer_not_found"
        )
    ref = target.destination(tag)
    value = ref if tag == target.default_tag else resolve_pull_spec(client, ref)
    client.patch("configmap", target.config_object, config_map_patch(value))
    logger.info("Set %s.%s to %s", target.config_object, SPARK_IMAGE_KEY, value)
    return value


def point_template(client: PlatformClient, target: Target, tag: str) -> str:
    """Repoint a target's template at a tag.

    Returns:
        The image reference written.

    Raises:
        ConsumerError: If the template is missing or does not reference
            the target's image.
        PlatformCommandError: If the patch fails.
    """
    template = client.get("template", target.config_object)
    if template is None:
        raise ConsumerError(
            f"template {target.config_object} not found", code="consumer_not_found"
        )
    ops = template_patch_ops(template, target.name, tag)
    if not ops:
        raise ConsumerError(
            f"template {target.config_object} does not reference {target.name}",
            code="no_reference",
        )
    client.patch("template", target.config_object, ops, patch_type="json")
    logger.info(
        "Pointed %d reference(s) in template %s at %s",
        len(ops),
        target.config_object,
        target.destination(tag),
    )
    return target.destination(tag)


__all__ = [
    "ConsumerError",
    "config_map_patch",
    "image_stream_name",
    "point_config_map",
    "point_template",
    "resolve_pull_spec",
    "template_patch_ops",
]
