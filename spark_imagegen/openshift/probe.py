"""Read-only probes of build configurations, image streams and builds.

Probes never mutate anything. A missing object is reported as a normal
result; other lookup failures propagate as PlatformUnavailableError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from spark_imagegen.types import BuildPhase

if TYPE_CHECKING:
    from spark_imagegen.openshift.client import PlatformClient

logger = logging.getLogger(__name__)

BINARY_SOURCE = "Binary"


@dataclass
class BuildConfigState:
    """Comparable fields of a build configuration.

    Attributes:
        name: Build configuration name.
        exists: Whether the object exists.
        source_type: Source type (``Binary`` for this tool's configurations).
        source_image: Image stream tag the source strategy builds from.
        destination: Image stream tag the build pushes to.
        labels: Object labels.
        last_version: Sequence number of the newest build (0 = never run).
    """

    name: str
    exists: bool
    source_type: str | None = None
    source_image: str | None = None
    destination: str | None = None
    labels: dict[str, str] = field(default_factory=dict)
    last_version: int = 0

    @classmethod
    def absent(cls, name: str) -> BuildConfigState:
        return cls(name=name, exists=False)

    @classmethod
    def from_resource(cls, resource: dict[str, Any]) -> BuildConfigState:
        """Extract comparable fields from a BuildConfig object."""
        metadata = resource.get("metadata", {})
        spec = resource.get("spec", {})
        strategy = spec.get("strategy", {}).get("sourceStrategy", {})
        return cls(
            name=metadata.get("name", ""),
            exists=True,
            source_type=spec.get("source", {}).get("type"),
            source_image=strategy.get("from", {}).get("name"),
            destination=spec.get("output", {}).get("to", {}).get("name"),
            labels=dict(metadata.get("labels") or {}),
            last_version=int(resource.get("status", {}).get("lastVersion", 0) or 0),
        )


@dataclass
class LastBuild:
    """Newest build of a build configuration.

    ``phase`` is STARTING when the configuration has never run, and None
    when the build object is gone or reports an unknown phase.
    """

    sequence: int
    phase: BuildPhase | None

    @property
    def in_progress(self) -> bool:
        return self.phase is not None and self.phase.is_active


def stream_tag_names(image_stream: dict[str, Any]) -> set[str]:
    """Collect the tag names an image stream lists in its spec and status."""
    spec_tags = image_stream.get("spec", {}).get("tags") or []
    status_tags = image_stream.get("status", {}).get("tags") or []
    names = [t.get("name") for t in spec_tags] + [t.get("tag") for t in status_tags]
    return {name for name in names if name}


class ResourceProber:
    """Read-only view of the platform objects belonging to a target."""

    def __init__(self, client: PlatformClient) -> None:
        self.client = client

    def build_config(self, name: str) -> BuildConfigState:
        """Probe a build configuration."""
        resource = self.client.get("buildconfig", name)
        if resource is None:
            logger.debug("buildconfig/%s does not exist", name)
            return BuildConfigState.absent(name)
        return BuildConfigState.from_resource(resource)

    def image_stream(self, name: str) -> dict[str, Any] | None:
        """Fetch an image stream, or None if absent."""
        return self.client.get("imagestream", name)

    def image_stream_tag(self, ref: str) -> dict[str, Any] | None:
        """Fetch an image stream tag (``stream:tag``), or None if absent."""
        return self.client.get("imagestreamtag", ref)

    def image_stream_tag_exists(self, ref: str) -> bool:
        return self.image_stream_tag(ref) is not None

    def is_dangling_tag(self, stream: str, tag: str) -> bool:
        """Check for a tag listed on its stream that cannot be fetched itself.

        Args:
            stream: Image stream name.
            tag: Tag name.

        Returns:
            True if the tag is dangling.
        """
        if self.image_stream_tag_exists(f"{stream}:{tag}"):
            return False
        image_stream = self.image_stream(stream)
        if image_stream is None:
            return False
        dangling = tag in stream_tag_names(image_stream)
        if dangling:
            logger.debug("imagestreamtag %s:%s is dangling", stream, tag)
        return dangling

    def last_build(self, name: str) -> LastBuild:
        """Find the sequence number and phase of the newest build."""
        config = self.build_config(name)
        if config.last_version == 0:
            return LastBuild(sequence=0, phase=BuildPhase.STARTING)
        build = self.client.get("build", f"{name}-{config.last_version}")
        if build is None:
            return LastBuild(sequence=config.last_version, phase=None)
        phase = BuildPhase.parse(build.get("status", {}).get("phase"))
        return LastBuild(sequence=config.last_version, phase=phase)


__all__ = [
    "BINARY_SOURCE",
    "BuildConfigState",
    "LastBuild",
    "ResourceProber",
    "stream_tag_names",
]
