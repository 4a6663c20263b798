"""Static catalog of image pipeline targets.

Each target pairs an incomplete builder image with the complete image it
replaces and the template or config map that consumes it. Lookups are by
exact name only.
"""

from dataclasses import dataclass
from enum import Enum


class TargetName(str, Enum):
    """Names of the image pipelines managed by this tool."""

    RADANALYTICS_PYSPARK = "radanalytics-pyspark"
    RADANALYTICS_PYSPARK_PY36 = "radanalytics-pyspark-py36"
    RADANALYTICS_JAVA_SPARK = "radanalytics-java-spark"
    RADANALYTICS_SCALA_SPARK = "radanalytics-scala-spark"
    OPENSHIFT_SPARK = "openshift-spark"
    OPENSHIFT_SPARK_PY36 = "openshift-spark-py36"
    RADANALYTICS_R_SPARK = "radanalytics-r-spark"


class ConsumerKind(str, Enum):
    """Kind of configuration object that references a target's image."""

    TEMPLATE = "template"
    CONFIG_MAP = "configmap"


# Default tags used by `use -d` and `clean imagestream`
TEMPLATE_DEFAULT_TAG = "stable"
SPARK_DEFAULT_TAG = "2.3-latest"

# Config map key holding the cluster image reference
SPARK_IMAGE_KEY = "sparkimage"


@dataclass(frozen=True)
class Target:
    """A single image pipeline.

    Attributes:
        name: Target name, also the build configuration and image stream name.
        builder_image: Incomplete builder image reference.
        complete_image: Published complete image (without tag).
        config_object: Template or config map consuming this target.
        consumer_kind: Kind of ``config_object``.
        default_tag: Tag selected by `use -d` and restored by `clean`.
    """

    name: str
    builder_image: str
    complete_image: str
    config_object: str
    consumer_kind: ConsumerKind
    default_tag: str

    @property
    def builder_ref(self) -> str:
        """Builder image reference as mirrored into the project.

        The registry and namespace prefix is dropped because the builder is
        imported into a local image stream named after the image itself.
        """
        return local_image_ref(self.builder_image)

    @property
    def builder_stream(self) -> str:
        """Name of the local image stream holding the builder image."""
        return self.builder_ref.split(":", 1)[0]

    def destination(self, tag: str) -> str:
        """Image stream tag a build of this target pushes to."""
        return f"{self.name}:{tag}"


def local_image_ref(image: str) -> str:
    """Strip the registry/namespace prefix from an image reference.

    Args:
        image: Image reference such as ``docker.io/radanalyticsio/foo:latest``.

    Returns:
        Reference without the prefix, with ``:latest`` added when untagged.
    """
    ref = image.rsplit("/", 1)[-1]
    if ":" not in ref and "@" not in ref:
        ref = f"{ref}:latest"
    return ref


def _template_target(name: TargetName, template: str) -> Target:
    return Target(
        name=name.value,
        builder_image=f"radanalyticsio/{name.value}-inc:latest",
        complete_image=f"radanalyticsio/{name.value}",
        config_object=template,
        consumer_kind=ConsumerKind.TEMPLATE,
        default_tag=TEMPLATE_DEFAULT_TAG,
    )


def _spark_target(name: TargetName, config_map: str) -> Target:
    return Target(
        name=name.value,
        builder_image=f"radanalyticsio/{name.value}-inc:latest",
        complete_image=f"radanalyticsio/{name.value}",
        config_object=config_map,
        consumer_kind=ConsumerKind.CONFIG_MAP,
        default_tag=SPARK_DEFAULT_TAG,
    )


CATALOG: dict[TargetName, Target] = {
    TargetName.RADANALYTICS_PYSPARK: _template_target(
        TargetName.RADANALYTICS_PYSPARK, "oshinko-python-spark-build-dc"
    ),
    TargetName.RADANALYTICS_PYSPARK_PY36: _template_target(
        TargetName.RADANALYTICS_PYSPARK_PY36, "oshinko-python36-spark-build-dc"
    ),
    TargetName.RADANALYTICS_JAVA_SPARK: _template_target(
        TargetName.RADANALYTICS_JAVA_SPARK, "oshinko-java-spark-build-dc"
    ),
    TargetName.RADANALYTICS_SCALA_SPARK: _template_target(
        TargetName.RADANALYTICS_SCALA_SPARK, "oshinko-scala-spark-build-dc"
    ),
    TargetName.OPENSHIFT_SPARK: _spark_target(
        TargetName.OPENSHIFT_SPARK, "default-oshinko-cluster-config"
    ),
    TargetName.OPENSHIFT_SPARK_PY36: _spark_target(
        TargetName.OPENSHIFT_SPARK_PY36, "oshinko-py36-cluster-config"
    ),
    TargetName.RADANALYTICS_R_SPARK: _template_target(
        TargetName.RADANALYTICS_R_SPARK, "oshinko-r-spark-build-dc"
    ),
}

# Targets only available when their feature flag is enabled
OPTIONAL_TARGETS: frozenset[TargetName] = frozenset({TargetName.RADANALYTICS_R_SPARK})


def available_targets(enable_r: bool = False) -> list[Target]:
    """List catalog targets in catalog order.

    Args:
        enable_r: Include the feature-flagged R target.

    Returns:
        List of Target entries.
    """
    return [
        target
        for name, target in CATALOG.items()
        if enable_r or name not in OPTIONAL_TARGETS
    ]


def resolve_target(name: str, enable_r: bool = False) -> Target | None:
    """Look up a target by exact name.

    Args:
        name: Target name as given on the command line.
        enable_r: Whether the optional R target is enabled.

    Returns:
        Target, or None if the name is unknown or not enabled.
    """
    try:
        key = TargetName(name)
    except ValueError:
        return None
    if key in OPTIONAL_TARGETS and not enable_r:
        return None
    return CATALOG[key]


__all__ = [
    "CATALOG",
    "OPTIONAL_TARGETS",
    "SPARK_DEFAULT_TAG",
    "SPARK_IMAGE_KEY",
    "TEMPLATE_DEFAULT_TAG",
    "ConsumerKind",
    "Target",
    "TargetName",
    "available_targets",
    "local_image_ref",
    "resolve_target",
]
