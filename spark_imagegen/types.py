"""Shared type definitions for spark_imagegen.

This module contains dataclasses and enums shared across subpackages
to avoid circular imports.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class BuildPhase(str, Enum):
    """Phase of a build as reported by the platform.

    STARTING is a local sentinel for a build configuration that has never
    run (sequence number 0).
    """

    NEW = "New"
    PENDING = "Pending"
    RUNNING = "Running"
    COMPLETE = "Complete"
    FAILED = "Failed"
    ERROR = "Error"
    CANCELLED = "Cancelled"
    STARTING = "starting"

    @property
    def is_active(self) -> bool:
        """Whether a build in this phase blocks starting another one."""
        return self in (BuildPhase.PENDING, BuildPhase.RUNNING)

    @classmethod
    def parse(cls, value: str | None) -> "BuildPhase | None":
        """Parse a platform phase string, returning None for unknown values."""
        if not value:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


class ReconcileAction(str, Enum):
    """What the reconciler did with a target's build configuration."""

    UNCHANGED = "unchanged"
    RECREATED = "recreated"
    CREATED = "created"


class BuildMode(str, Enum):
    """Build backend selection."""

    REMOTE = "remote"
    LOCAL = "local"


class CleanScope(str, Enum):
    """What the clean command removes."""

    BUILD = "build"
    IMAGESTREAM = "imagestream"
    ALL = "all"


class TargetOutcome(str, Enum):
    """Batch accounting bucket for a target."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    IGNORED = "ignored"


@dataclass(frozen=True)
class RunOptions:
    """Per-invocation options passed to the reconciler and build drivers.

    Attributes:
        tag: Destination tag for completed images.
        verbose: Surface build logs even for successful builds.
        mode: Remote binary build or local build tool.
        context_dir: Prepared build context directory.
    """

    tag: str = "complete"
    verbose: bool = False
    mode: BuildMode = BuildMode.REMOTE
    context_dir: Path | None = None


@dataclass
class TargetResult:
    """Outcome of one target in a batch."""

    target: str
    outcome: TargetOutcome
    message: str | None = None
    code: str | None = None
    log: str | None = None
    details: dict[str, object] = field(default_factory=dict)


@dataclass
class BatchResult:
    """Outcome of one pass over a target list.

    Every target is recorded at most once, so the three name lists are
    always disjoint.
    """

    results: list[TargetResult] = field(default_factory=list)

    def record(self, result: TargetResult) -> None:
        """Add a target result.

        Raises:
            ValueError: If the target was already recorded in this batch.
        """
        if any(r.target == result.target for r in self.results):
            raise ValueError(f"Target already recorded: {result.target}")
        self.results.append(result)

    def _names(self, outcome: TargetOutcome) -> list[str]:
        return [r.target for r in self.results if r.outcome == outcome]

    @property
    def succeeded(self) -> list[str]:
        return self._names(TargetOutcome.SUCCEEDED)

    @property
    def failed(self) -> list[str]:
        return self._names(TargetOutcome.FAILED)

    @property
    def ignored(self) -> list[str]:
        return self._names(TargetOutcome.IGNORED)

    def get(self, target: str) -> TargetResult | None:
        """Return the recorded result for a target, if any."""
        for r in self.results:
            if r.target == target:
                return r
        return None


__all__ = [
    "BatchResult",
    "BuildMode",
    "BuildPhase",
    "CleanScope",
    "ReconcileAction",
    "RunOptions",
    "TargetOutcome",
    "TargetResult",
]
