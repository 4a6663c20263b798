"""Build drivers for completing images.

This module handles:
- Starting a remote binary build unless one is already pending or running
- Waiting for the build and tracking its sequence number
- Running the local s2i build tool as a subprocess
- Deciding when build logs are surfaced

Logs are only fetched for builds that really started, and only when the
run is verbose or the build failed.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from spark_imagegen.openshift.client import PlatformCommandError
from spark_imagegen.openshift.probe import ResourceProber
from spark_imagegen.types import BuildPhase, RunOptions

if TYPE_CHECKING:
    from spark_imagegen.openshift.client import PlatformClient
    from spark_imagegen.targets.catalog import Target

logger = logging.getLogger(__name__)


class BuildExecutionError(Exception):
    """Raised when a build cannot be started at all."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        code: str = "build_error",
    ) -> None:
        """Initialize BuildExecutionError.

        Args:
            message: Error description.
            exit_code: Exit status of the failed command, if any.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.exit_code = exit_code
        self.code = code


class BuildInProgressError(Exception):
    """Raised when the newest build of a target is still pending or running."""

    def __init__(
        self,
        target: str,
        sequence: int,
        phase: BuildPhase | None,
        code: str = "build_in_progress",
    ) -> None:
        """Initialize BuildInProgressError.

        Args:
            target: Target name.
            sequence: Sequence number of the unfinished build.
            phase: Phase reported for that build, if any.
            code: Error code for structured error handling.
        """
        state = phase.value if phase is not None else "unknown phase"
        super().__init__(
            f"Build {target}-{sequence} is already in progress ({state}), skipping"
        )
        self.target = target
        self.sequence = sequence
        self.phase = phase
        self.code = code


@dataclass
class BuildOutcome:
    """Result of driving one build.

    Attributes:
        target: Target name.
        exit_code: Exit status of the build.
        started: Whether a new build actually started.
        build_name: Name of the started build (remote builds only).
        pre_sequence: Build sequence number before starting.
        post_sequence: Build sequence number after completion.
        log: Build log, when surfaced.
        command: Command executed (local builds only).
    """

    target: str
    exit_code: int
    started: bool
    build_name: str | None = None
    pre_sequence: int | None = None
    post_sequence: int | None = None
    log: str | None = None
    command: str | None = None

    @property
    def success(self) -> bool:
        return self.exit_code == 0


def should_surface_logs(started: bool, verbose: bool, exit_code: int) -> bool:
    """Decide whether build logs are fetched and shown.

    Args:
        started: Whether a build genuinely started.
        verbose: Verbose mode.
        exit_code: Build exit status.

    Returns:
        True if logs should be surfaced.
    """
    return started and (verbose or exit_code != 0)


class BuildDriver(Protocol):
    """A build backend."""

    def run_build(self, target: Target) -> BuildOutcome: ...


class RemoteBuildDriver:
    """Runs binary builds on the platform with `oc start-build`."""

    def __init__(self, client: PlatformClient, options: RunOptions) -> None:
        self.client = client
        self.prober = ResourceProber(client)
        self.options = options

    def run_build(self, target: Target) -> BuildOutcome:
        """Start a build for a reconciled target and wait for it.

        Raises:
            BuildInProgressError: If the newest build is pending or running.
            BuildExecutionError: If no build context was prepared.
        """
        if self.options.context_dir is None:
            raise BuildExecutionError(
                "No build context prepared", code="missing_build_input"
            )

        last = self.prober.last_build(target.name)
        if last.in_progress:
            raise BuildInProgressError(target.name, last.sequence, last.phase)

        pre_sequence = last.sequence
        logger.info("Starting build for %s", target.name)
        exit_code = self.client.start_build(target.name, self.options.context_dir)
        post_sequence = self.prober.build_config(target.name).last_version

        started = post_sequence > pre_sequence
        build_name = f"{target.name}-{post_sequence}" if started else None
        if exit_code == 0:
            logger.info("Build %s completed", build_name or target.name)
        else:
            logger.error(
                "Build %s failed with exit code %d", build_name or target.name, exit_code
            )

        log: str | None = None
        if build_name and should_surface_logs(started, self.options.verbose, exit_code):
            try:
                log = self.client.logs(build_name)
            except PlatformCommandError as e:
                logger.warning("Could not fetch logs of %s: %s", build_name, e.message)

        return BuildOutcome(
            target=target.name,
            exit_code=exit_code,
            started=started,
            build_name=build_name,
            pre_sequence=pre_sequence,
            post_sequence=post_sequence,
            log=log,
        )


def compose_s2i_command(
    s2i_binary: str,
    context_dir: Path,
    builder_image: str,
    image: str,
) -> list[str]:
    """Compose the `s2i build` command.

    Args:
        s2i_binary: s2i executable.
        context_dir: Build context directory.
        builder_image: Full builder image reference.
        image: Local image name to produce.

    Returns:
        Command as list of strings suitable for subprocess.
    """
    return [s2i_binary, "build", str(context_dir), builder_image, image]


class LocalBuildDriver:
    """Builds completed images locally with s2i, without touching the platform."""

    def __init__(self, options: RunOptions, s2i_binary: str = "s2i") -> None:
        self.options = options
        self.s2i_binary = s2i_binary

    def run_build(self, target: Target) -> BuildOutcome:
        """Run s2i for a target.

        Raises:
            BuildExecutionError: If no build context was prepared or s2i
                cannot be executed.
        """
        if self.options.context_dir is None:
            raise BuildExecutionError(
                "No build context prepared", code="missing_build_input"
            )

        image = target.destination(self.options.tag)
        cmd = compose_s2i_command(
            self.s2i_binary,
            self.options.context_dir,
            target.builder_image,
            image,
        )
        cmd_str = shlex.join(cmd)
        logger.info("Executing local build: %s", cmd_str)

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as e:
            raise BuildExecutionError(
                f"Failed to execute local build: {e}",
                code="execution_error",
            ) from e

        if result.returncode != 0:
            logger.error(
                "Local build of %s failed with exit code %d", image, result.returncode
            )

        log: str | None = None
        if should_surface_logs(True, self.options.verbose, result.returncode):
            log = result.stdout + result.stderr

        return BuildOutcome(
            target=target.name,
            exit_code=result.returncode,
            started=True,
            log=log,
            command=cmd_str,
        )


__all__ = [
    "BuildDriver",
    "BuildExecutionError",
    "BuildInProgressError",
    "BuildOutcome",
    "LocalBuildDriver",
    "RemoteBuildDriver",
    "compose_s2i_command",
    "should_surface_logs",
]
