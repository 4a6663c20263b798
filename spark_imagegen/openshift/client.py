"""OpenShift platform client.

This module handles:
- The PlatformClient capability interface used by the reconciler,
  build drivers and batch commands
- An `oc` subprocess implementation of that interface
- Classifying `oc` failures into not-found, unavailable and command errors

Reads return None for objects that do not exist. Any other read failure
means the platform itself cannot be trusted for this run.
"""

from __future__ import annotations

import json
import logging
import re
import shlex
import subprocess
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from spark_imagegen.config import Settings

logger = logging.getLogger(__name__)

_NOT_FOUND_PATTERN = re.compile(r"\(NotFound\)|\bnot found\b", re.IGNORECASE)
# A missing project means a bad namespace setting, not a missing object
_NAMESPACE_NOT_FOUND_PATTERN = re.compile(
    r'\bnamespaces "[^"]*" not found', re.IGNORECASE
)


class PlatformError(Exception):
    """Base error for platform operations."""

    def __init__(self, message: str, code: str = "platform_error") -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class NotLoggedInError(PlatformError):
    """Raised when there is no authenticated platform session."""

    def __init__(self, detail: str = "") -> None:
        message = "Not logged in to OpenShift. Run 'oc login' first."
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message, code="not_logged_in")


class PlatformUnavailableError(PlatformError):
    """Raised when a lookup fails for a reason other than not-found.

    Transport, authentication and authorization failures all land here;
    they abort the whole run rather than a single target.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message, code="platform_unavailable")


class PlatformCommandError(PlatformError):
    """Raised when a mutating platform command fails."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message, code="command_failed")
        self.exit_code = exit_code
        self.stderr = stderr


def is_not_found(stderr: str) -> bool:
    """Check whether `oc` error output reports a missing object.

    Args:
        stderr: Error output of a failed `oc` command.

    Returns:
        True if the failure means the object does not exist. A missing
        namespace is not reported as a missing object.
    """
    if _NAMESPACE_NOT_FOUND_PATTERN.search(stderr):
        return False
    return bool(_NOT_FOUND_PATTERN.search(stderr))


def label_selector(key: str, value: str | None = None) -> str:
    """Compose a label selector, matching any value when none is given."""
    return key if value is None else f"{key}={value}"


class PlatformClient(Protocol):
    """Capabilities the tool needs from the container platform."""

    def whoami(self) -> str: ...

    def get(self, kind: str, name: str) -> dict[str, Any] | None: ...

    def list(self, kinds: Sequence[str], selector: str) -> list[dict[str, Any]]: ...

    def create(self, manifest: dict[str, Any]) -> None: ...

    def delete(self, kind: str, name: str) -> bool: ...

    def delete_labeled(self, kinds: Sequence[str], selector: str) -> None: ...

    def patch(
        self,
        kind: str,
        name: str,
        patch: dict[str, Any] | list[dict[str, Any]],
        patch_type: str = "merge",
    ) -> None: ...

    def tag(self, source: str, destination: str, source_kind: str = "docker") -> None: ...

    def untag(self, reference: str) -> None: ...

    def label(self, kind: str, name: str, labels: dict[str, str]) -> None: ...

    def start_build(self, name: str, from_dir: Path) -> int: ...

    def logs(self, build_name: str) -> str: ...


class OcClient:
    """PlatformClient backed by the `oc` command-line client."""

    def __init__(self, oc_binary: str = "oc", namespace: str | None = None) -> None:
        self.oc_binary = oc_binary
        self.namespace = namespace

    def _command(self, args: Sequence[str]) -> list[str]:
        cmd = [self.oc_binary]
        if self.namespace:
            cmd.extend(["--namespace", self.namespace])
        cmd.extend(args)
        return cmd

    def _run(
        self,
        args: Sequence[str],
        input_text: str | None = None,
    ) -> subprocess.CompletedProcess[str]:
        cmd = self._command(args)
        logger.debug("Executing: %s", shlex.join(cmd))
        try:
            return subprocess.run(
                cmd,
                input=input_text,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as e:
            raise PlatformUnavailableError(
                f"Failed to execute {self.oc_binary}: {e}"
            ) from e

    def _mutate(
        self,
        args: Sequence[str],
        input_text: str | None = None,
    ) -> subprocess.CompletedProcess[str]:
        result = self._run(args, input_text=input_text)
        if result.returncode != 0:
            stderr = result.stderr.strip()
            raise PlatformCommandError(
                f"oc {args[0]} failed: {stderr or f'exit code {result.returncode}'}",
                exit_code=result.returncode,
                stderr=stderr,
            )
        return result

    def whoami(self) -> str:
        """Return the logged-in user name.

        Raises:
            NotLoggedInError: If there is no valid session.
        """
        try:
            result = self._run(["whoami"])
        except PlatformUnavailableError as e:
            raise NotLoggedInError(e.message) from e
        if result.returncode != 0:
            raise NotLoggedInError(result.stderr.strip())
        return result.stdout.strip()

    def get(self, kind: str, name: str) -> dict[str, Any] | None:
        """Fetch one object as a dict, or None if it does not exist.

        Raises:
            PlatformUnavailableError: If the lookup fails for another reason.
        """
        result = self._run(["get", kind, name, "-o", "json"])
        if result.returncode != 0:
            if is_not_found(result.stderr):
                return None
            raise PlatformUnavailableError(
                f"Failed to get {kind}/{name}: {result.stderr.strip()}"
            )
        data: dict[str, Any] = json.loads(result.stdout)
        return data

    def list(self, kinds: Sequence[str], selector: str) -> list[dict[str, Any]]:
        """List objects of the given kinds matching a label selector.

        Raises:
            PlatformUnavailableError: If the listing fails.
        """
        result = self._run(["get", ",".join(kinds), "-l", selector, "-o", "json"])
        if result.returncode != 0:
            raise PlatformUnavailableError(
                f"Failed to list {','.join(kinds)}: {result.stderr.strip()}"
            )
        data = json.loads(result.stdout)
        items: list[dict[str, Any]] = data.get("items", [])
        return items

    def create(self, manifest: dict[str, Any]) -> None:
        """Create objects from a manifest (a single object or a List)."""
        self._mutate(["create", "-f", "-"], input_text=json.dumps(manifest))

    def delete(self, kind: str, name: str) -> bool:
        """Delete one object.

        Returns:
            True if deleted, False if it did not exist.
        """
        result = self._run(["delete", kind, name])
        if result.returncode == 0:
            return True
        if is_not_found(result.stderr):
            logger.debug("%s/%s already absent", kind, name)
            return False
        raise PlatformCommandError(
            f"oc delete {kind}/{name} failed: {result.stderr.strip()}",
            exit_code=result.returncode,
            stderr=result.stderr.strip(),
        )

    def delete_labeled(self, kinds: Sequence[str], selector: str) -> None:
        """Delete every object of the given kinds matching a label selector."""
        self._mutate(["delete", ",".join(kinds), "-l", selector, "--ignore-not-found"])

    def patch(
        self,
        kind: str,
        name: str,
        patch: dict[str, Any] | list[dict[str, Any]],
        patch_type: str = "merge",
    ) -> None:
        """Patch an object with a merge or JSON patch."""
        self._mutate(
            ["patch", kind, name, f"--type={patch_type}", "-p", json.dumps(patch)]
        )

    def tag(self, source: str, destination: str, source_kind: str = "docker") -> None:
        """Tag a source image into an image stream tag."""
        self._mutate(["tag", f"--source={source_kind}", source, destination])

    def untag(self, reference: str) -> None:
        """Remove a tag from its image stream.

        Works for tags whose image stream tag object cannot be fetched,
        where `oc delete imagestreamtag` reports NotFound.
        """
        self._mutate(["tag", "-d", reference])

    def label(self, kind: str, name: str, labels: dict[str, str]) -> None:
        """Set labels on an object, overwriting existing values."""
        pairs = [f"{key}={value}" for key, value in labels.items()]
        self._mutate(["label", kind, name, *pairs, "--overwrite"])

    def start_build(self, name: str, from_dir: Path) -> int:
        """Start a binary build from a directory and wait for it to finish.

        Returns:
            Exit status of the build; non-zero means the build did not complete.
        """
        result = self._run(["start-build", name, f"--from-dir={from_dir}", "--wait"])
        if result.returncode != 0:
            logger.debug(
                "start-build %s exited %d: %s",
                name,
                result.returncode,
                result.stderr.strip(),
            )
        return result.returncode

    def logs(self, build_name: str) -> str:
        """Return the logs of a build."""
        result = self._mutate(["logs", f"build/{build_name}"])
        return result.stdout


def get_client(settings: Settings | None = None) -> OcClient:
    """Create an `oc` client from settings.

    Args:
        settings: Application settings; uses default if not provided.

    Returns:
        OcClient instance.
    """
    if settings is None:
        from spark_imagegen.config import get_settings

        settings = get_settings()
    return OcClient(oc_binary=settings.oc_binary, namespace=settings.namespace)


__all__ = [
    "NotLoggedInError",
    "OcClient",
    "PlatformClient",
    "PlatformCommandError",
    "PlatformError",
    "PlatformUnavailableError",
    "get_client",
    "is_not_found",
    "label_selector",
]
