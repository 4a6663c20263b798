"""Build context preparation.

This module handles:
- Resolving the SPARK argument (file, directory or URL) into a local
  build context directory
- Downloading remote Spark archives and their checksum sidecars
- Verifying archives against `.sha512` / `.sha256` sidecar files
"""

from __future__ import annotations

import hashlib
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

import httpx

logger = logging.getLogger(__name__)

# Archive names accepted as Spark distributions
SPARK_ARCHIVE_SUFFIXES = (".tgz", ".tar.gz")

# Sidecar suffix -> hashlib algorithm, in lookup order
CHECKSUM_SUFFIXES = {".sha512": "sha512", ".sha256": "sha256"}

# Timeout for downloads (seconds)
DOWNLOAD_TIMEOUT = 600

# Chunk size for downloads and hashing (bytes)
CHUNK_SIZE = 64 * 1024  # 64 KB


class BuildInputError(Exception):
    """Raised when the build input is missing or unusable."""

    def __init__(self, message: str, code: str = "build_input_missing") -> None:
        """Initialize BuildInputError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


class DownloadError(BuildInputError):
    """Raised when downloading the build input fails."""

    def __init__(self, message: str) -> None:
        """Initialize DownloadError.

        Args:
            message: Error description.
        """
        super().__init__(message, code="download_error")


class ChecksumMismatchError(BuildInputError):
    """Raised when an archive does not match its checksum sidecar."""

    def __init__(self, message: str) -> None:
        """Initialize ChecksumMismatchError.

        Args:
            message: Error description.
        """
        super().__init__(message, code="checksum_mismatch")


@dataclass
class BuildContext:
    """A prepared build context.

    Attributes:
        directory: Directory uploaded to the build.
        archive: Spark archive inside the directory.
        checksum_verified: Whether a sidecar checksum was verified.
    """

    directory: Path
    archive: Path
    checksum_verified: bool = False


def is_url(spark: str) -> bool:
    """Check whether the SPARK argument is an http(s) URL."""
    return urlparse(spark).scheme in ("http", "https")


def is_spark_archive(path: Path) -> bool:
    return path.name.endswith(SPARK_ARCHIVE_SUFFIXES)


def parse_checksum_file(content: str, archive_filename: str) -> str | None:
    """Extract the checksum for an archive from a sidecar file.

    Understands ``<hex>  <filename>`` lines, Apache's
    ``<filename>: <HEX GROUPS>`` layout (possibly wrapped over several
    lines), and a bare digest.

    Args:
        content: Sidecar file content.
        archive_filename: Archive file name to look up.

    Returns:
        Lowercase hex digest, or None if not found.
    """
    stripped = content.strip()
    if not stripped:
        return None

    # Apache style: "spark-x.tgz: 1B5A C8A5 ..."
    head, sep, tail = stripped.partition(":")
    if sep and Path(head.strip()).name == archive_filename:
        return "".join(tail.split()).lower()

    for line in stripped.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split(maxsplit=1)
        if len(parts) == 1:
            return parts[0].lower()
        checksum, filename = parts
        filename = filename.lstrip("*").strip()
        if Path(filename).name == archive_filename:
            return checksum.lower()

    return None


def compute_file_digest(
    file_path: Path, algorithm: str = "sha512", chunk_size: int = CHUNK_SIZE
) -> str:
    """Compute the hex digest of a file."""
    digest = hashlib.new(algorithm)
    with file_path.open("rb") as f:
        while chunk := f.read(chunk_size):
            digest.update(chunk)
    return digest.hexdigest()


def find_sidecar(archive: Path) -> Path | None:
    """Find a checksum sidecar next to an archive."""
    for suffix in CHECKSUM_SUFFIXES:
        candidate = archive.with_name(archive.name + suffix)
        if candidate.is_file():
            return candidate
    return None


def verify_archive(archive: Path, sidecar: Path) -> None:
    """Verify an archive against its sidecar.

    Raises:
        ChecksumMismatchError: If the digests differ or the sidecar has no
            entry for the archive.
    """
    algorithm = CHECKSUM_SUFFIXES[sidecar.suffix]
    expected = parse_checksum_file(sidecar.read_text(encoding="utf-8"), archive.name)
    if expected is None:
        raise ChecksumMismatchError(f"No checksum for {archive.name} in {sidecar.name}")
    actual = compute_file_digest(archive, algorithm)
    if actual != expected:
        raise ChecksumMismatchError(
            f"Checksum mismatch for {archive.name}: expected {expected}, got {actual}"
        )
    logger.info("Verified %s checksum of %s", algorithm, archive.name)


def find_archive(directory: Path) -> Path:
    """Find the single Spark archive in a directory.

    Raises:
        BuildInputError: If there is no archive or more than one.
    """
    archives = sorted(
        p for p in directory.iterdir() if p.is_file() and is_spark_archive(p)
    )
    if not archives:
        raise BuildInputError(f"No Spark archive (*.tgz, *.tar.gz) in {directory}")
    if len(archives) > 1:
        names = ", ".join(p.name for p in archives)
        raise BuildInputError(f"More than one Spark archive in {directory}: {names}")
    return archives[0]


def download_file(
    client: httpx.Client,
    url: str,
    dest_path: Path,
    timeout: float = DOWNLOAD_TIMEOUT,
    chunk_size: int = CHUNK_SIZE,
) -> Path:
    """Download a file.

    Raises:
        DownloadError: If the download fails.
    """
    logger.info("Downloading %s to %s", url, dest_path)
    try:
        with client.stream("GET", url, timeout=timeout) as response:
            response.raise_for_status()
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            total_bytes = 0
            with dest_path.open("wb") as f:
                for chunk in response.iter_bytes(chunk_size):
                    f.write(chunk)
                    total_bytes += len(chunk)
    except httpx.HTTPStatusError as e:
        dest_path.unlink(missing_ok=True)
        raise DownloadError(
            f"HTTP error {e.response.status_code} downloading {url}"
        ) from e
    except httpx.RequestError as e:
        dest_path.unlink(missing_ok=True)
        raise DownloadError(f"Request error downloading {url}: {e}") from e

    logger.info("Downloaded %s (%d bytes)", dest_path.name, total_bytes)
    return dest_path


def fetch_optional_text(
    client: httpx.Client, url: str, timeout: float = DOWNLOAD_TIMEOUT
) -> str | None:
    """Fetch a small text file, returning None if it does not exist.

    Raises:
        DownloadError: On errors other than 404.
    """
    try:
        response = client.get(url, timeout=timeout)
    except httpx.RequestError as e:
        raise DownloadError(f"Request error fetching {url}: {e}") from e
    if response.status_code == 404:
        return None
    if response.is_error:
        raise DownloadError(f"HTTP error {response.status_code} fetching {url}")
    return response.text


def _context_from_url(
    spark: str, work_dir: Path, client: httpx.Client, timeout: float
) -> BuildContext:
    filename = Path(urlparse(spark).path).name
    if not filename:
        raise BuildInputError(f"Cannot determine archive name from URL: {spark}")
    archive = download_file(client, spark, work_dir / filename, timeout=timeout)

    for suffix in CHECKSUM_SUFFIXES:
        content = fetch_optional_text(client, spark + suffix, timeout=timeout)
        if content is not None:
            sidecar = work_dir / (filename + suffix)
            sidecar.write_text(content, encoding="utf-8")
            verify_archive(archive, sidecar)
            return BuildContext(
                directory=work_dir, archive=archive, checksum_verified=True
            )

    logger.warning("No checksum sidecar found for %s", spark)
    return BuildContext(directory=work_dir, archive=archive)


def _context_from_file(source: Path, work_dir: Path) -> BuildContext:
    if not is_spark_archive(source):
        raise BuildInputError(f"Not a Spark archive (*.tgz, *.tar.gz): {source}")
    work_dir.mkdir(parents=True, exist_ok=True)
    archive = Path(shutil.copy2(source, work_dir / source.name))
    sidecar = find_sidecar(source)
    if sidecar is None:
        return BuildContext(directory=work_dir, archive=archive)
    copied = Path(shutil.copy2(sidecar, work_dir / sidecar.name))
    verify_archive(archive, copied)
    return BuildContext(directory=work_dir, archive=archive, checksum_verified=True)


def _context_from_directory(directory: Path) -> BuildContext:
    archive = find_archive(directory)
    sidecar = find_sidecar(archive)
    if sidecar is None:
        return BuildContext(directory=directory, archive=archive)
    verify_archive(archive, sidecar)
    return BuildContext(directory=directory, archive=archive, checksum_verified=True)


def resolve_build_input(
    spark: str,
    work_dir: Path,
    client: httpx.Client | None = None,
    timeout: float = DOWNLOAD_TIMEOUT,
) -> BuildContext:
    """Turn the SPARK argument into a build context directory.

    A URL is downloaded into ``work_dir``, a file is copied there, and a
    directory is used in place.

    Args:
        spark: File path, directory or http(s) URL.
        work_dir: Scratch directory for downloaded or copied input.
        client: Optional HTTPX client (created if not provided).
        timeout: Download timeout in seconds.

    Returns:
        BuildContext ready to upload.

    Raises:
        BuildInputError: If the input is missing or not a Spark archive.
        DownloadError: If downloading fails.
        ChecksumMismatchError: If checksum verification fails.
    """
    if is_url(spark):
        if client is not None:
            return _context_from_url(spark, work_dir, client, timeout)
        with httpx.Client(follow_redirects=True) as owned_client:
            return _context_from_url(spark, work_dir, owned_client, timeout)

    path = Path(spark).expanduser()
    if path.is_dir():
        return _context_from_directory(path)
    if path.is_file():
        return _context_from_file(path, work_dir)
    raise BuildInputError(f"Build input not found: {spark}")


__all__ = [
    "BuildContext",
    "BuildInputError",
    "ChecksumMismatchError",
    "DownloadError",
    "compute_file_digest",
    "download_file",
    "fetch_optional_text",
    "find_archive",
    "find_sidecar",
    "is_url",
    "parse_checksum_file",
    "resolve_build_input",
    "verify_archive",
]
