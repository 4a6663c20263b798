"""Tests for builds/context.py module.

Uses respx to mock HTTP downloads of Spark archives and sidecars.
"""

import hashlib
from pathlib import Path

import httpx
import pytest
import respx

from spark_imagegen.builds.context import (
    BuildInputError,
    ChecksumMismatchError,
    DownloadError,
    compute_file_digest,
    find_archive,
    is_url,
    parse_checksum_file,
    resolve_build_input,
)

ARCHIVE = "spark-2.3.0-bin-hadoop2.7.tgz"
CONTENT = b"spark archive"
SPARK_URL = f"https://archive.apache.org/dist/spark/spark-2.3.0/{ARCHIVE}"


def sha512(content: bytes = CONTENT) -> str:
    return hashlib.sha512(content).hexdigest()


def apache_style(filename: str, digest: str) -> str:
    """Render a digest the way older Apache releases publish it."""
    groups = [digest[i : i + 8].upper() for i in range(0, len(digest), 8)]
    first, rest = " ".join(groups[:8]), " ".join(groups[8:])
    return f"{filename}: {first}\n{' ' * (len(filename) + 2)}{rest}\n"


class TestParseChecksumFile:
    """Tests for parse_checksum_file."""

    def test_sum_tool_format(self) -> None:
        content = f"{sha512()}  {ARCHIVE}\n"
        assert parse_checksum_file(content, ARCHIVE) == sha512()

    def test_binary_marker(self) -> None:
        content = f"{sha512()} *{ARCHIVE}\n"
        assert parse_checksum_file(content, ARCHIVE) == sha512()

    def test_other_files_skipped(self) -> None:
        content = f"{'0' * 128}  other.tgz\n{sha512()}  {ARCHIVE}\n"
        assert parse_checksum_file(content, ARCHIVE) == sha512()

    def test_apache_grouped_format(self) -> None:
        """Upper-case digest split into groups and wrapped over lines."""
        content = apache_style(ARCHIVE, sha512())
        assert parse_checksum_file(content, ARCHIVE) == sha512()

    def test_bare_digest(self) -> None:
        assert parse_checksum_file(f"{sha512().upper()}\n", ARCHIVE) == sha512()

    def test_missing_entry(self) -> None:
        assert parse_checksum_file(f"{sha512()}  other.tgz\n", ARCHIVE) is None
        assert parse_checksum_file("", ARCHIVE) is None


class TestHelpers:
    """Tests for small helpers."""

    def test_is_url(self) -> None:
        assert is_url(SPARK_URL)
        assert is_url("http://example.com/spark.tgz")
        assert not is_url("/tmp/spark.tgz")
        assert not is_url("spark.tgz")

    def test_compute_file_digest(self, tmp_path: Path) -> None:
        path = tmp_path / ARCHIVE
        path.write_bytes(CONTENT)
        assert compute_file_digest(path) == sha512()
        assert compute_file_digest(path, "sha256") == hashlib.sha256(CONTENT).hexdigest()

    def test_find_archive_requires_exactly_one(self, tmp_path: Path) -> None:
        with pytest.raises(BuildInputError, match="No Spark archive"):
            find_archive(tmp_path)
        (tmp_path / "a.tgz").write_bytes(b"a")
        (tmp_path / "b.tar.gz").write_bytes(b"b")
        with pytest.raises(BuildInputError, match="More than one"):
            find_archive(tmp_path)


class TestResolveLocalInput:
    """Tests for resolve_build_input with local paths."""

    def test_directory_used_in_place(self, context_dir: Path, tmp_path: Path) -> None:
        context = resolve_build_input(str(context_dir), tmp_path / "work")
        assert context.directory == context_dir
        assert context.archive == context_dir / ARCHIVE
        assert context.checksum_verified is False

    def test_directory_sidecar_verified(self, context_dir: Path, tmp_path: Path) -> None:
        (context_dir / f"{ARCHIVE}.sha512").write_text(f"{sha512()}  {ARCHIVE}\n")
        context = resolve_build_input(str(context_dir), tmp_path / "work")
        assert context.checksum_verified is True

    def test_directory_sidecar_mismatch(self, context_dir: Path, tmp_path: Path) -> None:
        (context_dir / f"{ARCHIVE}.sha512").write_text(f"{'0' * 128}  {ARCHIVE}\n")
        with pytest.raises(ChecksumMismatchError) as exc_info:
            resolve_build_input(str(context_dir), tmp_path / "work")
        assert exc_info.value.code == "checksum_mismatch"

    def test_file_copied_with_sidecar(self, context_dir: Path, tmp_path: Path) -> None:
        (context_dir / f"{ARCHIVE}.sha256").write_text(
            f"{hashlib.sha256(CONTENT).hexdigest()}  {ARCHIVE}\n"
        )
        work_dir = tmp_path / "work"

        context = resolve_build_input(str(context_dir / ARCHIVE), work_dir)

        assert context.directory == work_dir
        assert (work_dir / ARCHIVE).read_bytes() == CONTENT
        assert (work_dir / f"{ARCHIVE}.sha256").exists()
        assert context.checksum_verified is True

    def test_file_must_be_archive(self, tmp_path: Path) -> None:
        path = tmp_path / "spark.zip"
        path.write_bytes(b"zip")
        with pytest.raises(BuildInputError, match="Not a Spark archive"):
            resolve_build_input(str(path), tmp_path / "work")

    def test_missing_input(self, tmp_path: Path) -> None:
        with pytest.raises(BuildInputError, match="Build input not found") as exc_info:
            resolve_build_input(str(tmp_path / "nope.tgz"), tmp_path / "work")
        assert exc_info.value.code == "build_input_missing"


class TestResolveUrlInput:
    """Tests for resolve_build_input with URLs."""

    @respx.mock
    def test_download_with_sha512(self, tmp_path: Path) -> None:
        respx.get(SPARK_URL).mock(return_value=httpx.Response(200, content=CONTENT))
        respx.get(f"{SPARK_URL}.sha512").mock(
            return_value=httpx.Response(200, text=apache_style(ARCHIVE, sha512()))
        )

        context = resolve_build_input(SPARK_URL, tmp_path)

        assert context.archive == tmp_path / ARCHIVE
        assert context.archive.read_bytes() == CONTENT
        assert context.checksum_verified is True

    @respx.mock
    def test_falls_back_to_sha256(self, tmp_path: Path) -> None:
        respx.get(SPARK_URL).mock(return_value=httpx.Response(200, content=CONTENT))
        respx.get(f"{SPARK_URL}.sha512").mock(return_value=httpx.Response(404))
        respx.get(f"{SPARK_URL}.sha256").mock(
            return_value=httpx.Response(
                200, text=f"{hashlib.sha256(CONTENT).hexdigest()}  {ARCHIVE}\n"
            )
        )

        context = resolve_build_input(SPARK_URL, tmp_path)

        assert context.checksum_verified is True

    @respx.mock
    def test_no_sidecar(self, tmp_path: Path) -> None:
        respx.get(SPARK_URL).mock(return_value=httpx.Response(200, content=CONTENT))
        respx.get(f"{SPARK_URL}.sha512").mock(return_value=httpx.Response(404))
        respx.get(f"{SPARK_URL}.sha256").mock(return_value=httpx.Response(404))

        context = resolve_build_input(SPARK_URL, tmp_path)

        assert context.checksum_verified is False

    @respx.mock
    def test_corrupt_download(self, tmp_path: Path) -> None:
        respx.get(SPARK_URL).mock(return_value=httpx.Response(200, content=b"truncated"))
        respx.get(f"{SPARK_URL}.sha512").mock(
            return_value=httpx.Response(200, text=f"{sha512()}  {ARCHIVE}\n")
        )
        with pytest.raises(ChecksumMismatchError):
            resolve_build_input(SPARK_URL, tmp_path)

    @respx.mock
    def test_http_error(self, tmp_path: Path) -> None:
        respx.get(SPARK_URL).mock(return_value=httpx.Response(404))
        with pytest.raises(DownloadError, match="HTTP error 404"):
            resolve_build_input(SPARK_URL, tmp_path)
        assert not (tmp_path / ARCHIVE).exists()

    @respx.mock
    def test_sidecar_server_error(self, tmp_path: Path) -> None:
        respx.get(SPARK_URL).mock(return_value=httpx.Response(200, content=CONTENT))
        respx.get(f"{SPARK_URL}.sha512").mock(return_value=httpx.Response(503))
        with pytest.raises(DownloadError):
            resolve_build_input(SPARK_URL, tmp_path)
