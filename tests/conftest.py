"""Shared fixtures: an in-memory platform standing in for `oc`."""

import copy
from pathlib import Path
from typing import Any

import pytest

from spark_imagegen.config import DEFAULT_OWNER_LABEL, Settings
from spark_imagegen.openshift.client import (
    NotLoggedInError,
    PlatformCommandError,
    PlatformUnavailableError,
)
from spark_imagegen.targets.catalog import CATALOG, Target, TargetName

OWNER = DEFAULT_OWNER_LABEL


def _deep_merge(base: dict[str, Any], patch: dict[str, Any]) -> None:
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = copy.deepcopy(value)


def _apply_json_patch(obj: dict[str, Any], ops: list[dict[str, Any]]) -> None:
    for op in ops:
        assert op["op"] == "replace"
        parts = op["path"].lstrip("/").split("/")
        node: Any = obj
        for part in parts[:-1]:
            node = node[int(part)] if isinstance(node, list) else node[part]
        last = parts[-1]
        if isinstance(node, list):
            node[int(last)] = copy.deepcopy(op["value"])
        else:
            if last not in node:
                raise PlatformCommandError(f"path {op['path']} does not exist")
            node[last] = copy.deepcopy(op["value"])


class FakePlatform:
    """In-memory PlatformClient recording every call."""

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], dict[str, Any]] = {}
        self.calls: list[tuple[Any, ...]] = []
        self.logged_in = True
        self.unavailable = False
        self.build_phases: dict[str, str] = {}

    # Seeding helpers

    def add(
        self,
        kind: str,
        name: str,
        body: dict[str, Any] | None = None,
        labels: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        obj = copy.deepcopy(body) if body else {}
        obj.setdefault("metadata", {})
        obj["metadata"]["name"] = name
        if labels is not None:
            obj["metadata"]["labels"] = dict(labels)
        self.objects[(kind, name)] = obj
        return obj

    def add_build_config(
        self,
        name: str,
        source_type: str = "Binary",
        source_image: str | None = None,
        destination: str | None = None,
        labels: dict[str, str] | None = None,
        last_version: int = 0,
    ) -> dict[str, Any]:
        body = {
            "kind": "BuildConfig",
            "spec": {
                "source": {"type": source_type},
                "strategy": {
                    "sourceStrategy": {
                        "from": {
                            "kind": "ImageStreamTag",
                            "name": source_image or f"{name}-inc:latest",
                        }
                    }
                },
                "output": {
                    "to": {"kind": "ImageStreamTag", "name": destination or f"{name}:complete"}
                },
            },
            "status": {"lastVersion": last_version},
        }
        return self.add("buildconfig", name, body, labels)

    def add_image_stream(
        self, name: str, labels: dict[str, str] | None = None
    ) -> dict[str, Any]:
        existing = self.objects.get(("imagestream", name))
        if existing is not None:
            return existing
        body = {"kind": "ImageStream", "spec": {"tags": []}, "status": {"tags": []}}
        return self.add("imagestream", name, body, labels)

    def add_image_stream_tag(self, ref: str, pull_spec: str | None = None) -> None:
        stream, tag = ref.split(":", 1)
        image_stream = self.add_image_stream(stream)
        status_tags = image_stream.setdefault("status", {}).setdefault("tags", [])
        if not any(t["tag"] == tag for t in status_tags):
            status_tags.append({"tag": tag})
        self.add(
            "imagestreamtag",
            ref,
            {
                "kind": "ImageStreamTag",
                "image": {
                    "dockerImageReference": pull_spec
                    or f"172.30.1.1:5000/myproject/{stream}@sha256:{tag}"
                },
            },
        )

    def add_dangling_tag(self, ref: str) -> None:
        """Listed on its stream, but not retrievable on its own."""
        self.add_image_stream_tag(ref)
        del self.objects[("imagestreamtag", ref)]

    def add_build(
        self,
        name: str,
        sequence: int,
        phase: str,
        labels: dict[str, str] | None = None,
    ) -> None:
        body = {"kind": "Build", "status": {"phase": phase}}
        self.add("build", f"{name}-{sequence}", body, labels)

    def call_names(self) -> list[str]:
        return [c[0] for c in self.calls]

    def labels_of(self, kind: str, name: str) -> dict[str, str]:
        return self.objects[(kind, name)]["metadata"].get("labels", {})

    def _is_dangling(self, ref: str) -> bool:
        stream, tag = ref.split(":", 1)
        image_stream = self.objects.get(("imagestream", stream))
        if image_stream is None or ("imagestreamtag", ref) in self.objects:
            return False
        return any(t["tag"] == tag for t in image_stream.get("status", {}).get("tags", []))

    def _matches(self, obj: dict[str, Any], selector: str) -> bool:
        key, _, value = selector.partition("=")
        labels = obj["metadata"].get("labels") or {}
        if key not in labels:
            return False
        return not value or labels[key] == value

    # PlatformClient

    def whoami(self) -> str:
        self.calls.append(("whoami",))
        if not self.logged_in:
            raise NotLoggedInError("token expired")
        return "developer"

    def get(self, kind: str, name: str) -> dict[str, Any] | None:
        self.calls.append(("get", kind, name))
        if self.unavailable:
            raise PlatformUnavailableError("Unable to connect to the server")
        obj = self.objects.get((kind, name))
        return copy.deepcopy(obj) if obj is not None else None

    def list(self, kinds, selector: str) -> list[dict[str, Any]]:
        self.calls.append(("list", tuple(kinds), selector))
        return [
            copy.deepcopy(obj)
            for (kind, _), obj in self.objects.items()
            if kind in kinds and self._matches(obj, selector)
        ]

    def create(self, manifest: dict[str, Any]) -> None:
        self.calls.append(("create", copy.deepcopy(manifest)))
        items = manifest["items"] if manifest["kind"] == "List" else [manifest]
        for item in items:
            kind = item["kind"].lower()
            name = item["metadata"]["name"]
            if (kind, name) in self.objects:
                raise PlatformCommandError(f'{kind} "{name}" already exists')
            if kind == "buildconfig":
                destination = item["spec"]["output"]["to"]["name"]
                if self._is_dangling(destination):
                    raise PlatformCommandError(
                        f'imagestreamtag "{destination}" already exists'
                    )
        for item in items:
            kind = item["kind"].lower()
            name = item["metadata"]["name"]
            self.objects[(kind, name)] = copy.deepcopy(item)
            if kind == "imagestream":
                self.objects[(kind, name)].setdefault("status", {"tags": []})
                for tag in item.get("spec", {}).get("tags", []):
                    self.add_image_stream_tag(f"{name}:{tag['name']}")
            if kind == "buildconfig":
                self.objects[(kind, name)]["status"] = {"lastVersion": 0}

    def delete(self, kind: str, name: str) -> bool:
        self.calls.append(("delete", kind, name))
        if self.objects.pop((kind, name), None) is None:
            return False
        if kind == "imagestream":
            for key in [k for k in self.objects if k[0] == "imagestreamtag"]:
                if key[1].startswith(f"{name}:"):
                    del self.objects[key]
        if kind == "imagestreamtag":
            stream, tag = name.split(":", 1)
            image_stream = self.objects.get(("imagestream", stream))
            if image_stream is not None:
                status = image_stream.get("status", {})
                status["tags"] = [t for t in status.get("tags", []) if t["tag"] != tag]
        return True

    def delete_labeled(self, kinds, selector: str) -> None:
        self.calls.append(("delete_labeled", tuple(kinds), selector))
        for kind in kinds:
            for key in [k for k, obj in self.objects.items() if k[0] == kind]:
                if key in self.objects and self._matches(self.objects[key], selector):
                    self.delete(*key)
                    self.calls.pop()

    def patch(self, kind: str, name: str, patch, patch_type: str = "merge") -> None:
        self.calls.append(("patch", kind, name, copy.deepcopy(patch), patch_type))
        obj = self.objects.get((kind, name))
        if obj is None:
            raise PlatformCommandError(f'{kind} "{name}" not found')
        if patch_type == "merge":
            _deep_merge(obj, patch)
        else:
            _apply_json_patch(obj, patch)

    def tag(self, source: str, destination: str, source_kind: str = "docker") -> None:
        self.calls.append(("tag", source, destination, source_kind))
        stream, tag = destination.split(":", 1)
        image_stream = self.add_image_stream(stream)
        image_stream["spec"].setdefault("tags", []).append(
            {"name": tag, "from": {"kind": "DockerImage", "name": source}}
        )
        self.add_image_stream_tag(destination)

    def untag(self, reference: str) -> None:
        self.calls.append(("untag", reference))
        stream, tag = reference.split(":", 1)
        image_stream = self.objects.get(("imagestream", stream))
        if image_stream is None:
            raise PlatformCommandError(f'imagestream "{stream}" not found')
        spec_tags = image_stream.get("spec", {}).get("tags", [])
        status_tags = image_stream.get("status", {}).get("tags", [])
        if not any(t["name"] == tag for t in spec_tags) and not any(
            t["tag"] == tag for t in status_tags
        ):
            raise PlatformCommandError(f'tag "{tag}" not found on "{stream}"')
        image_stream.setdefault("spec", {})["tags"] = [
            t for t in spec_tags if t["name"] != tag
        ]
        image_stream.setdefault("status", {})["tags"] = [
            t for t in status_tags if t["tag"] != tag
        ]
        self.objects.pop(("imagestreamtag", reference), None)

    def label(self, kind: str, name: str, labels: dict[str, str]) -> None:
        self.calls.append(("label", kind, name, dict(labels)))
        obj = self.objects.get((kind, name))
        if obj is None:
            raise PlatformCommandError(f'{kind} "{name}" not found')
        obj["metadata"].setdefault("labels", {}).update(labels)

    def start_build(self, name: str, from_dir: Path) -> int:
        self.calls.append(("start_build", name, Path(from_dir)))
        config = self.objects[("buildconfig", name)]
        sequence = config["status"].get("lastVersion", 0) + 1
        config["status"]["lastVersion"] = sequence
        phase = self.build_phases.get(name, "Complete")
        self.add_build(name, sequence, phase, config["metadata"].get("labels"))
        if phase != "Complete":
            return 1
        self.add_image_stream_tag(config["spec"]["output"]["to"]["name"])
        return 0

    def logs(self, build_name: str) -> str:
        self.calls.append(("logs", build_name))
        return f"log output of {build_name}"


@pytest.fixture
def platform() -> FakePlatform:
    """Empty in-memory platform."""
    return FakePlatform()


@pytest.fixture
def settings(monkeypatch) -> Settings:
    """Settings unaffected by the caller's environment."""
    for var in (
        "SPARK_IMG_FEATURES",
        "SPARK_IMG_OWNER_LABEL",
        "SPARK_IMG_DEFAULT_TAG",
        "SPARK_IMG_NAMESPACE",
    ):
        monkeypatch.delenv(var, raising=False)
    return Settings(_env_file=None)


@pytest.fixture
def pyspark() -> Target:
    """The radanalytics-pyspark catalog entry."""
    return CATALOG[TargetName.RADANALYTICS_PYSPARK]


@pytest.fixture
def openshift_spark() -> Target:
    """The openshift-spark catalog entry."""
    return CATALOG[TargetName.OPENSHIFT_SPARK]


@pytest.fixture
def context_dir(tmp_path: Path) -> Path:
    """Build context holding a Spark archive."""
    directory = tmp_path / "context"
    directory.mkdir()
    (directory / "spark-2.3.0-bin-hadoop2.7.tgz").write_bytes(b"spark archive")
    return directory
