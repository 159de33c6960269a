"""Unit tests for LocalArtifactStorage."""

from __future__ import annotations

from pathlib import Path

import pytest

from apihost.storage.local import LocalArtifactStorage


@pytest.fixture
def storage(tmp_path: Path) -> LocalArtifactStorage:
    return LocalArtifactStorage(tmp_path / "artifacts")


async def test_write_read(storage: LocalArtifactStorage, tmp_path: Path):
    await storage.write("api-1/art-1/sum.py", b"print(1)\n")

    assert await storage.read("api-1/art-1/sum.py") == b"print(1)\n"
    assert (tmp_path / "artifacts" / "api-1" / "art-1" / "sum.py").is_file()
    # No temp file left behind
    assert not list((tmp_path / "artifacts").rglob("*.tmp"))


async def test_overwrite(storage: LocalArtifactStorage):
    await storage.write("k/sum.py", b"old")
    await storage.write("k/sum.py", b"new")

    assert await storage.read("k/sum.py") == b"new"


async def test_read_missing_raises(storage: LocalArtifactStorage):
    with pytest.raises(FileNotFoundError):
        await storage.read("nope/sum.py")


async def test_delete_is_idempotent_and_prunes_dirs(
    storage: LocalArtifactStorage, tmp_path: Path
):
    await storage.write("api-1/art-1/sum.py", b"x")

    await storage.delete("api-1/art-1/sum.py")
    await storage.delete("api-1/art-1/sum.py")

    assert not (tmp_path / "artifacts" / "api-1" / "art-1" / "sum.py").exists()
    assert not (tmp_path / "artifacts" / "api-1").exists()


async def test_delete_keeps_sibling_blobs(storage: LocalArtifactStorage):
    await storage.write("api-1/art-1/a.py", b"a")
    await storage.write("api-1/art-2/b.py", b"b")

    await storage.delete("api-1/art-1/a.py")

    assert await storage.read("api-1/art-2/b.py") == b"b"


@pytest.mark.parametrize("key", ["../escape.py", "api-1/../../escape.py", "/etc/passwd"])
async def test_keys_cannot_escape_root(storage: LocalArtifactStorage, key: str):
    with pytest.raises(ValueError):
        await storage.write(key, b"x")
