"""Tests for storage backends."""

import pytest

from pagemark.exceptions import IoError
from pagemark.services.storage import InMemoryStorage, LocalFileStorage, SourceHandle


class TestLocalFileStorage:
    """Tests for filesystem-backed storage."""

    @pytest.mark.asyncio
    async def test_read_relative_to_root(self, tmp_path):
        """Test paths are resolved against the storage root."""
        (tmp_path / "a.txt").write_bytes(b"alpha")
        storage = LocalFileStorage(tmp_path)

        assert await storage.read("a.txt") == b"alpha"

    @pytest.mark.asyncio
    async def test_read_missing_file(self, tmp_path):
        """Test a missing file raises IoError."""
        storage = LocalFileStorage(tmp_path)

        with pytest.raises(IoError):
            await storage.read("missing.txt")

    @pytest.mark.asyncio
    async def test_list_is_recursive_and_sorted(self, tmp_path):
        """Test listing returns every child with forward-slash relative paths."""
        (tmp_path / "b").mkdir()
        (tmp_path / "b" / "c.txt").write_bytes(b"c")
        (tmp_path / "a.txt").write_bytes(b"a")
        storage = LocalFileStorage(tmp_path)

        entries = await storage.list()

        assert [(e.path, e.is_dir) for e in entries] == [
            ("a.txt", False),
            ("b", True),
            ("b/c.txt", False),
        ]


class TestInMemoryStorage:
    """Tests for in-memory storage."""

    @pytest.mark.asyncio
    async def test_read_and_list(self):
        """Test reads by path and prefix listing."""
        storage = InMemoryStorage({"docs/a.md": b"# A", "docs/b.md": b"# B", "c.txt": b"c"})

        assert await storage.read("docs/a.md") == b"# A"
        assert [e.path for e in await storage.list("docs")] == ["docs/a.md", "docs/b.md"]

    @pytest.mark.asyncio
    async def test_missing_entry(self):
        """Test a missing entry raises IoError."""
        with pytest.raises(IoError):
            await InMemoryStorage().read("nope")


class TestSourceHandle:
    """Tests for source handles."""

    def test_name_is_last_path_component(self):
        """Test the handle name ignores directories and separators."""
        assert SourceHandle(InMemoryStorage(), "a/b/report.pdf").name == "report.pdf"
        assert SourceHandle(InMemoryStorage(), "a\\b\\report.pdf").name == "report.pdf"
