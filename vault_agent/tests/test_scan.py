"""Tests for bounded vault scans and the parse cache."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from vault_agent.dependencies import VaultNotFoundError
from vault_agent.scan import ParseCache, VaultScan, is_excluded, scan_vault


def _storage(notes: dict[str, str], failing: set[str] | None = None) -> Mock:
    """Mock storage backend serving `notes`; paths in `failing` raise on read."""
    storage = Mock()
    storage.list_files = AsyncMock(return_value=list(notes))

    async def read_file(path: str) -> str:
        if failing and path in failing:
            raise VaultNotFoundError(f"File not found: {path}")
        return notes[path]

    storage.read_file = AsyncMock(side_effect=read_file)
    return storage


class TestScanVault:
    """Tests for scan_vault()."""

    @pytest.mark.asyncio
    async def test_reads_all_notes(self) -> None:
        """Test every listed note is read in listing order."""
        storage = _storage({"b.md": "B", "a.md": "A"})
        scan = await scan_vault(storage)

        assert scan.paths == ["b.md", "a.md"]
        assert scan.files_searched == 2
        assert scan.files_listed == 2
        assert scan.truncated is False

    @pytest.mark.asyncio
    async def test_failed_read_is_skipped(self) -> None:
        """Test unreadable notes are skipped and not counted as searched."""
        storage = _storage({"a.md": "A", "b.md": "B", "c.md": "C"}, failing={"b.md"})
        scan = await scan_vault(storage)

        assert scan.paths == ["a.md", "c.md"]
        assert scan.failed == ["b.md"]
        assert scan.files_searched == 2

    @pytest.mark.asyncio
    async def test_file_cap_truncates(self) -> None:
        """Test the file cap limits reads and marks the scan truncated."""
        storage = _storage({f"{i}.md": str(i) for i in range(5)})
        scan = await scan_vault(storage, max_files=3)

        assert scan.files_searched == 3
        assert scan.truncated is True
        assert storage.read_file.await_count == 3

    @pytest.mark.asyncio
    async def test_timeout_truncates(self) -> None:
        """Test the time budget stops the scan without raising."""
        storage = Mock()
        storage.list_files = AsyncMock(return_value=["a.md", "b.md"])

        async def slow_read(path: str) -> str:
            await asyncio.sleep(1)
            return path

        storage.read_file = AsyncMock(side_effect=slow_read)
        scan = await scan_vault(storage, timeout_seconds=0.05)

        assert scan.truncated is True
        assert scan.files_searched == 0

    @pytest.mark.asyncio
    async def test_exclude_and_skip(self) -> None:
        """Test excluded folders and skipped paths are not read."""
        storage = _storage({"Archive/x.md": "x", "Notes/y.md": "y", "z.md": "z"})
        scan = await scan_vault(storage, exclude_folders=["Archive/"], skip={"z.md"})

        assert scan.paths == ["Notes/y.md"]

    @pytest.mark.asyncio
    async def test_folder_passed_to_listing(self) -> None:
        """Test the folder prefix is forwarded to the backend."""
        storage = _storage({})
        await scan_vault(storage, folder="Projects")

        storage.list_files.assert_awaited_once_with("Projects")

    def test_is_excluded(self) -> None:
        """Test folder exclusion matches whole path segments."""
        assert is_excluded("Archive/x.md", ["Archive"]) is True
        assert is_excluded("Archived/x.md", ["Archive"]) is False
        assert is_excluded("x.md", None) is False


class TestParseCache:
    """Tests for ParseCache."""

    def test_hit_on_same_content(self) -> None:
        """Test unchanged content is tokenized once."""
        cache = ParseCache()
        first = cache.tokens("a.md", "#tag [[Link]]")
        second = cache.tokens("a.md", "#tag [[Link]]")

        assert first is second
        assert (cache.hits, cache.misses) == (1, 1)

    def test_changed_content_misses(self) -> None:
        """Test edited content is tokenized again."""
        cache = ParseCache()
        cache.tokens("a.md", "#old")
        tokens = cache.tokens("a.md", "#new")

        assert tokens[0].value == "new"
        assert cache.misses == 2

    def test_invalidate(self) -> None:
        """Test invalidation drops entries for one path only."""
        cache = ParseCache()
        cache.tokens("a.md", "#a")
        cache.tokens("b.md", "#b")
        cache.invalidate("a.md")
        cache.tokens("a.md", "#a")
        cache.tokens("b.md", "#b")

        assert (cache.hits, cache.misses) == (1, 3)

    def test_scan_uses_cache(self) -> None:
        """Test scans tokenize through an attached cache."""
        cache = ParseCache()
        scan = VaultScan(notes={"a.md": "#a"}, cache=cache)
        scan.tokens("a.md")
        scan.tokens("a.md")

        assert cache.hits == 1
