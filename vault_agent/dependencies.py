"""Shared dependencies: vault storage clients, errors and structured logger."""

import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol
from urllib.parse import quote

import httpx

from vault_agent.config import Settings, get_settings

if TYPE_CHECKING:
    from vault_agent.scan import ParseCache

# Attributes present on every LogRecord; anything else came in through `extra`
_RESERVED_LOG_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        data: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
        }
        data.update(
            {k: v for k, v in vars(record).items() if k not in _RESERVED_LOG_ATTRS}
        )
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


def setup_logging() -> logging.Logger:
    """Configure and return the application logger."""
    settings = get_settings()
    logger = logging.getLogger("vault_agent")
    logger.setLevel(getattr(logging, settings.log_level.upper()))
    logger.handlers.clear()
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    return logger


logger = setup_logging()


# =============================================================================
# Errors
# =============================================================================


class VaultError(Exception):
    """Base exception for vault operations."""

    pass


class VaultValidationError(VaultError):
    """Raised when a required parameter is missing or malformed."""

    pass


class VaultNotFoundError(VaultError):
    """Raised when a file, heading, block or task is not found in the vault."""

    pass


class VaultConflictError(VaultError):
    """Raised when a write would clobber something that already exists."""

    pass


class VaultSecurityError(VaultError):
    """Raised when a security violation is detected."""

    pass


# =============================================================================
# Storage
# =============================================================================


class VaultStorage(Protocol):
    """Capabilities the analysis engine needs from a note store.

    Listing order is backend-defined; callers must not rely on it being
    stable between calls.
    """

    async def list_files(self, folder: str = "") -> list[str]: ...

    async def read_file(self, path: str) -> str: ...

    async def write_file(self, path: str, content: str) -> None: ...

    async def file_exists(self, path: str) -> bool: ...


@dataclass
class VaultClient:
    """Client for a vault stored on the local filesystem."""

    vault_path: Path

    def _validate_path(self, relative_path: str) -> Path:
        """Validate and resolve a path within the vault.

        Args:
            relative_path: Relative path within the vault

        Returns:
            Resolved absolute path

        Raises:
            VaultSecurityError: If path traversal is detected
        """
        full_path = (self.vault_path / relative_path).resolve()
        if not full_path.is_relative_to(self.vault_path.resolve()):
            raise VaultSecurityError(f"Path traversal detected: {relative_path}")
        return full_path

    async def read_file(self, path: str) -> str:
        """Read a file from the vault.

        Args:
            path: Relative path to file

        Returns:
            File content as string

        Raises:
            VaultNotFoundError: If file does not exist
        """
        full_path = self._validate_path(path)
        if not full_path.is_file():
            raise VaultNotFoundError(f"File not found: {path}")
        return full_path.read_text(encoding="utf-8")

    async def write_file(self, path: str, content: str) -> None:
        """Write content to a file in the vault, creating parent folders.

        Args:
            path: Relative path to file
            content: Content to write
        """
        full_path = self._validate_path(path)
        full_path.parent.mkdir(parents=True, exist_ok=True)
        full_path.write_text(content, encoding="utf-8")

    async def file_exists(self, path: str) -> bool:
        """Check if a file exists in the vault."""
        try:
            return self._validate_path(path).is_file()
        except VaultSecurityError:
            return False

    async def list_files(self, folder: str = "", pattern: str = "*.md") -> list[str]:
        """List files in the vault matching a pattern.

        Args:
            folder: Folder to search in (empty for the whole vault)
            pattern: Glob pattern for files

        Returns:
            List of vault-relative POSIX paths
        """
        base = self._validate_path(folder) if folder else self.vault_path
        if not base.is_dir():
            return []
        return sorted(
            f.relative_to(self.vault_path).as_posix() for f in base.rglob(pattern) if f.is_file()
        )


@dataclass
class RestVaultClient:
    """Client for a vault served by the Obsidian Local REST API plugin.

    Every call opens a short-lived httpx.AsyncClient. The `transport`
    field exists so tests can plug in an httpx.MockTransport.
    """

    base_url: str
    api_key: str = ""
    verify_ssl: bool = False
    timeout: float = 30.0
    transport: httpx.AsyncBaseTransport | None = None

    def _client(self) -> httpx.AsyncClient:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        return httpx.AsyncClient(
            base_url=self.base_url.rstrip("/"),
            headers=headers,
            verify=self.verify_ssl,
            timeout=self.timeout,
            transport=self.transport,
        )

    @staticmethod
    def _raise_for_status(response: httpx.Response, path: str) -> None:
        if response.status_code == 404:
            raise VaultNotFoundError(f"File not found: {path}")
        if response.status_code == 409:
            raise VaultConflictError(f"Conflict writing: {path}")
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise VaultError(f"Obsidian API error for {path}: {e}") from e

    async def read_file(self, path: str) -> str:
        """Fetch raw markdown for one note.

        Raises:
            VaultNotFoundError: If the note does not exist
        """
        async with self._client() as client:
            response = await client.get(
                f"/vault/{quote(path)}", headers={"Accept": "text/markdown"}
            )
        self._raise_for_status(response, path)
        return response.text

    async def write_file(self, path: str, content: str) -> None:
        """Replace the full content of a note (creating it if missing)."""
        async with self._client() as client:
            response = await client.put(
                f"/vault/{quote(path)}",
                content=content.encode("utf-8"),
                headers={"Content-Type": "text/markdown"},
            )
        self._raise_for_status(response, path)

    async def file_exists(self, path: str) -> bool:
        """Check whether a note exists on the server."""
        try:
            await self.read_file(path)
        except VaultNotFoundError:
            return False
        return True

    async def list_files(self, folder: str = "") -> list[str]:
        """List markdown notes under a folder, walking subfolders.

        The API lists one directory level at a time; entries ending in
        '/' are folders.
        """
        results: list[str] = []
        pending = [folder.strip("/")]
        async with self._client() as client:
            while pending:
                current = pending.pop(0)
                url = f"/vault/{quote(current)}/" if current else "/vault/"
                response = await client.get(url)
                self._raise_for_status(response, current or "/")
                for entry in response.json().get("files", []):
                    full = f"{current}/{entry}" if current else entry
                    if entry.endswith("/"):
                        pending.append(full.rstrip("/"))
                    elif entry.endswith(".md"):
                        results.append(full)
        return results


def create_vault_client(settings: Settings) -> VaultStorage:
    """Build the storage backend selected in settings."""
    if settings.vault_backend == "rest":
        return RestVaultClient(
            base_url=settings.obsidian_api_url,
            api_key=settings.obsidian_api_key,
            verify_ssl=settings.obsidian_verify_ssl,
            timeout=settings.obsidian_timeout,
        )
    return VaultClient(vault_path=settings.vault_path)


async def get_vault_client() -> AsyncIterator[VaultStorage]:
    """FastAPI dependency provider for the configured vault backend."""
    yield create_vault_client(get_settings())


# =============================================================================
# Request-scoped dependencies
# =============================================================================


@dataclass(frozen=True)
class ScanLimits:
    """Caps applied to corpus-wide scans.

    Attributes:
        max_files: File cap for similarity, suggestion and graph scans
        task_max_files: File cap for task queries
        concept_max_files: File cap for concept related-note lookups
        timeout_seconds: Wall-time budget for a single scan
    """

    max_files: int = 100
    task_max_files: int = 50
    concept_max_files: int = 50
    timeout_seconds: float = 30.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScanLimits":
        return cls(
            max_files=settings.scan_max_files,
            task_max_files=settings.task_scan_max_files,
            concept_max_files=settings.concept_scan_max_files,
            timeout_seconds=settings.scan_timeout_seconds,
        )


@dataclass
class ChatDependencies:
    """Dependencies injected into agent tools via RunContext.

    This is defined here to avoid circular imports between chat.agent
    and the feature tool modules.
    """

    vault: VaultStorage
    trace_id: str
    limits: ScanLimits = field(default_factory=ScanLimits)
    cache: "ParseCache | None" = None


@lru_cache
def get_parse_cache() -> "ParseCache | None":
    """Process-wide parse cache, or None when caching is disabled."""
    from vault_agent.scan import ParseCache

    return ParseCache() if get_settings().parse_cache_enabled else None


def build_dependencies(vault: VaultStorage, trace_id: str) -> ChatDependencies:
    """Request-scoped dependencies with limits and cache taken from settings."""
    return ChatDependencies(
        vault=vault,
        trace_id=trace_id,
        limits=ScanLimits.from_settings(get_settings()),
        cache=get_parse_cache(),
    )
