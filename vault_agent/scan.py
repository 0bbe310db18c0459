"""Bounded corpus scans over the vault.

Every analytical operation that looks at more than one note goes through
`scan_vault`. A scan lists candidate notes, applies the configured file
cap, then fetches note bodies one at a time under a wall-time budget.
Hitting either limit truncates the scan instead of failing it, and a note
that cannot be read is logged and skipped. The returned `VaultScan`
records exactly how many notes were read so callers can report partial
results honestly.
"""

import asyncio
import hashlib
from dataclasses import dataclass, field

from vault_agent.dependencies import VaultStorage, logger
from vault_agent.markdown.models import Token
from vault_agent.markdown.tokenizer import tokenize


@dataclass
class ParseCache:
    """Memoizes tokenization keyed by (path, content hash).

    Purely a performance layer: a changed note hashes differently, so a
    stale entry can never be returned. `invalidate` drops entries for a
    path after a write to keep memory bounded.
    """

    _entries: dict[tuple[str, str], list[Token]] = field(default_factory=dict)
    hits: int = 0
    misses: int = 0

    def tokens(self, path: str, text: str) -> list[Token]:
        key = (path, hashlib.sha256(text.encode("utf-8")).hexdigest())
        cached = self._entries.get(key)
        if cached is not None:
            self.hits += 1
            return cached
        self.misses += 1
        tokens = tokenize(text)
        self._entries[key] = tokens
        return tokens

    def invalidate(self, path: str) -> None:
        for key in [k for k in self._entries if k[0] == path]:
            del self._entries[key]


@dataclass
class VaultScan:
    """Notes fetched by one scan.

    Attributes:
        notes: Path to raw text, in listing order
        files_listed: Candidates the storage backend returned
        failed: Paths that could not be read
        truncated: True when the file cap or time budget cut the scan short
        cache: Optional parse cache shared with the caller
    """

    notes: dict[str, str] = field(default_factory=dict)
    files_listed: int = 0
    failed: list[str] = field(default_factory=list)
    truncated: bool = False
    cache: ParseCache | None = None

    @property
    def files_searched(self) -> int:
        """Number of notes actually read."""
        return len(self.notes)

    @property
    def paths(self) -> list[str]:
        return list(self.notes)

    def tokens(self, path: str) -> list[Token]:
        """Tokenize a scanned note, through the cache when one is attached."""
        text = self.notes[path]
        if self.cache is not None:
            return self.cache.tokens(path, text)
        return tokenize(text)


def is_excluded(path: str, exclude_folders: list[str] | None) -> bool:
    """Check whether a path sits under any excluded folder."""
    if not exclude_folders:
        return False
    return any(path.startswith(f"{folder.strip('/')}/") for folder in exclude_folders if folder)


async def scan_vault(
    vault: VaultStorage,
    *,
    folder: str = "",
    max_files: int = 100,
    timeout_seconds: float = 30.0,
    trace_id: str = "",
    exclude_folders: list[str] | None = None,
    skip: set[str] | None = None,
    cache: ParseCache | None = None,
) -> VaultScan:
    """Fetch up to `max_files` notes from the vault.

    Args:
        vault: Storage backend
        folder: Folder prefix to scan (empty for the whole vault)
        max_files: Candidate cap applied after listing and exclusion
        timeout_seconds: Wall-time budget for fetching note bodies
        trace_id: Request trace id for logging
        exclude_folders: Folder prefixes to leave out
        skip: Exact paths to leave out (e.g. the note being analysed)
        cache: Optional parse cache attached to the result

    Returns:
        VaultScan with the notes that were read
    """
    listed = await vault.list_files(folder)
    candidates = [
        p for p in listed if not is_excluded(p, exclude_folders) and not (skip and p in skip)
    ]
    scan = VaultScan(files_listed=len(listed), cache=cache)

    if len(candidates) > max_files:
        scan.truncated = True
        logger.info(
            "scan_truncated",
            extra={
                "reason": "file_cap",
                "candidates": len(candidates),
                "max_files": max_files,
                "trace_id": trace_id,
            },
        )
        candidates = candidates[:max_files]

    try:
        async with asyncio.timeout(timeout_seconds):
            for path in candidates:
                try:
                    scan.notes[path] = await vault.read_file(path)
                except Exception as e:
                    scan.failed.append(path)
                    logger.warning(
                        "scan_file_error",
                        extra={"path": path, "error": str(e), "trace_id": trace_id},
                    )
    except TimeoutError:
        scan.truncated = True
        logger.warning(
            "scan_truncated",
            extra={
                "reason": "timeout",
                "files_searched": scan.files_searched,
                "timeout_seconds": timeout_seconds,
                "trace_id": trace_id,
            },
        )

    return scan
