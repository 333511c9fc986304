"""Collection of prompt text and in-scope files for one activation."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any

from .models import PromptContext, VisibleFile

logger = logging.getLogger(__name__)

# Characters trimmed from either end of a whitespace-separated prompt token
TOKEN_STRIP_CHARS = "`'\"()[]{}<>,;:!?"

PATH_TOKEN_PATTERN = re.compile(r"^[\w@~+\-./\\]+$")


def strip_trailing_newline(text: str) -> str:
    """Remove exactly one trailing newline, if present."""
    if text.endswith("\r\n"):
        return text[:-2]
    if text.endswith("\n"):
        return text[:-1]
    return text


def find_path_references(prompt_text: str, project_root: Path) -> list[Path]:
    """Find existing files under the project root mentioned in the prompt.

    Args:
        prompt_text: Prompt to scan
        project_root: Directory that referenced paths must resolve inside

    Returns:
        Referenced files in order of first mention
    """
    root = project_root.resolve()
    found: list[Path] = []
    for raw in prompt_text.split():
        token = raw.strip(TOKEN_STRIP_CHARS).rstrip(".")
        if not token or ("/" not in token and "." not in token):
            continue
        if not PATH_TOKEN_PATTERN.match(token):
            continue
        candidate = Path(token).expanduser()
        if not candidate.is_absolute():
            candidate = root / candidate
        try:
            resolved = candidate.resolve()
            resolved.relative_to(root)
        except (OSError, ValueError):
            continue
        if resolved.is_file() and resolved not in found:
            found.append(resolved)
    return found


class ContextGatherer:
    """Builds a PromptContext from the prompt and files in view.

    The list of files in view comes from the caller (editor or session
    state). Files are only ever read, never written.
    """

    def __init__(
        self,
        prompt_text: str,
        file_paths: Iterable[Path | str] = (),
        project_root: Path | None = None,
        include_prompt_references: bool = False,
        max_file_size_bytes: int = 1024 * 1024,
        max_files: int = 50,
        read_workers: int = 4,
    ) -> None:
        """Initialize gatherer.

        Args:
            prompt_text: Raw prompt submitted by the user
            file_paths: Files considered in view for this turn
            project_root: Root that file paths are reported relative to
            include_prompt_references: Also read files mentioned by path in the prompt
            max_file_size_bytes: Larger files are skipped
            max_files: Upper bound on the number of files read
            read_workers: Thread count for parallel reads
        """
        self.prompt_text = prompt_text
        self.file_paths = list(file_paths)
        self.project_root = Path(project_root) if project_root else Path.cwd()
        self.include_prompt_references = include_prompt_references
        self.max_file_size_bytes = max_file_size_bytes
        self.max_files = max_files
        self.read_workers = max(1, read_workers)

    @classmethod
    def from_hook_payload(
        cls,
        payload: Mapping[str, Any],
        **kwargs: Any,
    ) -> ContextGatherer:
        """Create a gatherer from a UserPromptSubmit hook payload.

        Uses ``prompt``, ``cwd`` (as project root unless one is given) and an
        optional ``files`` list.
        """
        files = payload.get("files") or []
        if not isinstance(files, list):
            files = []
        if "project_root" not in kwargs and payload.get("cwd"):
            kwargs["project_root"] = Path(str(payload["cwd"]))
        return cls(
            prompt_text=str(payload.get("prompt") or ""),
            file_paths=[str(f) for f in files],
            **kwargs,
        )

    def gather(self) -> PromptContext:
        """Snapshot the prompt and visible files.

        Returns:
            Context with unique file paths in request order
        """
        prompt = strip_trailing_newline(self.prompt_text)

        paths = [self._absolute(p) for p in self.file_paths]
        if self.include_prompt_references:
            paths.extend(find_path_references(prompt, self.project_root))

        unique: dict[str, Path] = {}
        for path in paths:
            unique.setdefault(self._label(path), path)

        if len(unique) > self.max_files:
            logger.warning(
                "Reading only the first %d of %d visible files",
                self.max_files,
                len(unique),
            )
        selected = list(unique.items())[: self.max_files]

        if not selected:
            return PromptContext(prompt_text=prompt)

        with ThreadPoolExecutor(max_workers=min(self.read_workers, len(selected))) as pool:
            results = list(pool.map(lambda item: self._read(*item), selected))

        return PromptContext(
            prompt_text=prompt,
            visible_files=[f for f in results if f is not None],
        )

    def _absolute(self, path: Path | str) -> Path:
        path = Path(path).expanduser()
        return path if path.is_absolute() else self.project_root / path

    def _label(self, path: Path) -> str:
        try:
            return path.resolve().relative_to(self.project_root.resolve()).as_posix()
        except (OSError, ValueError):
            return path.as_posix()

    def _read(self, label: str, path: Path) -> VisibleFile | None:
        try:
            if not path.is_file():
                logger.warning("Skipping missing or non-regular file: %s", label)
                return None
            size = path.stat().st_size
            if size > self.max_file_size_bytes:
                logger.warning("Skipping large file %s (%d bytes)", label, size)
                return None
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.warning("Skipping unreadable file %s: %s", label, e)
            return None
        return VisibleFile(path=label, content=content)
