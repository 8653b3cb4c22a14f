"""File sources: where the set of changed files for a review run comes from."""

from __future__ import annotations

import logging
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path

from revlens_core.errors import FileSourceError
from revlens_core.models import ModifiedFile
from revlens_core.utils.code import is_code_file, is_excluded

logger = logging.getLogger(__name__)

# Index/worktree states from `git status --porcelain` that denote a tracked file
# whose content differs from HEAD. Deletions and untracked files are ignored.
_CHANGED_STATES = set("MARC")


class FileSource(ABC):
    @abstractmethod
    def list_modified_files(self, project_id: str) -> list[ModifiedFile]:
        """Return the changed files of ``project_id``, sorted by path."""


class GitFileSource(FileSource):
    """Changed files of a local git working tree, relative to HEAD."""

    def __init__(self, repo_path: str = ".", exclude: list[str] | None = None):
        self.repo_path = Path(repo_path)
        self.exclude = list(exclude or [])

    def list_modified_files(self, project_id: str) -> list[ModifiedFile]:
        files = []
        for path in sorted(self._changed_paths()):
            if not is_code_file(path) or is_excluded(path, self.exclude):
                logger.debug("Skipping %s (excluded or not a code file)", path)
                continue
            current = self._read_worktree(path)
            if not current.strip():
                logger.debug("Skipping %s (empty)", path)
                continue
            files.append(ModifiedFile(file_path=path, current_content=current, original_content=self._read_head(path)))
        logger.info("%d modified file(s) in %s for project %s", len(files), self.repo_path, project_id)
        return files

    def _git(self, *args: str) -> str:
        try:
            proc = subprocess.run(
                ["git", *args],
                cwd=self.repo_path,
                capture_output=True,
                check=True,
            )
        except FileNotFoundError as e:
            raise FileSourceError("git executable not found on PATH.") from e
        except subprocess.CalledProcessError as e:
            stderr = e.stderr.decode("utf-8", errors="replace").strip()
            raise FileSourceError(f"git {args[0]} failed in {self.repo_path}: {stderr}") from e
        return proc.stdout.decode("utf-8", errors="replace")

    def _changed_paths(self) -> list[str]:
        # -z keeps paths unquoted; renames/copies are followed by their source path.
        entries = self._git("status", "--porcelain", "-z").split("\0")
        paths = []
        i = 0
        while i < len(entries):
            entry = entries[i]
            i += 1
            if len(entry) < 4:
                continue
            index_state, worktree_state, path = entry[0], entry[1], entry[3:]
            if index_state in "RC" or worktree_state in "RC":
                i += 1
            if "D" in (index_state, worktree_state) or index_state == "?":
                continue
            if index_state in _CHANGED_STATES or worktree_state in _CHANGED_STATES:
                paths.append(path)
        return paths

    def _read_worktree(self, path: str) -> str:
        try:
            return (self.repo_path / path).read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise FileSourceError(f"Could not read {path}: {e}") from e

    def _read_head(self, path: str) -> str:
        try:
            return self._git("show", f"HEAD:{path}")
        except FileSourceError:
            # Newly added files have no HEAD version.
            return ""
