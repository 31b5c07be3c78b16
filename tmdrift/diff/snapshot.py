"""Read-only snapshot trees over git commits and working directories.

The differ only needs names, node kinds and content digests, so both git tree
objects and plain directories are exposed through the same small node API.
Working-directory blobs are hashed the way git hashes blobs, so a file that
is unchanged since the last commit has the same digest on either kind of node.
"""

from __future__ import annotations

import hashlib
import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from functools import cached_property
from pathlib import Path

from git import InvalidGitRepositoryError, NoSuchPathError, Repo

from tmdrift.diff.models import NodeKind
from tmdrift.diff.path_classifier import split_path
from tmdrift.errors import InputValidationError

logger = logging.getLogger(__name__)

SKIP_NAMES = {".git"}


def git_blob_digest(data: bytes) -> str:
    """Return the SHA-1 git would assign to a blob with this content."""
    header = f"blob {len(data)}\0".encode()
    return hashlib.sha1(header + data).hexdigest()


class GitNode:
    """A blob or tree inside a git commit."""

    def __init__(self, obj, name: str | None = None):
        self._obj = obj
        self.name = obj.name if name is None else name
        self.kind = NodeKind.TREE if obj.type == "tree" else NodeKind.BLOB
        self.digest: str = obj.hexsha

    @cached_property
    def _children(self) -> dict[str, GitNode]:
        children = {}
        for item in self._obj:
            # Submodules (gitlinks) carry no content of their own
            if item.type in ("blob", "tree"):
                children[item.name] = GitNode(item)
        return children

    def children(self) -> dict[str, GitNode]:
        if self.kind != NodeKind.TREE:
            return {}
        return self._children

    def __repr__(self) -> str:
        return f"GitNode({self.kind} {self.name!r} {self.digest[:8]})"


class DirectoryNode:
    """A file or directory on disk, hashed lazily."""

    def __init__(self, path: Path):
        self.path = path
        self.name = path.name
        self.kind = NodeKind.TREE if path.is_dir() else NodeKind.BLOB

    @cached_property
    def digest(self) -> str:
        # Trees have no cheap digest on disk; callers always descend into them
        if self.kind == NodeKind.TREE:
            return ""
        return git_blob_digest(self.path.read_bytes())

    @cached_property
    def _children(self) -> dict[str, DirectoryNode]:
        children = {}
        with os.scandir(self.path) as entries:
            for entry in sorted(entries, key=lambda e: e.name):
                if entry.name in SKIP_NAMES:
                    continue
                if entry.is_dir(follow_symlinks=False) or entry.is_file():
                    children[entry.name] = DirectoryNode(Path(entry.path))
        return children

    def children(self) -> dict[str, DirectoryNode]:
        if self.kind != NodeKind.TREE:
            return {}
        return self._children

    def __repr__(self) -> str:
        return f"DirectoryNode({self.kind} {str(self.path)!r})"


def descend(node, path: str):
    """Follow ``path`` down from ``node``; return None if any segment is missing."""
    for part in split_path(path):
        if node is None or node.kind != NodeKind.TREE:
            return None
        node = node.children().get(part)
    return node


def validate_repository_path(repo_path: str | Path | None, role: str) -> Path:
    """Ensure a repository root was given and exists on disk."""
    if repo_path is None or not str(repo_path).strip():
        raise InputValidationError(f"{role} repository path is required")
    path = Path(repo_path)
    if not path.is_dir():
        raise InputValidationError(f"{role} repository path does not exist: {path}")
    return path


@contextmanager
def open_snapshot(repo_path: str | Path, include_uncommitted: bool = False) -> Iterator:
    """Open the root node of a repository snapshot.

    With ``include_uncommitted`` the working tree is read as it is on disk
    (committed and uncommitted files alike) and the path does not need to be
    a git repository. Otherwise the HEAD commit tree is used, and a
    repository without commits yields ``None`` (an empty snapshot).

    Each call opens its own ``Repo``; handles are not shared across threads.

    Raises:
        InputValidationError: If the path is missing or not a git repository.
    """
    path = Path(repo_path)
    if include_uncommitted:
        if not path.is_dir():
            raise InputValidationError(f"Snapshot root does not exist: {path}")
        yield DirectoryNode(path)
        return

    try:
        repo = Repo(path)
    except (InvalidGitRepositoryError, NoSuchPathError):
        raise InputValidationError(f"Not a git repository: {path}")

    with repo:
        tree = _head_tree(repo)
        yield GitNode(tree, name="") if tree is not None else None


@contextmanager
def open_commit(repo_path: str | Path, rev: str) -> Iterator[GitNode]:
    """Open the root tree of a specific commit."""
    with Repo(repo_path) as repo:
        yield GitNode(repo.commit(rev).tree, name="")


def _head_tree(repo: Repo):
    try:
        return repo.head.commit.tree
    except ValueError:
        logger.info("Repository %s has no commits; treating it as empty", repo.working_dir)
        return None
