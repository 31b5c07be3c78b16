"""Folder-to-folder comparison through a scratch repository.

Two plain directories are committed, one after the other, into a throwaway
git repository under the temp directory. The two commit trees are then
compared with the tree differ, so unchanged files are never read twice.
Neither input directory is modified.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from collections.abc import Iterable
from pathlib import Path

from git import Actor, Repo

from tmdrift.diff.models import FolderDiffReport
from tmdrift.diff.snapshot import SKIP_NAMES, open_commit, validate_repository_path
from tmdrift.diff.tree_differ import compare_trees, folder_node

logger = logging.getLogger(__name__)

SNAPSHOT_AUTHOR = Actor("tmdrift", "tmdrift@localhost")


def compare_directories(
    baseline_dir: str | Path,
    target_dir: str | Path,
    folders: Iterable[str] | None = None,
) -> FolderDiffReport:
    """Compare two directories as if they were two commits of one repository.

    Args:
        baseline_dir: Directory holding the baseline content.
        target_dir: Directory holding the target content.
        folders: Folders to compare. Compares everything when omitted.

    Returns:
        A report whose roots are the two input directories, so changed
        documents can be read straight from them.
    """
    baseline_path = validate_repository_path(baseline_dir, "Baseline")
    target_path = validate_repository_path(target_dir, "Target")

    arena = Path(tempfile.mkdtemp(prefix="tmdrift_"))
    try:
        repo = Repo.init(arena)
        with repo:
            baseline_rev = _commit_snapshot(repo, baseline_path, "baseline snapshot")
            target_rev = _commit_snapshot(repo, target_path, "target snapshot")

        with open_commit(arena, baseline_rev) as baseline_root, \
                open_commit(arena, target_rev) as target_root:
            if folders:
                reports = [
                    compare_trees(
                        folder_node(baseline_root, folder),
                        folder_node(target_root, folder),
                        folder,
                    )
                    for folder in folders
                ]
            else:
                reports = [compare_trees(baseline_root, target_root)]
    finally:
        shutil.rmtree(arena, ignore_errors=True)

    report = FolderDiffReport.merge_all(baseline_path, target_path, reports)
    logger.info(
        "Directory comparison %s -> %s: %d added, %d deleted, %d modified",
        baseline_path, target_path,
        len(report.added), len(report.deleted), len(report.modified),
    )
    return report


def _commit_snapshot(repo: Repo, source: Path, message: str) -> str:
    """Replace the arena work tree with ``source`` and commit it."""
    work_tree = Path(repo.working_tree_dir)
    for entry in work_tree.iterdir():
        if entry.name in SKIP_NAMES:
            continue
        if entry.is_dir():
            shutil.rmtree(entry)
        else:
            entry.unlink()

    shutil.copytree(
        source,
        work_tree,
        ignore=shutil.ignore_patterns(*SKIP_NAMES),
        dirs_exist_ok=True,
    )
    repo.git.add("--all")
    commit = repo.index.commit(
        message, author=SNAPSHOT_AUTHOR, committer=SNAPSHOT_AUTHOR
    )
    return commit.hexsha
