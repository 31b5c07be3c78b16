"""Tree differ: compare two snapshot trees without checking anything out.

Three strategies are provided, all reporting forward-slash relative paths:

- ``compare_trees``: full recursive walk over the union of child names.
- ``compare_by_prefix``: flat comparison of one folder, restricted to files
  whose leading id (text before the first ``_``) is in a prefix set.
- ``compare_with_exclusions``: full walk that skips a set of names at any depth.

``GitFolderDiff`` wraps these strategies at repository level.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from tmdrift.diff.models import FolderDiffReport, KindChange, NodeKind
from tmdrift.diff.snapshot import descend, open_snapshot, validate_repository_path
from tmdrift.errors import InputValidationError

logger = logging.getLogger(__name__)


# ── Node-level strategies ────────────────────────────────────────────


def compare_trees(
    baseline,
    target,
    relative_root: str = "",
    ignore: Iterable[str] | None = None,
) -> FolderDiffReport:
    """Recursively compare two snapshot trees.

    Either side may be ``None`` (absent), in which case every blob on the
    other side is reported as wholly added or wholly deleted.

    Args:
        baseline: Baseline tree node, or None.
        target: Target tree node, or None.
        relative_root: Path of both nodes relative to the repository root.
        ignore: Names to skip at any depth (case-insensitive).
    """
    report = FolderDiffReport()
    ignored = {name.lower() for name in ignore or ()}
    root = relative_root.replace("\\", "/").strip("/")

    if baseline is not None and target is not None and baseline.kind != target.kind:
        report.modified.append(root)
        report.kind_changes.append(KindChange(root, baseline.kind, target.kind))
        return report

    if baseline is None and target is None:
        return report
    if baseline is None:
        _collect(target, root, report.added, ignored)
    elif target is None:
        _collect(baseline, root, report.deleted, ignored)
    else:
        _walk(baseline, target, root, report, ignored)
    return report


def compare_with_exclusions(
    baseline, target, ignore: Iterable[str], relative_root: str = ""
) -> FolderDiffReport:
    """Full recursive compare that skips every name in ``ignore``."""
    return compare_trees(baseline, target, relative_root, ignore=ignore)


def compare_by_prefix(
    baseline, target, folder: str, prefixes: Iterable[str]
) -> FolderDiffReport:
    """Compare the blobs directly inside ``folder`` whose leading id is in ``prefixes``.

    ``baseline`` and ``target`` are the folder nodes themselves (or None).
    Subfolders are ignored; mapping folders are flat.
    """
    wanted = set(prefixes)
    folder = folder.replace("\\", "/").strip("/")
    report = FolderDiffReport()

    baseline_blobs = _prefixed_blobs(baseline, wanted)
    target_blobs = _prefixed_blobs(target, wanted)

    for name in sorted(baseline_blobs.keys() | target_blobs.keys()):
        path = _join(folder, name)
        old = baseline_blobs.get(name)
        new = target_blobs.get(name)
        if old is None:
            report.added.append(path)
        elif new is None:
            report.deleted.append(path)
        elif old.digest != new.digest:
            report.modified.append(path)
    return report


def leading_id(filename: str) -> str | None:
    """Return the text before the first ``_``, or None if there is none."""
    index = filename.find("_")
    return filename[:index] if index > 0 else None


def _prefixed_blobs(node, prefixes: set[str]) -> dict:
    if node is None or node.kind != NodeKind.TREE:
        return {}
    return {
        name: child
        for name, child in node.children().items()
        if child.kind == NodeKind.BLOB and leading_id(name) in prefixes
    }


def _walk(baseline, target, prefix: str, report: FolderDiffReport, ignored: set[str]) -> None:
    old_children = baseline.children()
    new_children = target.children()

    for name in sorted(old_children.keys() | new_children.keys()):
        if name.lower() in ignored:
            continue
        path = _join(prefix, name)
        old = old_children.get(name)
        new = new_children.get(name)

        if old is None:
            _collect(new, path, report.added, ignored)
        elif new is None:
            _collect(old, path, report.deleted, ignored)
        elif old.kind != new.kind:
            report.modified.append(path)
            report.kind_changes.append(KindChange(path, old.kind, new.kind))
        elif old.kind == NodeKind.BLOB:
            if old.digest != new.digest:
                report.modified.append(path)
        elif old.digest and old.digest == new.digest:
            continue  # identical subtree
        else:
            _walk(old, new, path, report, ignored)


def _collect(node, path: str, out: list[str], ignored: set[str]) -> None:
    """Append every blob under ``node`` to ``out``."""
    if node.kind == NodeKind.BLOB:
        out.append(path)
        return
    for name, child in sorted(node.children().items()):
        if name.lower() in ignored:
            continue
        _collect(child, _join(path, name), out, ignored)


def _join(prefix: str, name: str) -> str:
    return f"{prefix}/{name}" if prefix else name


# ── Repository-level API ─────────────────────────────────────────────


class GitFolderDiff:
    """Compare folders of two repositories at tree level.

    Every call opens its own repository handles, so one instance can be
    used from several worker threads at once.
    """

    def __init__(self, include_uncommitted: bool = False):
        self.include_uncommitted = include_uncommitted

    def compare_folders(
        self,
        baseline_repo: str | Path,
        target_repo: str | Path,
        folders: Iterable[str],
    ) -> FolderDiffReport:
        """Full recursive comparison of each folder, merged into one report."""
        baseline_path = validate_repository_path(baseline_repo, "Baseline")
        target_path = validate_repository_path(target_repo, "Target")
        folders = [f for f in (folders or []) if f and f.strip()]
        if not folders:
            raise InputValidationError("At least one folder is required")

        reports = []
        with open_snapshot(baseline_path, self.include_uncommitted) as baseline_root, \
                open_snapshot(target_path, self.include_uncommitted) as target_root:
            for folder in folders:
                reports.append(
                    compare_trees(
                        folder_node(baseline_root, folder),
                        folder_node(target_root, folder),
                        folder,
                    )
                )

        report = FolderDiffReport.merge_all(baseline_path, target_path, reports)
        logger.debug(
            "Compared folders %s: %d added, %d deleted, %d modified",
            folders, len(report.added), len(report.deleted), len(report.modified),
        )
        return report

    def compare_by_prefix(
        self,
        baseline_repo: str | Path,
        target_repo: str | Path,
        folder: str,
        prefixes: Iterable[str],
    ) -> FolderDiffReport:
        """Prefix-filtered comparison of one flat folder."""
        baseline_path = validate_repository_path(baseline_repo, "Baseline")
        target_path = validate_repository_path(target_repo, "Target")
        if not folder or not folder.strip():
            raise InputValidationError("Folder path is required")
        prefixes = {str(p) for p in (prefixes or [])}
        if not prefixes:
            raise InputValidationError("At least one prefix is required")

        with open_snapshot(baseline_path, self.include_uncommitted) as baseline_root, \
                open_snapshot(target_path, self.include_uncommitted) as target_root:
            report = compare_by_prefix(
                folder_node(baseline_root, folder),
                folder_node(target_root, folder),
                folder,
                prefixes,
            )

        report.baseline_root = baseline_path
        report.target_root = target_path
        return report

    def compare_with_exclusions(
        self,
        baseline_repo: str | Path,
        target_repo: str | Path,
        ignore: Iterable[str],
    ) -> FolderDiffReport:
        """Compare whole repositories, skipping ``ignore`` names at any depth."""
        baseline_path = validate_repository_path(baseline_repo, "Baseline")
        target_path = validate_repository_path(target_repo, "Target")

        with open_snapshot(baseline_path, self.include_uncommitted) as baseline_root, \
                open_snapshot(target_path, self.include_uncommitted) as target_root:
            report = compare_with_exclusions(baseline_root, target_root, ignore or ())

        report.baseline_root = baseline_path
        report.target_root = target_path
        return report


def folder_node(root, folder: str):
    node = descend(root, folder)
    if node is not None and node.kind != NodeKind.TREE:
        logger.warning("Expected a folder at %s but found a file; ignoring it", folder)
        return None
    return node
