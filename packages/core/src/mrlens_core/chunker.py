"""Split a merge request's file changes into bounded review chunks."""

from __future__ import annotations

from mrlens_core.models import Chunk, FileChange


def chunk_changes(changes: list[FileChange], max_files: int, max_lines: int) -> list[Chunk]:
    """Greedily pack file changes, in order, into chunks.

    A chunk is closed before a file that would push it past max_files, or
    past max_lines when it already holds at least one file. A file that is
    larger than max_lines on its own therefore still gets a chunk to itself
    and is never dropped. Files are never reordered.
    """
    if max_files < 1:
        raise ValueError(f"max_files must be at least 1, got {max_files}")
    if max_lines < 1:
        raise ValueError(f"max_lines must be at least 1, got {max_lines}")

    groups: list[list[FileChange]] = []
    current: list[FileChange] = []
    current_lines = 0

    for change in changes:
        too_many_files = len(current) + 1 > max_files
        too_many_lines = bool(current) and current_lines + change.line_count > max_lines
        if too_many_files or too_many_lines:
            groups.append(current)
            current = []
            current_lines = 0

        current.append(change)
        current_lines += change.line_count

    if current:
        groups.append(current)

    return [Chunk(index=i, files=tuple(files)) for i, files in enumerate(groups)]
