"""Tests for chunk_changes."""

import pytest

from mrlens_core.chunker import chunk_changes
from mrlens_core.models import FileChange


def make_change(path, added=1, removed=0):
    return FileChange(path=path, added_lines=added, removed_lines=removed)


def flatten(chunks):
    return [f for chunk in chunks for f in chunk.files]


class TestScenarios:
    def test_two_files_over_line_limit_split(self):
        changes = [make_change("a.js", added=500), make_change("b.js", added=600)]
        chunks = chunk_changes(changes, max_files=10, max_lines=1000)
        assert [[f.path for f in c.files] for c in chunks] == [["a.js"], ["b.js"]]

    def test_fifteen_small_files_split_ten_and_five(self):
        changes = [make_change(f"f{i}.py") for i in range(15)]
        chunks = chunk_changes(changes, max_files=10, max_lines=1000)
        assert [len(c.files) for c in chunks] == [10, 5]

    def test_empty_input_gives_no_chunks(self):
        assert chunk_changes([], max_files=10, max_lines=1000) == []

    def test_oversized_file_gets_its_own_chunk(self):
        changes = [make_change("small.py", added=10), make_change("huge.py", added=5000), make_change("tail.py")]
        chunks = chunk_changes(changes, max_files=10, max_lines=1000)
        assert [[f.path for f in c.files] for c in chunks] == [["small.py"], ["huge.py"], ["tail.py"]]

    def test_oversized_first_file_is_not_dropped(self):
        chunks = chunk_changes([make_change("huge.py", added=2000)], max_files=10, max_lines=1000)
        assert len(chunks) == 1
        assert chunks[0].files[0].path == "huge.py"

    def test_exactly_at_line_limit_stays_together(self):
        changes = [make_change("a.py", added=400, removed=100), make_change("b.py", added=500)]
        chunks = chunk_changes(changes, max_files=10, max_lines=1000)
        assert len(chunks) == 1

    def test_removed_lines_count_toward_limit(self):
        changes = [make_change("a.py", added=0, removed=600), make_change("b.py", added=0, removed=600)]
        assert len(chunk_changes(changes, max_files=10, max_lines=1000)) == 2

    def test_chunks_are_indexed_in_order(self):
        changes = [make_change(f"f{i}.py") for i in range(7)]
        chunks = chunk_changes(changes, max_files=2, max_lines=1000)
        assert [c.index for c in chunks] == [0, 1, 2, 3]

    def test_deterministic(self):
        changes = [make_change(f"f{i}.py", added=i * 37 % 400) for i in range(30)]
        assert chunk_changes(changes, 4, 500) == chunk_changes(changes, 4, 500)

    @pytest.mark.parametrize("max_files,max_lines", [(0, 1000), (10, 0), (-1, -1)])
    def test_rejects_non_positive_limits(self, max_files, max_lines):
        with pytest.raises(ValueError):
            chunk_changes([make_change("a.py")], max_files=max_files, max_lines=max_lines)


INPUTS = [
    [make_change(f"f{i}.py", added=i % 7 * 150, removed=i % 3 * 40) for i in range(25)],
    [make_change(f"g{i}.py", added=1200 if i % 4 == 0 else 90) for i in range(12)],
    [make_change("only.py", added=3)],
    [make_change(f"z{i}.py", added=0) for i in range(23)],
]


class TestProperties:
    @pytest.mark.parametrize("changes", INPUTS)
    @pytest.mark.parametrize("max_files,max_lines", [(10, 1000), (3, 300), (1, 1)])
    def test_concatenation_reconstructs_input(self, changes, max_files, max_lines):
        chunks = chunk_changes(changes, max_files, max_lines)
        assert flatten(chunks) == changes

    @pytest.mark.parametrize("changes", INPUTS)
    @pytest.mark.parametrize("max_files,max_lines", [(10, 1000), (3, 300), (1, 1)])
    def test_every_chunk_within_limits_or_single_file(self, changes, max_files, max_lines):
        for chunk in chunk_changes(changes, max_files, max_lines):
            assert 1 <= len(chunk.files) <= max_files
            assert chunk.line_count <= max_lines or len(chunk.files) == 1
