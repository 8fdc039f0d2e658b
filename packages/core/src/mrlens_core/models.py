"""Data records that flow through the review pipeline.

Everything the pipeline produces is frozen: a FileChange is fixed once it is
fetched and a review result is fixed once a chunk call (or the reducer)
returns it.
"""

from __future__ import annotations

from dataclasses import dataclass, field

SEVERITIES = ("high", "medium", "low")

APPROVE = "approve"
COMMENT = "comment"
REQUEST_CHANGES = "request-changes"
RECOMMENDATIONS = (APPROVE, COMMENT, REQUEST_CHANGES)

# Only this many commit messages are kept as prompt context.
MAX_COMMIT_MESSAGES = 5


@dataclass(frozen=True)
class MergeRequestRef:
    """Where a merge request lives, parsed from its web URL."""

    base_url: str
    project_path: str
    iid: int
    url: str


@dataclass(frozen=True)
class FileChange:
    path: str
    added_lines: int = 0
    removed_lines: int = 0
    diff: str = ""
    is_new: bool = False
    is_deleted: bool = False
    is_renamed: bool = False

    @property
    def line_count(self) -> int:
        return self.added_lines + self.removed_lines


@dataclass(frozen=True)
class Chunk:
    """A group of file changes sent to the model in a single request."""

    index: int
    files: tuple[FileChange, ...]

    @property
    def line_count(self) -> int:
        return sum(f.line_count for f in self.files)


@dataclass(frozen=True)
class MergeRequestContext:
    """Merge-request-wide facts repeated in every chunk prompt.

    The addition/deletion tally covers every changed file of the merge
    request, not only the files of the chunk being reviewed.
    """

    title: str
    description: str = ""
    source_branch: str = ""
    target_branch: str = ""
    author: str | None = None
    changed_files: int = 0
    total_additions: int = 0
    total_deletions: int = 0
    commit_count: int = 0
    recent_commit_messages: tuple[str, ...] = ()

    @classmethod
    def build(cls, mr_data: dict, changes: list[FileChange], commit_messages: list[str]) -> MergeRequestContext:
        author = mr_data.get("author") or {}
        return cls(
            title=mr_data.get("title") or "",
            description=mr_data.get("description") or "",
            source_branch=mr_data.get("source_branch") or "",
            target_branch=mr_data.get("target_branch") or "",
            author=author.get("name"),
            changed_files=len(changes),
            total_additions=sum(c.added_lines for c in changes),
            total_deletions=sum(c.removed_lines for c in changes),
            commit_count=len(commit_messages),
            recent_commit_messages=tuple(commit_messages[:MAX_COMMIT_MESSAGES]),
        )


@dataclass(frozen=True)
class ReviewIssue:
    severity: str
    message: str
    kind: str = "general"
    line: int | None = None
    suggestion: str | None = None


@dataclass(frozen=True)
class FileReview:
    filename: str
    issues: tuple[ReviewIssue, ...] = ()
    positives: tuple[str, ...] = ()


@dataclass(frozen=True)
class IssueCounts:
    high: int = 0
    medium: int = 0
    low: int = 0

    @property
    def total(self) -> int:
        return self.high + self.medium + self.low


@dataclass(frozen=True)
class ChunkReviewResult:
    """The model's review of one chunk."""

    summary: str
    file_reviews: tuple[FileReview, ...]
    overall_recommendation: str
    key_insights: tuple[str, ...] = ()
    tokens_used: int = 0
    chunk_index: int = 0

    @property
    def issues(self) -> list[ReviewIssue]:
        return [issue for fr in self.file_reviews for issue in fr.issues]


@dataclass(frozen=True)
class CombinedReviewResult(ChunkReviewResult):
    """Several chunk reviews merged into one by the reducer."""

    issue_counts: IssueCounts = field(default_factory=IssueCounts)
    total_tokens_used: int = 0


@dataclass
class ReviewOutcome:
    """Result stored on a completed job."""

    review: ChunkReviewResult
    comments_posted: int = 0
    mr_title: str = ""
    mr_author: str | None = None
