"""Core merge request review orchestration."""

from __future__ import annotations

import asyncio
import fnmatch
import logging
from collections import Counter
from dataclasses import replace

from rich.console import Console

from mrlens_core.chunker import chunk_changes
from mrlens_core.config import load_guidelines
from mrlens_core.errors import ClientError, MRLensError
from mrlens_core.gl.merge_request import GitLabClient
from mrlens_core.models import (
    APPROVE,
    COMMENT,
    REQUEST_CHANGES,
    Chunk,
    ChunkReviewResult,
    CombinedReviewResult,
    FileChange,
    FileReview,
    IssueCounts,
    MergeRequestContext,
    MergeRequestRef,
    ReviewIssue,
    ReviewOutcome,
)
from mrlens_core.providers.anthropic import AnthropicReviewer
from mrlens_core.providers.openai import OpenAIReviewer
from mrlens_core.utils.code import is_code_file

console = Console()
logger = logging.getLogger(__name__)

# provider -> (display name, API key environment variable)
_PROVIDER_KEYS = {
    "openai": ("OpenAI", "OPENAI_API_KEY"),
    "anthropic": ("Anthropic", "ANTHROPIC_API_KEY"),
}

_RECOMMENDATION_TEXT = {
    APPROVE: ("Approve", "The code changes look good to merge."),
    COMMENT: ("Comment", "Consider addressing the identified issues to improve code quality."),
    REQUEST_CHANGES: ("Request Changes", "Please address the high-severity issues before merging."),
}


def _get_reviewer(config: dict):
    model = config["model"]
    options = {
        "guidelines": load_guidelines(config),
        "model": config.get("model_name"),
        "max_tokens": config.get("max_tokens"),
        "max_retries": config.get("retry_attempts"),
        "retry_delay": config.get("retry_delay"),
        "timeout": config.get("request_timeout"),
    }
    if model == "anthropic":
        return AnthropicReviewer(api_key=config["anthropic_api_key"], **options)
    if model == "openai":
        return OpenAIReviewer(api_key=config["openai_api_key"], **options)
    raise ValueError(f"Unknown model provider: {model!r}. Choose 'openai' or 'anthropic'.")


def _is_excluded(filename: str, patterns: list[str]) -> bool:
    """Return True if filename matches any exclude pattern.

    Supports:
    - fnmatch globs on the full path: "src/generated/*.py"
    - fnmatch globs on the basename: "*.lock", "*.min.js"
    - Directory names/prefixes: "migrations/", "tests" (matches any file within that tree)
    """
    for pattern in patterns:
        if fnmatch.fnmatch(filename, pattern):
            return True
        if fnmatch.fnmatch(filename.rsplit("/", 1)[-1], pattern):
            return True
        prefix = pattern.rstrip("/") + "/"
        if filename.startswith(prefix) or ("/" + prefix) in filename:
            return True
    return False


def filter_changes(changes: list[FileChange], exclude_patterns: list[str]) -> list[FileChange]:
    """Drop excluded and non-code files, keeping the order of the rest."""
    kept = []
    for change in changes:
        if _is_excluded(change.path, exclude_patterns) or not is_code_file(change.path):
            logger.debug("Skipping %s", change.path)
            continue
        kept.append(change)
    return kept


# ---------------------------------------------------------------------------
# Reduction
# ---------------------------------------------------------------------------


def count_issues(file_reviews) -> IssueCounts:
    counts = Counter(issue.severity for fr in file_reviews for issue in fr.issues)
    return IssueCounts(high=counts["high"], medium=counts["medium"], low=counts["low"])


def determine_recommendation(counts: IssueCounts) -> str:
    """Choose the overall recommendation from the severity counts."""
    if counts.high > 0:
        return REQUEST_CHANGES
    if counts.medium > 2 or counts.low > 5:
        return COMMENT
    return APPROVE


def reduce_reviews(results: list[ChunkReviewResult]) -> ChunkReviewResult:
    """Merge per-chunk reviews into one review.

    A single chunk review is returned as-is, without issue counts. Several
    are merged in chunk order with a recomputed recommendation and a summary
    built from the counts rather than taken from the model.
    """
    if not results:
        raise ValueError("No chunk reviews to reduce")
    if len(results) == 1:
        return results[0]

    ordered = sorted(results, key=lambda r: r.chunk_index)
    file_reviews = tuple(fr for r in ordered for fr in r.file_reviews)
    counts = count_issues(file_reviews)
    total_tokens = sum(r.tokens_used for r in ordered)
    summary = (
        f"Reviewed {len(file_reviews)} files with {counts.total} total issues found: "
        f"{counts.high} high, {counts.medium} medium, {counts.low} low severity issues."
    )
    return CombinedReviewResult(
        summary=summary,
        file_reviews=file_reviews,
        overall_recommendation=determine_recommendation(counts),
        key_insights=tuple(insight for r in ordered for insight in r.key_insights),
        tokens_used=total_tokens,
        issue_counts=counts,
        total_tokens_used=total_tokens,
    )


# ---------------------------------------------------------------------------
# Fan-out
# ---------------------------------------------------------------------------


async def _review_indexed(reviewer, context: MergeRequestContext, chunk: Chunk, total: int) -> ChunkReviewResult:
    result = await reviewer.review_chunk(context, chunk, total)
    if result.chunk_index != chunk.index:
        result = replace(result, chunk_index=chunk.index)
    return result


async def review_changes(
    reviewer,
    context: MergeRequestContext,
    changes: list[FileChange],
    max_files: int = 10,
    max_lines: int = 1000,
) -> ChunkReviewResult:
    """Review every chunk of changes concurrently and reduce the answers.

    The first chunk that fails for good fails the whole review; the other
    chunk calls are left to finish but their results are discarded.
    """
    chunks = chunk_changes(changes, max_files, max_lines)
    if not chunks:
        raise ValueError("Merge request has no reviewable changes")

    logger.info("Reviewing %d file(s) in %d chunk(s)", len(changes), len(chunks))
    results = await asyncio.gather(*(_review_indexed(reviewer, context, chunk, len(chunks)) for chunk in chunks))
    review = reduce_reviews(list(results))
    logger.info(
        "Review reduced: %s, %d token(s)",
        review.overall_recommendation,
        sum(r.tokens_used for r in results),
    )
    return review


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------


def build_summary_note(review: ChunkReviewResult) -> str:
    """Build the single summary note posted on the merge request."""
    label, advice = _RECOMMENDATION_TEXT.get(review.overall_recommendation, _RECOMMENDATION_TEXT[COMMENT])
    lines = [f"## AI Code Review Summary: {label}\n", f"{review.summary}\n"]

    if isinstance(review, CombinedReviewResult):
        counts = review.issue_counts
        lines.append("### Issues found")
        lines.append(f"- **High severity**: {counts.high}")
        lines.append(f"- **Medium severity**: {counts.medium}")
        lines.append(f"- **Low severity**: {counts.low}\n")

    if review.key_insights:
        lines.append("### Key insights")
        lines.extend(f"- {insight}" for insight in review.key_insights)
        lines.append("")

    lines.append(f"### Recommendation: {label}\n{advice}\n")
    lines.append("---\n_This review was generated by AI. Please verify the suggestions and use your judgment._")
    return "\n".join(lines)


def format_issue_note(filename: str, issue: ReviewIssue) -> str:
    kind = issue.kind.replace("-", " ").upper()
    body = f"**{filename}:{issue.line}** - {kind}\n\n{issue.message}\n\n"
    if issue.suggestion:
        body += f"**Suggestion:**\n{issue.suggestion}\n\n"
    body += f"_Severity: {issue.severity}_"
    return body


def notable_issues(review: ChunkReviewResult) -> list[tuple[FileReview, ReviewIssue]]:
    """Issues that get a note of their own: not low severity and tied to a line."""
    return [
        (fr, issue)
        for fr in review.file_reviews
        for issue in fr.issues
        if issue.severity != "low" and issue.line is not None
    ]


def build_review_notes(review: ChunkReviewResult) -> list[str]:
    """Every note a review produces, summary first."""
    return [build_summary_note(review)] + [format_issue_note(fr.filename, issue) for fr, issue in notable_issues(review)]


async def post_review_comments(client: GitLabClient, ref: MergeRequestRef, review: ChunkReviewResult) -> int:
    """Post the summary note and one note per notable issue; return how many were posted.

    A failing summary note fails the review. A failing issue note is logged
    and skipped so the remaining notes still go out.
    """
    await client.post_note(ref.project_path, ref.iid, build_summary_note(review))
    posted = 1

    for fr, issue in notable_issues(review):
        try:
            await client.post_note(ref.project_path, ref.iid, format_issue_note(fr.filename, issue))
            posted += 1
        except MRLensError as e:
            logger.warning("Failed to post note for %s:%s: %s", fr.filename, issue.line, e)

    return posted


def print_shadow_notes(notes: list[str], title: str = "") -> None:
    """Print the notes a review would post, without posting them."""
    console.print(f"\n[bold]Shadow review{' for ' + title if title else ''}: {len(notes)} note(s) (not posted)[/bold]\n")
    for note in notes:
        console.print(note)
        console.print("[dim]" + "-" * 40 + "[/dim]")


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


def describe_failure(error: Exception, ref: MergeRequestRef, provider: str | None = None) -> str:
    """Turn a pipeline failure into a message for the job's error field.

    Client errors get a hint about the credential involved: the GitLab token
    for errors GitLab answered, the provider API key for the model's.
    """
    if isinstance(error, ClientError):
        if error.source == "gitlab":
            return _describe_gitlab_failure(error, ref)
        if error.status in (401, 403):
            name, env_var = _PROVIDER_KEYS.get(error.source or provider, ("Model provider", "the provider API key"))
            return (
                f"{name} API authentication failed ({error.status}). "
                f"Check that {env_var} is set, valid and allowed to use the configured model."
            )
    return str(error) or error.__class__.__name__


def _describe_gitlab_failure(error: ClientError, ref: MergeRequestRef) -> str:
    if error.status == 401:
        return (
            "GitLab authentication failed. Please check:\n"
            "1. Your GitLab personal access token is valid\n"
            "2. The token has the 'api' scope\n"
            f"3. The token is valid for {ref.base_url}\n"
            f"4. The project '{ref.project_path}' exists and you have access"
        )
    if error.status == 403:
        return f"GitLab access forbidden. Your token may lack permissions for project '{ref.project_path}'"
    if error.status == 404:
        return (
            "GitLab resource not found. Please check:\n"
            f"1. Merge request !{ref.iid} exists in project '{ref.project_path}'\n"
            "2. The project path is correct\n"
            "3. Your token has access to this project"
        )
    return str(error)


async def process_review(
    job_id: str,
    ref: MergeRequestRef,
    config: dict,
    store,
    *,
    client: GitLabClient | None = None,
    reviewer=None,
    post: bool = True,
) -> ReviewOutcome | None:
    """Run one review job end to end and record the outcome on the store.

    ``store`` is the job tracker (see mrlens_store.base.BaseJobStore); only
    advance, complete and fail are used. Failures are logged and recorded on
    the job, and None is returned.
    """
    try:
        if client is None:
            client = GitLabClient(
                config.get("gitlab_base_url") or ref.base_url,
                config["gitlab_token"],
                retry_attempts=config["retry_attempts"],
                retry_delay=config["retry_delay"],
                timeout=config["request_timeout"],
            )
        if reviewer is None:
            reviewer = _get_reviewer(config)

        store.advance(job_id, 10, "Fetching merge request details...")
        mr_data = await client.get_merge_request(ref.project_path, ref.iid)

        store.advance(job_id, 25, "Fetching diffs and commits...")
        changes, commit_messages = await asyncio.gather(
            client.get_changes(ref.project_path, ref.iid),
            client.get_commit_messages(ref.project_path, ref.iid),
        )
        reviewable = filter_changes(changes, config.get("exclude", []))
        context = MergeRequestContext.build(mr_data, reviewable, commit_messages)

        store.advance(job_id, 50, "Analyzing code with AI...")
        review = await review_changes(
            reviewer,
            context,
            reviewable,
            max_files=config["max_files_per_chunk"],
            max_lines=config["max_lines_per_chunk"],
        )

        posted = 0
        if post:
            store.advance(job_id, 80, "Posting review comments...")
            posted = await post_review_comments(client, ref, review)

        outcome = ReviewOutcome(
            review=review,
            comments_posted=posted,
            mr_title=context.title,
            mr_author=context.author,
        )
        store.advance(job_id, 100, "Review completed")
        store.complete(job_id, outcome)
        logger.info("Review %s completed for %s!%d (%d note(s) posted)", job_id, ref.project_path, ref.iid, posted)
        return outcome
    except Exception as e:
        logger.exception("Review %s failed for %s!%d", job_id, ref.project_path, ref.iid)
        store.fail(job_id, describe_failure(e, ref, config.get("model")))
        return None


def submit_review(
    store,
    ref: MergeRequestRef,
    config: dict,
    *,
    tasks: set[asyncio.Task],
    limiter: asyncio.Semaphore | None = None,
    **kwargs,
) -> str:
    """Create a job and start reviewing in the background; return the job id at once.

    Must be called from a running event loop. The task is kept in the
    caller's ``tasks`` set until it finishes. ``limiter`` bounds how many
    jobs process at the same time; a waiting job stays queued at progress 0.
    """
    job_id = store.create(ref.url, project_path=ref.project_path, mr_iid=ref.iid)

    async def _run():
        if limiter is None:
            return await process_review(job_id, ref, config, store, **kwargs)
        async with limiter:
            return await process_review(job_id, ref, config, store, **kwargs)

    task = asyncio.create_task(_run(), name=f"mrlens-{job_id}")
    tasks.add(task)
    task.add_done_callback(tasks.discard)
    logger.info("Review job %s started for %s", job_id, ref.url)
    return job_id


async def wait_for_reviews(tasks: set[asyncio.Task]) -> None:
    """Wait until every review task in ``tasks`` has finished."""
    while tasks:
        await asyncio.gather(*list(tasks))
