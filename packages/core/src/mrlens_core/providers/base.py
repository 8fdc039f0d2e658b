"""Base reviewer implementing the Template Method pattern.

All providers share the same chunk review algorithm:
    review_chunk() → _build_system_prompt() + _build_user_prompt()
                   → call_with_retry(_call_api)   ← only _call_api differs per provider
                   → _parse()

Subclasses implement two things only:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call and return the text response and token usage

Prompt construction, strict parsing of the JSON answer and the mapping of
retry failures to ModelCallError live here so every provider behaves the same.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod

from mrlens_core.errors import ClientError, ModelCallError, RateLimited
from mrlens_core.models import (
    RECOMMENDATIONS,
    SEVERITIES,
    Chunk,
    ChunkReviewResult,
    FileReview,
    MergeRequestContext,
    ReviewIssue,
)
from mrlens_core.prompts import CODE_REVIEW_GUIDELINES, build_system_prompt
from mrlens_core.retry import call_with_retry

logger = logging.getLogger(__name__)

# Shared defaults; subclasses may override as class attributes.
_MAX_RETRIES = 3
_MAX_TOKENS = 2048

# Commit messages shown in the prompt; the context itself keeps a few more.
_PROMPT_COMMIT_MESSAGES = 3


def retry_after_seconds(headers) -> float | None:
    """Read a numeric Retry-After header, if the response carried one."""
    if not headers:
        return None
    value = headers.get("retry-after")
    if value is None:
        return None
    try:
        return max(float(value), 0.0)
    except (TypeError, ValueError):
        return None


class BaseReviewer(ABC):
    MODEL: str = ""
    TEMPERATURE: float = 0.1
    MAX_RETRIES: int = _MAX_RETRIES
    MAX_TOKENS: int = _MAX_TOKENS
    RETRY_DELAY: float = 1.0
    TIMEOUT: float = 30.0

    def __init__(
        self,
        guidelines: str = CODE_REVIEW_GUIDELINES,
        model: str | None = None,
        max_tokens: int | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        timeout: float | None = None,
    ):
        self.guidelines = guidelines
        self.model = model or self.MODEL
        self.max_tokens = max_tokens or self.MAX_TOKENS
        self.max_retries = max_retries or self.MAX_RETRIES
        self.retry_delay = self.RETRY_DELAY if retry_delay is None else retry_delay
        self.timeout = self.TIMEOUT if timeout is None else timeout

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    async def review_chunk(self, context: MergeRequestContext, chunk: Chunk, total_chunks: int) -> ChunkReviewResult:
        """Review one chunk and return the model's structured answer.

        RateLimited and ClientError propagate unchanged so callers can tell
        them apart; every other failure, including output that does not match
        the expected shape, surfaces as ModelCallError.
        """
        system = self._build_system_prompt()
        user = self._build_user_prompt(context, chunk, total_chunks)
        label = f"{self.__class__.__name__} chunk-{chunk.index}"
        try:
            raw, tokens_used = await call_with_retry(
                lambda: self._call_api(system, user),
                self.max_retries,
                self.retry_delay,
                label=label,
            )
        except (RateLimited, ClientError):
            raise
        except Exception as e:
            raise ModelCallError(f"Model call for chunk {chunk.index} failed: {e}", chunk_index=chunk.index) from e
        return self._parse(raw, chunk.index, tokens_used)

    # ------------------------------------------------------------------ #
    # Abstract: implement in each provider                                #
    # ------------------------------------------------------------------ #

    @abstractmethod
    async def _call_api(self, system_prompt: str, user_prompt: str) -> tuple[str, int]:
        """Make a single API call and return (raw text, tokens used).

        It should raise on failure, translating HTTP status errors into
        RemoteCallError. call_with_retry handles retries and logging.
        """

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _build_system_prompt(self) -> str:
        return build_system_prompt(self.guidelines)

    def _build_user_prompt(self, context: MergeRequestContext, chunk: Chunk, total_chunks: int) -> str:
        """Build the per-chunk prompt: merge request context, then every file's diff.

        The line tally is the merge request total so that each chunk knows how
        large the whole change is, and multi-chunk runs state their position.
        """
        lines = [
            "## Merge Request Context",
            f"- Title: {context.title}",
            f"- Description: {context.description or 'No description'}",
            f"- Branch: {context.source_branch} → {context.target_branch}",
            f"- Author: {context.author or 'unknown'}",
            f"- Files changed: {context.changed_files}",
            f"- Lines: +{context.total_additions} -{context.total_deletions}",
        ]
        if total_chunks > 1:
            lines.append(f"- Reviewing chunk {chunk.index + 1} of {total_chunks}")

        lines.append("\n## Recent commit messages")
        for message in context.recent_commit_messages[:_PROMPT_COMMIT_MESSAGES]:
            lines.append(f"- {message.strip()}")

        lines.append("\n## Changes to review")
        for change in chunk.files:
            markers = ""
            if change.is_new:
                markers += "[NEW FILE]"
            if change.is_deleted:
                markers += "[DELETED FILE]"
            if change.is_renamed:
                markers += "[RENAMED FILE]"
            lines.append(f"\n--- File: {change.path} ---")
            if markers:
                lines.append(markers)
            lines.append(change.diff)

        return "\n".join(lines)

    def _parse(self, raw: str, chunk_index: int, tokens_used: int = 0) -> ChunkReviewResult:
        """Parse the model's raw text into a ChunkReviewResult.

        Output that is not a JSON object of the expected shape raises
        ModelCallError; nothing is filled in by guesswork.
        """
        # Strip only the outer ```json ... ``` fence that the model wraps
        # the response in, NOT backticks inside string values.
        cleaned = re.sub(r"^```(?:json)?\s*", "", (raw or "").strip())
        cleaned = re.sub(r"\s*```$", "", cleaned.strip())
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as e:
            logger.warning(
                "%s: failed to parse chunk-%d response as JSON: %s",
                self.__class__.__name__,
                chunk_index,
                (raw or "")[:200],
            )
            raise ModelCallError(f"Chunk {chunk_index}: model response is not valid JSON", chunk_index) from e

        try:
            return _to_chunk_result(data, chunk_index, tokens_used)
        except (TypeError, ValueError) as e:
            logger.warning("%s: malformed chunk-%d review: %s", self.__class__.__name__, chunk_index, e)
            raise ModelCallError(f"Chunk {chunk_index}: malformed model response: {e}", chunk_index) from e


def _expect(condition: bool, message: str) -> None:
    if not condition:
        raise ValueError(message)


def _string_list(value, name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    _expect(isinstance(value, list), f"{name} must be a list")
    _expect(all(isinstance(v, str) for v in value), f"{name} must contain only strings")
    return tuple(value)


def _to_issue(data) -> ReviewIssue:
    _expect(isinstance(data, dict), "issue must be an object")
    severity = data.get("severity")
    _expect(severity in SEVERITIES, f"issue severity must be one of {SEVERITIES}, got {severity!r}")
    message = data.get("message")
    _expect(isinstance(message, str), "issue message must be a string")
    line = data.get("line")
    _expect(line is None or (isinstance(line, int) and not isinstance(line, bool)), "issue line must be an integer")
    kind = data.get("type") or "general"
    _expect(isinstance(kind, str), "issue type must be a string")
    suggestion = data.get("suggestion")
    _expect(suggestion is None or isinstance(suggestion, str), "issue suggestion must be a string")
    return ReviewIssue(severity=severity, message=message, kind=kind, line=line, suggestion=suggestion)


def _to_file_review(data) -> FileReview:
    _expect(isinstance(data, dict), "file review must be an object")
    filename = data.get("filename")
    _expect(isinstance(filename, str) and bool(filename), "file review needs a filename")
    issues = data.get("issues", [])
    _expect(isinstance(issues, list), "issues must be a list")
    return FileReview(
        filename=filename,
        issues=tuple(_to_issue(i) for i in issues),
        positives=_string_list(data.get("positives"), "positives"),
    )


def _to_chunk_result(data, chunk_index: int, tokens_used: int) -> ChunkReviewResult:
    _expect(isinstance(data, dict), "response must be a JSON object")
    summary = data.get("summary")
    _expect(isinstance(summary, str), "summary must be a string")
    file_reviews = data.get("fileReviews")
    _expect(isinstance(file_reviews, list), "fileReviews must be a list")
    recommendation = data.get("overallRecommendation")
    _expect(
        recommendation in RECOMMENDATIONS,
        f"overallRecommendation must be one of {RECOMMENDATIONS}, got {recommendation!r}",
    )
    return ChunkReviewResult(
        summary=summary,
        file_reviews=tuple(_to_file_review(fr) for fr in file_reviews),
        overall_recommendation=recommendation,
        key_insights=_string_list(data.get("keyInsights"), "keyInsights"),
        tokens_used=tokens_used,
        chunk_index=chunk_index,
    )
