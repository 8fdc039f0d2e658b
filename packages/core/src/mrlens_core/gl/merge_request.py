"""GitLab merge request access.

python-gitlab is synchronous, so every request runs in a worker thread and
goes through call_with_retry. python-gitlab's own transient-error retries and
rate-limit sleeping are switched off so that one retry policy applies to all
remote calls.
"""

from __future__ import annotations

import asyncio
import logging
import re

import gitlab
from gitlab.exceptions import GitlabError
from gitlab.utils import EncodedId

from mrlens_core.errors import ExhaustedRetries, MRLensError, RemoteCallError
from mrlens_core.models import FileChange, MergeRequestRef
from mrlens_core.retry import call_with_retry
from mrlens_core.utils.code import count_diff_lines

logger = logging.getLogger(__name__)

# <scheme>://<host>/<group>[/<subgroup>...]/<project>/-/merge_requests/<iid>
_MR_URL_RE = re.compile(r"^(https?://[^/\s]+)/([^/\s]+(?:/[^/\s]+)+)/-/merge_requests/(\d+)/?$")


def parse_merge_request_url(url: str) -> MergeRequestRef:
    """Split a merge request web URL into base URL, project path and IID."""
    match = _MR_URL_RE.match((url or "").strip())
    if not match:
        raise ValueError(
            f"Not a GitLab merge request URL: {url!r}. "
            "Expected https://<host>/<group>/<project>/-/merge_requests/<iid>"
        )
    return MergeRequestRef(
        base_url=match.group(1),
        project_path=match.group(2),
        iid=int(match.group(3)),
        url=url.strip(),
    )


def to_file_change(diff_data: dict) -> FileChange:
    """Build a FileChange from one entry of GitLab's merge request diffs API."""
    diff = diff_data.get("diff") or ""
    added, removed = count_diff_lines(diff)
    return FileChange(
        path=diff_data.get("new_path") or diff_data.get("old_path") or "",
        added_lines=added,
        removed_lines=removed,
        diff=diff,
        is_new=bool(diff_data.get("new_file")),
        is_deleted=bool(diff_data.get("deleted_file")),
        is_renamed=bool(diff_data.get("renamed_file")),
    )


class GitLabClient:
    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        retry_attempts: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 30.0,
    ):
        self.base_url = base_url
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self._gl = gitlab.Gitlab(base_url, private_token=token, timeout=timeout, retry_transient_errors=False)

    async def get_merge_request(self, project_path: str, iid: int) -> dict:
        return await self._call(f"GET merge request !{iid}", self._gl.http_get, self._mr_path(project_path, iid))

    async def get_changes(self, project_path: str, iid: int) -> list[FileChange]:
        diffs = await self._call(
            f"GET diffs !{iid}",
            self._gl.http_list,
            f"{self._mr_path(project_path, iid)}/diffs",
            get_all=True,
        )
        return [to_file_change(d) for d in diffs]

    async def get_commit_messages(self, project_path: str, iid: int) -> list[str]:
        commits = await self._call(
            f"GET commits !{iid}",
            self._gl.http_list,
            f"{self._mr_path(project_path, iid)}/commits",
            get_all=True,
        )
        return [c.get("message") or c.get("title") or "" for c in commits]

    async def post_note(self, project_path: str, iid: int, body: str) -> dict:
        return await self._call(
            f"POST note !{iid}",
            self._gl.http_post,
            f"{self._mr_path(project_path, iid)}/notes",
            post_data={"body": body},
        )

    @staticmethod
    def _mr_path(project_path: str, iid: int) -> str:
        return f"/projects/{EncodedId(project_path)}/merge_requests/{iid}"

    async def _call(self, label: str, fn, *args, **kwargs):
        def _blocking():
            try:
                return fn(*args, obey_rate_limit=False, **kwargs)
            except GitlabError as e:
                if e.response_code is None:
                    raise
                raise RemoteCallError(e.response_code, e.error_message, source="gitlab") from e

        try:
            return await call_with_retry(
                lambda: asyncio.to_thread(_blocking),
                self.retry_attempts,
                self.retry_delay,
                label=f"GitLab {label}",
            )
        except MRLensError:
            raise
        except Exception as e:
            raise ExhaustedRetries(f"GitLab API call failed ({label}): {e}", self.retry_attempts) from e
