"""Tests for the CLI entry point."""

import subprocess
from unittest.mock import MagicMock, patch

from click.testing import CliRunner

from mrlens_cli.cli import main
from mrlens_core.models import ChunkReviewResult, FileReview, ReviewIssue, ReviewOutcome

URL = "https://gitlab.example.com/group/project/-/merge_requests/42"
OTHER_URL = "https://gitlab.example.com/group/project/-/merge_requests/43"


def _make_config(model="openai", openai_key="sk-openai", anthropic_key=None, gitlab_base_url=None):
    return {
        "model": model,
        "model_name": None,
        "max_tokens": 2048,
        "max_files_per_chunk": 10,
        "max_lines_per_chunk": 1000,
        "retry_attempts": 3,
        "retry_delay": 1.0,
        "request_timeout": 30.0,
        "job_retention_days": 7,
        "max_concurrent_jobs": 5,
        "guidelines": None,
        "exclude": [],
        "gitlab_base_url": gitlab_base_url,
        "gitlab_token": None,
        "openai_api_key": openai_key,
        "anthropic_api_key": anthropic_key,
    }


def _review(recommendation="request-changes"):
    return ChunkReviewResult(
        summary="Adds a login endpoint.",
        file_reviews=(
            FileReview(
                "src/auth.py",
                (ReviewIssue(severity="high", message="Password compared with ==", kind="security", line=12),),
            ),
        ),
        overall_recommendation=recommendation,
    )


def _patch_common(mocker, config=None, token="glpat-test", fail_urls=()):
    """Patch load_config, resolve_gitlab_token and process_review for most tests."""
    cfg = config or _make_config()
    mocker.patch("mrlens_core.config.load_config", return_value=cfg)
    resolve = mocker.patch("mrlens_cli.auth.resolve_gitlab_token", return_value=token)

    async def fake_process(job_id, ref, config, store, **kwargs):
        if ref.url in fail_urls:
            store.fail(job_id, "GitLab access forbidden")
            return None
        outcome = ReviewOutcome(review=_review(), comments_posted=2, mr_title="Add login", mr_author="Ada")
        store.complete(job_id, outcome)
        return outcome

    process = mocker.patch("mrlens_core.reviewer.process_review", side_effect=fake_process)
    return cfg, resolve, process


class TestCLIValidation:
    def test_missing_gitlab_token(self, mocker):
        _patch_common(mocker, token=None)

        result = CliRunner().invoke(main, ["review", URL])
        assert result.exit_code != 0
        assert "GITLAB_TOKEN" in result.output

    def test_missing_openai_key(self, mocker):
        _patch_common(mocker, config=_make_config(model="openai", openai_key=None))

        result = CliRunner().invoke(main, ["review", URL])
        assert result.exit_code != 0
        assert "OPENAI_API_KEY" in result.output

    def test_missing_anthropic_key(self, mocker):
        _patch_common(mocker, config=_make_config(model="anthropic", anthropic_key=None))

        result = CliRunner().invoke(main, ["review", URL])
        assert result.exit_code != 0
        assert "ANTHROPIC_API_KEY" in result.output

    def test_invalid_url(self, mocker):
        _, _, process = _patch_common(mocker)

        result = CliRunner().invoke(main, ["review", "https://github.com/owner/repo/pull/1"])
        assert result.exit_code != 0
        assert "Not a GitLab merge request URL" in result.output
        process.assert_not_called()

    def test_url_required(self, mocker):
        _patch_common(mocker)

        result = CliRunner().invoke(main, ["review"])
        assert result.exit_code != 0

    def test_invalid_config_file(self, mocker):
        mocker.patch("mrlens_core.config.load_config", side_effect=ValueError("retry_attempts must be a positive integer"))

        result = CliRunner().invoke(main, ["review", URL])
        assert result.exit_code != 0
        assert "retry_attempts" in result.output


class TestCLIRunReview:
    def test_successful_review(self, mocker):
        _, _, process = _patch_common(mocker)

        result = CliRunner().invoke(main, ["review", URL])
        assert result.exit_code == 0, result.output
        process.assert_called_once()
        job_id, ref, config, _store = process.call_args.args
        assert job_id.startswith("review_")
        assert ref.project_path == "group/project"
        assert ref.iid == 42
        assert config["gitlab_token"] == "glpat-test"
        assert process.call_args.kwargs["post"] is True

    def test_token_resolved_for_merge_request_host(self, mocker):
        _, resolve, _ = _patch_common(mocker)

        CliRunner().invoke(main, ["review", URL])
        resolve.assert_called_once_with("gitlab.example.com")

    def test_configured_base_url_host_wins(self, mocker):
        _, resolve, _ = _patch_common(mocker, config=_make_config(gitlab_base_url="https://gitlab.internal:8443"))

        CliRunner().invoke(main, ["review", URL])
        resolve.assert_called_once_with("gitlab.internal")

    def test_several_merge_requests(self, mocker):
        _, _, process = _patch_common(mocker)

        result = CliRunner().invoke(main, ["review", URL, OTHER_URL])
        assert result.exit_code == 0, result.output
        assert sorted(c.args[1].iid for c in process.call_args_list) == [42, 43]

    def test_results_read_back_from_job_store(self, mocker):
        from mrlens_store.memory import InMemoryJobStore

        _patch_common(mocker)
        list_jobs = mocker.spy(InMemoryJobStore, "list_jobs")

        result = CliRunner().invoke(main, ["review", URL, OTHER_URL])
        assert result.exit_code == 0, result.output
        assert list_jobs.call_args.kwargs["limit"] == 2

    def test_failed_review_exits_non_zero(self, mocker):
        _patch_common(mocker, fail_urls=(OTHER_URL,))

        result = CliRunner().invoke(main, ["review", URL, OTHER_URL])
        assert result.exit_code != 0
        assert "1 of 2 review(s) failed" in result.output

    def test_shadow_flag_passed_through(self, mocker):
        _, _, process = _patch_common(mocker)

        result = CliRunner().invoke(main, ["review", "--shadow", URL])
        assert result.exit_code == 0, result.output
        assert process.call_args.kwargs["post"] is False
        assert "Shadow review" in result.output
        assert "src/auth.py:12" in result.output

    def test_model_option_overrides_config(self, mocker):
        cfg, _, _ = _patch_common(mocker)
        load = mocker.patch("mrlens_core.config.load_config", return_value=cfg)

        CliRunner().invoke(main, ["review", "--model", "anthropic", "--guidelines", "rules.md", URL])
        overrides = load.call_args_list[-1].kwargs["cli_overrides"]
        assert overrides == {"model": "anthropic", "guidelines": "rules.md"}


class TestResolveGitlabToken:
    def test_returns_env_var_when_set(self, monkeypatch):
        from mrlens_cli.auth import resolve_gitlab_token

        monkeypatch.setenv("GITLAB_TOKEN", "env-token")
        assert resolve_gitlab_token() == "env-token"

    def test_falls_back_to_glab_cli(self, monkeypatch):
        from mrlens_cli.auth import resolve_gitlab_token

        monkeypatch.delenv("GITLAB_TOKEN", raising=False)
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0, stdout="glab-token\n")
            result = resolve_gitlab_token("gitlab.example.com")
        assert result == "glab-token"
        assert mock_run.call_args.args[0] == ["glab", "config", "get", "token", "--host", "gitlab.example.com"]

    def test_returns_none_when_glab_not_installed(self, monkeypatch):
        from mrlens_cli.auth import resolve_gitlab_token

        monkeypatch.delenv("GITLAB_TOKEN", raising=False)
        with patch("subprocess.run", side_effect=FileNotFoundError):
            result = resolve_gitlab_token()
        assert result is None

    def test_returns_none_when_glab_times_out(self, monkeypatch):
        from mrlens_cli.auth import resolve_gitlab_token

        monkeypatch.delenv("GITLAB_TOKEN", raising=False)
        with patch("subprocess.run", side_effect=subprocess.TimeoutExpired(cmd="glab", timeout=5)):
            result = resolve_gitlab_token()
        assert result is None

    def test_returns_none_when_glab_returns_error(self, monkeypatch):
        from mrlens_cli.auth import resolve_gitlab_token

        monkeypatch.delenv("GITLAB_TOKEN", raising=False)
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=1, stdout="")
            result = resolve_gitlab_token()
        assert result is None

    def test_returns_none_when_glab_returns_empty(self, monkeypatch):
        from mrlens_cli.auth import resolve_gitlab_token

        monkeypatch.delenv("GITLAB_TOKEN", raising=False)
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0, stdout="   ")
            result = resolve_gitlab_token()
        assert result is None
