"""review command: run AI review on GitLab merge requests."""

from __future__ import annotations

import asyncio
import contextlib
from urllib.parse import urlparse

import click
from rich.console import Console
from rich.table import Table

from mrlens_core.gl.merge_request import parse_merge_request_url
from mrlens_core.models import MergeRequestRef
from mrlens_core.reviewer import build_review_notes, count_issues, print_shadow_notes, submit_review, wait_for_reviews
from mrlens_store.base import BaseJobStore
from mrlens_store.memory import sweep_periodically
from mrlens_store.models import COMPLETED, FAILED, Job

console = Console()

_RECOMMENDATION_STYLE = {
    "approve": "green",
    "comment": "yellow",
    "request-changes": "red",
}


async def _run_reviews(refs: list[MergeRequestRef], config: dict, store: BaseJobStore, shadow: bool) -> list[str]:
    """Submit one job per merge request and wait for all of them.

    At most max_concurrent_jobs reviews process at once; the rest wait queued.
    """
    limiter = asyncio.Semaphore(config["max_concurrent_jobs"])
    tasks: set[asyncio.Task] = set()
    sweeper = asyncio.create_task(sweep_periodically(store))
    try:
        job_ids = [submit_review(store, ref, config, tasks=tasks, limiter=limiter, post=not shadow) for ref in refs]
        await wait_for_reviews(tasks)
    finally:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
    return job_ids


def _print_jobs(jobs: list[Job]) -> None:
    table = Table(title="Merge Request Reviews", show_header=True, header_style="bold cyan")
    table.add_column("Merge request", max_width=50)
    table.add_column("Status", width=10)
    table.add_column("Recommendation", width=16)
    table.add_column("Issues (H/M/L)", justify="right", width=14)
    table.add_column("Notes", justify="right", width=6)
    table.add_column("Detail", max_width=60)

    for job in jobs:
        if job.status == COMPLETED:
            review = job.result.review
            rec_style = _RECOMMENDATION_STYLE.get(review.overall_recommendation, "white")
            counts = count_issues(review.file_reviews)
            table.add_row(
                job.url or job.id,
                "[green]completed[/green]",
                f"[{rec_style}]{review.overall_recommendation}[/{rec_style}]",
                f"{counts.high}/{counts.medium}/{counts.low}",
                str(job.result.comments_posted),
                job.result.mr_title,
            )
        else:
            table.add_row(
                job.url or job.id,
                f"[red]{job.status}[/red]",
                "—",
                "—",
                "—",
                job.error or job.current_step,
            )

    console.print(table)


@click.command("review")
@click.argument("urls", nargs=-1, required=True)
@click.option(
    "--model",
    type=click.Choice(["openai", "anthropic"]),
    default=None,
    help="AI model provider. Overrides config file.",
)
@click.option(
    "--guidelines",
    "guidelines_path",
    default=None,
    help="Path to a Markdown guidelines file. Overrides config file.",
)
@click.option(
    "--shadow",
    "-s",
    is_flag=True,
    help="Dry-run mode: print the review notes without posting them to GitLab.",
)
@click.pass_context
def review_cmd(ctx, urls: tuple[str, ...], model: str | None, guidelines_path: str | None, shadow: bool):
    """AI-powered GitLab merge request reviewer.

    Fetches each merge request (URLs like
    https://gitlab.example.com/group/project/-/merge_requests/42), reviews its
    changes in chunks using GPT-4o or Claude, and posts a summary note plus
    one note per significant issue.

    \b
    Required environment variables:
      GITLAB_TOKEN         GitLab personal access token with api scope (or use glab CLI)
      OPENAI_API_KEY       Required when using --model openai
      ANTHROPIC_API_KEY    Required when using --model anthropic
    """
    from mrlens_core.config import load_config
    from mrlens_cli.auth import resolve_gitlab_token

    try:
        refs = [parse_merge_request_url(url) for url in urls]
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="URLS")

    obj = ctx.obj or {}
    try:
        config = load_config(
            obj.get("config_path", ".mrlens.yml"),
            cli_overrides={"model": model, "guidelines": guidelines_path},
        )
    except ValueError as e:
        raise click.UsageError(f"Invalid configuration: {e}")

    host = urlparse(config.get("gitlab_base_url") or refs[0].base_url).hostname
    token = resolve_gitlab_token(host)
    if not token:
        raise click.UsageError(
            "No GitLab token found. Set GITLAB_TOKEN or run `glab auth login` first.\n"
            "Create a token with the 'api' scope under User Settings → Access Tokens."
        )
    config["gitlab_token"] = token

    if config["model"] == "openai" and not config.get("openai_api_key"):
        raise click.UsageError("OPENAI_API_KEY environment variable is not set.")
    if config["model"] == "anthropic" and not config.get("anthropic_api_key"):
        raise click.UsageError("ANTHROPIC_API_KEY environment variable is not set.")

    store = obj.get("store")
    if store is None:
        from mrlens_store.memory import InMemoryJobStore

        store = InMemoryJobStore(retention_days=config["job_retention_days"])

    console.print(f"Reviewing {len(refs)} merge request(s) with [bold]{config['model']}[/bold]...")
    job_ids = asyncio.run(_run_reviews(refs, config, store, shadow))
    # this run's jobs are the newest in the store; show them oldest first
    jobs = list(reversed(store.list_jobs(limit=len(job_ids))))

    if shadow:
        for job in jobs:
            if job.status == COMPLETED:
                print_shadow_notes(build_review_notes(job.result.review), title=job.url)

    _print_jobs(jobs)

    failed = [job for job in jobs if job.status == FAILED]
    if failed:
        raise click.ClickException(f"{len(failed)} of {len(jobs)} review(s) failed.")
