"""CLI entry-point: run the article pipeline and the HTML tools from a shell."""

import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from articlegen.audit.quality import score_article
from articlegen.config import get_settings
from articlegen.content.repair import find_unrepaired_tables, repair_tables
from articlegen.jobs import JobNotFound, JobStatus
from articlegen.pipeline import build_orchestrator
from articlegen.schemas.context import JobContext

app = typer.Typer(help="Keyword-to-article generation pipeline")

_STATUS_COLOURS = {
    JobStatus.COMPLETED: "green",
    JobStatus.FAILED: "red",
    JobStatus.CANCELLED: "yellow",
}


def _load_context(context_file: str | None, keyword: str) -> JobContext:
    data: dict = {}
    if context_file:
        path = Path(context_file)
        if not path.exists():
            raise FileNotFoundError(f"Context file not found: {path}")
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    data["keyword"] = keyword
    return JobContext.model_validate(data)


def _print_job(console: Console, orchestrator, job_id: str) -> None:
    job = orchestrator.get_job(job_id)
    colour = _STATUS_COLOURS.get(job.status, "cyan")
    console.print(f"Job [bold]{job.job_id}[/bold]  keyword={job.keyword!r}")
    console.print(f"Status: [{colour}]{job.status.value}[/{colour}]  progress={job.progress}%  "
                  f"{job.status_message}")
    if job.error_message:
        console.print(f"[red]Error: {job.error_message}[/red]")

    table = Table("#", "Stage", "Status", "Tokens", "Error")
    for record in orchestrator.list_stages(job_id):
        table.add_row(
            str(record.stage),
            record.stage_name,
            record.status.value,
            str(record.tokens_used or ""),
            record.error_code or "",
        )
    console.print(table)

    for stage_name, report in job.quality.items():
        console.print(f"Quality ({stage_name}): {max(0, min(100, report.get('score', 0)))}/100")
    if job.needs_review:
        console.print("[yellow]Flagged for manual review:[/yellow]")
        for reason in job.review_reasons:
            console.print(f"  - {reason}")
    if job.article_id:
        console.print(f"Article: {job.article_id}")


@app.command()
def generate(
    keyword: str = typer.Argument(..., help="Search keyword to write about"),
    context_file: str = typer.Option(None, "--context", help="JSON file with category/author/brand/knowledge_items"),
    user_id: str = typer.Option("", help="Owning user id"),
    provider: str = typer.Option(None, help="LLM provider: openai | anthropic (default from env)"),
    model: str = typer.Option(None, help="Model id for every stage (default from prompts/stages.yaml)"),
):
    """Create a job and run every stage in the foreground."""
    console = Console()
    settings = get_settings()
    overrides = {}
    if provider:
        overrides["articlegen_llm_provider"] = provider
    if model:
        overrides["articlegen_model"] = model
    if overrides:
        settings = settings.model_copy(update=overrides)
    if not settings.llm_api_key:
        console.print(f"[red]Error: no API key configured for provider '{settings.articlegen_llm_provider}'.[/red]")
        raise typer.Exit(1)

    try:
        context = _load_context(context_file, keyword)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    orchestrator = build_orchestrator(settings)
    job = orchestrator.create_job(keyword=keyword, user_id=user_id, context=context)
    console.print(f"Created job {job.job_id}. Running stages...")
    with console.status("Generating article..."):
        job = orchestrator.start_pipeline(job.job_id)
    _print_job(console, orchestrator, job.job_id)
    if job.status != JobStatus.COMPLETED:
        raise typer.Exit(1)
    console.print("[green]Done.[/green]")


@app.command()
def status(job_id: str = typer.Argument(..., help="Job id")):
    """Show a job's status and stage records."""
    console = Console()
    orchestrator = build_orchestrator(get_settings())
    try:
        _print_job(console, orchestrator, job_id)
    except JobNotFound as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def cancel(job_id: str = typer.Argument(..., help="Job id")):
    """Request cancellation; the running pipeline stops at the next stage boundary."""
    console = Console()
    orchestrator = build_orchestrator(get_settings())
    try:
        job = orchestrator.cancel_pipeline(job_id)
    except JobNotFound as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"Job {job.job_id}: {job.status.value}")


@app.command()
def repair(
    html_path: str = typer.Argument(..., help="HTML file to repair"),
    output: str = typer.Option(None, "-o", "--output", help="Write repaired HTML here (default: stdout)"),
):
    """Repair malformed tables and normalise table styles in an HTML file."""
    console = Console()
    path = Path(html_path)
    if not path.exists():
        console.print(f"[red]Error: file not found: {path}[/red]")
        raise typer.Exit(1)
    fixed = repair_tables(path.read_text(encoding="utf-8"))
    if output:
        Path(output).write_text(fixed, encoding="utf-8")
        console.print(f"Wrote {output}")
    else:
        typer.echo(fixed)

    unrepaired = find_unrepaired_tables(fixed)
    if unrepaired:
        console.print(f"[yellow]{len(unrepaired)} table(s) still malformed, manual review needed.[/yellow]")
        raise typer.Exit(2)


@app.command()
def score(
    html_path: str = typer.Argument(..., help="HTML file to score"),
    meta_title: str = typer.Option("", help="Meta title"),
    meta_description: str = typer.Option("", help="Meta description"),
    as_json: bool = typer.Option(False, "--json", help="Print the report as JSON"),
):
    """Score an article's structure and SEO completeness (advisory)."""
    console = Console()
    path = Path(html_path)
    if not path.exists():
        console.print(f"[red]Error: file not found: {path}[/red]")
        raise typer.Exit(1)
    report = score_article(path.read_text(encoding="utf-8"), meta_title, meta_description)
    if as_json:
        typer.echo(json.dumps(report.model_dump(mode="json"), indent=2, ensure_ascii=False))
        return

    table = Table("Check", "Result", "Penalty", "Details")
    for check in report.checks:
        table.add_row(
            check.name,
            "[green]ok[/green]" if check.passed else "[yellow]issue[/yellow]",
            f"-{check.penalty}" if check.penalty else "",
            check.details,
        )
    console.print(table)
    for issue in report.issues:
        console.print(f"  - {issue}")
    console.print(f"Score: [bold]{report.clamped_score}[/bold]/100")


if __name__ == "__main__":
    app()
