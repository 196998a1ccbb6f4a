"""CLI entry point for NexoraOS."""

import typer

from .config import settings
from .models import NexoraError
from .observability import configure_logging
from .pipeline import EbookPipeline, job_snapshot
from .poller import HttpPipelineClient, LocalPipelineClient, StatusPoller
from .storage import JobStore, create_record_store
from .utils.llm_client import LLMClient

cli = typer.Typer()


def _local_pipeline(data_dir: str | None) -> EbookPipeline:
    records = create_record_store(data_dir or settings.database_url)
    return EbookPipeline(JobStore(records), LLMClient(), log_dir=getattr(records, "base_dir", None))


def _print_progress(snapshot: dict) -> None:
    typer.echo(
        f"   {snapshot.get('status')}: {snapshot.get('progress')}/{snapshot.get('totalChapters')} chapters"
    )


@cli.command()
def generate(
    topic: str = typer.Argument(..., help="What the ebook is about"),
    tone: str | None = typer.Option(None, "--tone", "-t", help="Writing tone"),
    length: str | None = typer.Option(None, "--length", "-l", help="short, medium or long"),
    url: str | None = typer.Option(None, "--url", help="Drive a remote API instead of running locally"),
    token: str | None = typer.Option(None, "--token", envvar="NEXORA_TOKEN", help="Bearer token for --url"),
    data_dir: str | None = typer.Option(None, "--data-dir", "-d", help="Record store directory"),
    output: str | None = typer.Option(None, "--output", "-o", help="Write the final markdown here"),
    interval: float | None = typer.Option(None, "--interval", help="Seconds between polls"),
):
    """Generate a complete ebook, one chapter per poll."""
    configure_logging()

    try:
        if url:
            client = HttpPipelineClient(url, token=token)
            job_id = client.start(topic, tone, length)["jobId"]
            finalize = client.finalize
        else:
            pipeline = _local_pipeline(data_dir)
            job_id = pipeline.start(topic, tone, length).id
            client = LocalPipelineClient(pipeline)
            finalize = pipeline.finalize
    except NexoraError as e:
        typer.echo(f"❌ Could not start job: {e.message}")
        raise typer.Exit(code=1)

    typer.echo(f"📚 Job {job_id} started")
    snapshot = StatusPoller(client, job_id, interval=interval).run(on_update=_print_progress)

    if snapshot.get("status") != "complete":
        typer.echo(f"❌ Job {job_id} ended as {snapshot.get('status')}: {snapshot.get('errorMessage')}")
        raise typer.Exit(code=1)

    markdown = finalize(job_id)
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(markdown)
        typer.echo(f"✅ Wrote {output}")
    else:
        typer.echo(markdown)


@cli.command()
def status(
    job_id: str = typer.Argument(..., help="Job identifier"),
    data_dir: str | None = typer.Option(None, "--data-dir", "-d", help="Record store directory"),
):
    """Show job status and progress."""
    try:
        snapshot = job_snapshot(_local_pipeline(data_dir).get(job_id))
    except NexoraError as e:
        typer.echo(f"❌ {e.message}")
        raise typer.Exit(code=1)

    typer.echo(f"📊 {snapshot['title'] or snapshot['topic']}")
    _print_progress(snapshot)
    if snapshot["errorMessage"]:
        typer.echo(f"   • {snapshot['errorMessage']}")


@cli.command()
def finalize(
    job_id: str = typer.Argument(..., help="Job identifier"),
    data_dir: str | None = typer.Option(None, "--data-dir", "-d", help="Record store directory"),
    output: str | None = typer.Option(None, "--output", "-o", help="Write the markdown here"),
):
    """Assemble the markdown of a completed job."""
    try:
        markdown = _local_pipeline(data_dir).finalize(job_id)
    except NexoraError as e:
        typer.echo(f"❌ {e.message}")
        raise typer.Exit(code=1)

    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(markdown)
        typer.echo(f"✅ Wrote {output}")
    else:
        typer.echo(markdown)


@cli.command()
def api(
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to bind to"),
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable auto-reload"),
):
    """Start the FastAPI server."""
    import uvicorn

    configure_logging()
    typer.echo("🚀 Starting NexoraOS API server")
    typer.echo(f"🌐 http://{host}:{port}")
    typer.echo(f"📚 Docs: http://{host}:{port}/docs")

    uvicorn.run(
        "nexora.api.main:create_app", host=host, port=port, reload=reload, factory=True
    )


if __name__ == "__main__":
    cli()
