"""Click CLI: watch, reprocess, finalize and upload runs, plus a few library chores."""

from __future__ import annotations

from pathlib import Path

import click

from pipewatch.api import ApiClient
from pipewatch.config import load_config
from pipewatch.errors import PipewatchError
from pipewatch.http import client_from_settings, create_http_client
from pipewatch.logging import setup_logging
from pipewatch.models import ContentItem
from pipewatch.runs import ProcessingRun, RunController
from pipewatch.stages import JOB_LABELS, JOB_TYPE_TO_STAGE, PIPELINES, STAGE_CONFIGS, pipeline_for
from pipewatch.statuses import ContentStatus, ContentType, ProcessingStep, RunMode
from pipewatch.upload import upload_file
from pipewatch.view import render_snapshot, render_stages, stages_from_content

RECOVERY_CHOICES = ("retry", "retry-from-point", "restart-all", "cancel")


class _StagePrinter:
    """Stream listener that re-prints the stage list whenever it visibly changes."""

    def __init__(self) -> None:
        self.run: ProcessingRun | None = None
        self._last = ""

    def attach(self, run: ProcessingRun) -> None:
        self.run = run
        self._last = ""

    def __call__(self, event) -> None:
        if self.run is None:
            return
        text = render_stages(self.run.reducer.stages)
        if text != self._last:
            click.echo(text + "\n")
            self._last = text


@click.group()
@click.option("--config", "config_path", default="config.yaml", help="Path to config YAML file.")
@click.pass_context
def cli(ctx: click.Context, config_path: str) -> None:
    """Pipewatch: follow content processing runs from the terminal."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = load_config(config_path)


def _api(ctx: click.Context, log_name: str) -> ApiClient:
    settings = ctx.obj["config"].settings
    log = setup_logging(settings.log_dir, log_name, console_level=settings.log_level)
    storage = create_http_client(proxy_url=settings.proxy_url, user_agent=settings.user_agent, timeout=settings.request_timeout)
    api = ApiClient(client_from_settings(settings), log, storage_client=storage)
    ctx.call_on_close(api.client.close)
    ctx.call_on_close(api.storage_client.close)
    return api


def _watch(
    ctx: click.Context,
    recording_id: str,
    *,
    mode: RunMode,
    step: ProcessingStep = ProcessingStep.ALL,
    content_type: ContentType | None = None,
    start_processing: bool = True,
    recover: bool = False,
) -> None:
    cfg = ctx.obj["config"]
    settings = cfg.settings
    log = setup_logging(settings.log_dir, "pipewatch", console_level=settings.log_level)
    printer = _StagePrinter()

    with client_from_settings(settings, streaming=True) as client:
        controller = RunController(
            client,
            recording_id,
            log,
            mode=mode,
            step=step,
            content_type=content_type,
            pipelines=cfg.pipelines,
            start_processing=start_processing,
            auto_advance=settings.auto_advance,
            connect_attempts=settings.connect_attempts,
            listeners=[printer],
        )
        run = controller.start()
        while True:
            printer.attach(run)
            try:
                snapshot = run.run()
            except KeyboardInterrupt:
                controller.cancel()
                click.echo("\nStopped watching. The server keeps processing.")
                raise SystemExit(1) from None

            click.echo(render_snapshot(snapshot, title=f"Recording {recording_id}"))
            if snapshot.completed:
                return
            if snapshot.error is None:
                raise SystemExit(1)

            if not recover:
                click.echo(f"\nRetry with: pipewatch reprocess {recording_id} --step {controller.step}")
                click.echo(f"Restart all: pipewatch reprocess {recording_id} --step all")
                raise SystemExit(1)

            choice = click.prompt("What next?", type=click.Choice(RECOVERY_CHOICES), default="cancel")
            if choice == "retry":
                run = controller.retry()
            elif choice == "retry-from-point":
                run = controller.retry_from_point()
            elif choice == "restart-all":
                run = controller.restart_all()
            else:
                raise SystemExit(1)


_content_type_option = click.option(
    "--content-type",
    type=click.Choice([c.value for c in ContentType]),
    default=None,
    help="Content type, used to predict the stage list.",
)
_recover_option = click.option("--recover", is_flag=True, help="Offer retry options when the run fails.")


@cli.command()
@click.argument("recording_id")
@_recover_option
@click.pass_context
def watch(ctx: click.Context, recording_id: str, recover: bool) -> None:
    """Follow the upload processing stream of a recording."""
    _watch(ctx, recording_id, mode=RunMode.UPLOAD, recover=recover)


@cli.command()
@click.argument("recording_id")
@click.option(
    "--step",
    type=click.Choice([s.value for s in ProcessingStep]),
    default=ProcessingStep.ALL.value,
    show_default=True,
    help="Pipeline step to re-run.",
)
@_content_type_option
@_recover_option
@click.pass_context
def reprocess(ctx: click.Context, recording_id: str, step: str, content_type: str | None, recover: bool) -> None:
    """Re-run one step (or all of them) and follow its progress."""
    _watch(
        ctx,
        recording_id,
        mode=RunMode.REPROCESS,
        step=ProcessingStep(step),
        content_type=ContentType(content_type) if content_type else None,
        recover=recover,
    )


@cli.command()
@click.argument("recording_id")
@click.option("--no-processing", is_flag=True, help="Finalize the upload without starting processing.")
@_content_type_option
@_recover_option
@click.pass_context
def finalize(ctx: click.Context, recording_id: str, no_processing: bool, content_type: str | None, recover: bool) -> None:
    """Finalize a browser recording and follow its processing."""
    _watch(
        ctx,
        recording_id,
        mode=RunMode.FINALIZE,
        content_type=ContentType(content_type) if content_type else None,
        start_processing=not no_processing,
        recover=recover,
    )


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--title", required=True, help="Title shown in the library.")
@click.option("--description", default=None)
@click.option("--tag", "tags", multiple=True, help="Tag to attach (repeatable).")
@click.option("--mime-type", default=None, help="Override the MIME type guessed from the file name.")
@click.option("--no-watch", is_flag=True, help="Return once processing has started.")
@click.pass_context
def upload(
    ctx: click.Context,
    file: Path,
    title: str,
    description: str | None,
    tags: tuple[str, ...],
    mime_type: str | None,
    no_watch: bool,
) -> None:
    """Upload a file, start processing it and follow the progress."""
    api = _api(ctx, "upload")
    try:
        result = upload_file(api, file, api.log, title=title, description=description, tags=list(tags), mime_type=mime_type)
    except (PipewatchError, ValueError) as exc:
        click.echo(f"Upload failed: {exc}", err=True)
        raise SystemExit(1) from None

    click.echo(f"Uploaded {file.name} as recording {result.recording_id}")
    if not no_watch:
        _watch(ctx, result.recording_id, mode=RunMode.UPLOAD)


def _guess_artifacts(item: ContentItem) -> tuple[bool, bool]:
    """Whether a transcript and a document exist, judging from the server status alone."""
    has_transcript = item.status in (ContentStatus.TRANSCRIBED, ContentStatus.DOC_GENERATING, ContentStatus.COMPLETED)
    return has_transcript, item.status == ContentStatus.COMPLETED


@cli.command()
@click.argument("recording_id")
@click.pass_context
def status(ctx: click.Context, recording_id: str) -> None:
    """Show the processing pipeline of a recording as the server last reported it."""
    api = _api(ctx, "status")
    try:
        item = api.get_recording(recording_id)
    except PipewatchError as exc:
        click.echo(f"Could not load {recording_id}: {exc}", err=True)
        raise SystemExit(1) from None

    click.echo(f"{item.title or recording_id} [{item.status}]")
    has_transcript, has_document = _guess_artifacts(item)
    click.echo(render_stages(stages_from_content(item, has_transcript, has_document)))


@cli.command()
@click.argument("recording_id")
@click.option("--permanent", is_flag=True, help="Delete for good instead of moving to trash.")
@click.pass_context
def delete(ctx: click.Context, recording_id: str, permanent: bool) -> None:
    """Delete a recording."""
    api = _api(ctx, "delete")
    try:
        api.delete_recording(recording_id, permanent=permanent)
    except PipewatchError as exc:
        click.echo(f"Delete failed: {exc}", err=True)
        raise SystemExit(1) from None
    click.echo(f"Deleted {recording_id}" + (" permanently" if permanent else ""))


@cli.command()
@click.argument("recording_id")
@click.pass_context
def restore(ctx: click.Context, recording_id: str) -> None:
    """Restore a recording from the trash."""
    api = _api(ctx, "restore")
    try:
        api.restore_recording(recording_id)
    except PipewatchError as exc:
        click.echo(f"Restore failed: {exc}", err=True)
        raise SystemExit(1) from None
    click.echo(f"Restored {recording_id}")


@cli.command()
@click.pass_context
def tags(ctx: click.Context) -> None:
    """List tags."""
    for tag in _api(ctx, "tags").list_tags():
        click.echo(f"  {tag.name} ({tag.id})")


@cli.command()
@click.option("--add", "add_to", default=None, help="Collection id to add the given recordings to.")
@click.argument("recording_ids", nargs=-1)
@click.pass_context
def collections(ctx: click.Context, add_to: str | None, recording_ids: tuple[str, ...]) -> None:
    """List collections, or add recordings to one with --add."""
    api = _api(ctx, "collections")
    if add_to:
        if not recording_ids:
            raise click.UsageError("Give at least one recording id to add.")
        try:
            api.add_to_collection(add_to, list(recording_ids))
        except PipewatchError as exc:
            click.echo(f"Could not add to {add_to}: {exc}", err=True)
            raise SystemExit(1) from None
        click.echo(f"Added {len(recording_ids)} item(s) to {add_to}")
        return

    for collection in api.list_collections():
        count = f", {collection.item_count} items" if collection.item_count is not None else ""
        click.echo(f"  {collection.name} ({collection.id}{count})")


@cli.command()
@click.pass_context
def stages(ctx: click.Context) -> None:
    """Print the stage registry and the pipeline of each content type."""
    pipelines = ctx.obj["config"].pipelines

    click.echo("\n=== Stages ===")
    for config in STAGE_CONFIGS.values():
        click.echo(f"  {config.icon or ' '} {config.id}: {config.label}" + (f" ({config.benefit})" if config.benefit else ""))

    click.echo("\n=== Job Types ===")
    for job_type, stage_id in JOB_TYPE_TO_STAGE.items():
        click.echo(f"  {job_type} -> {stage_id}  [{JOB_LABELS.get(job_type, job_type)}]")

    click.echo("\n=== Pipelines ===")
    for content_type in PIPELINES:
        click.echo(f"  {content_type}: {' -> '.join(pipeline_for(content_type, pipelines))}")
    click.echo()
