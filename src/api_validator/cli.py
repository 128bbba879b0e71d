"""CLI entry point for api-validator."""

import json
import logging
from concurrent.futures import ThreadPoolExecutor, wait
from pathlib import Path

import click

from api_validator import config
from api_validator.errors import ValidatorError
from api_validator.executor import Executor, HttpClient
from api_validator.generator.base import summarize
from api_validator.generator.testcase import RuleConfig, RuleSelection, all_rules_selection, suggested_selection
from api_validator.parser.base import ApiEndpoint
from api_validator.project import group_by_tag, import_project, load_endpoints
from api_validator.rules import RuleId, suggest
from api_validator.runner.controller import RunController, RunSummary
from api_validator.runner.state import Phase, RunState
from api_validator.storage import JsonStore, Project

RULE_CHOICES = [r.value for r in RuleId]
STOP_POLL_INTERVAL = 0.1


def _settings(store: JsonStore) -> config.Settings:
    return config.apply_env(store.load_settings())


def _get_project(store: JsonStore, project_id: str) -> Project:
    project = store.get_project(project_id)
    if project is None:
        raise click.ClickException(f"Project not found: {project_id}")
    return project


def _filter_endpoints(endpoints: list[ApiEndpoint], ids: tuple[str, ...]) -> list[ApiEndpoint]:
    """Keep only the endpoints whose id was requested (all when none was)."""
    if not ids:
        return endpoints
    unknown = set(ids) - {e.id for e in endpoints}
    if unknown:
        raise click.ClickException(f"Unknown endpoint id(s): {', '.join(sorted(unknown))}")
    return [e for e in endpoints if e.id in ids]


def _selection(endpoint: ApiEndpoint, rules: tuple[str, ...], all_rules: bool) -> RuleSelection:
    if all_rules:
        return all_rules_selection()
    if rules:
        return {rule: RuleConfig() for rule in rules}
    return suggested_selection(endpoint)


class _ErrorHandlingGroup(click.Group):
    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except ValidatorError as e:
            raise click.ClickException(e.message) from e


@click.group(cls=_ErrorHandlingGroup)
@click.option("--data-dir", type=click.Path(file_okay=False, path_type=Path), default=None, help="Where projects and results are stored.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, data_dir: Path | None, verbose: bool):
    """API Validator: probe OpenAPI-described APIs for input-validation gaps."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = JsonStore(config.data_dir(data_dir))


@main.command("import")
@click.argument("url")
@click.pass_obj
def import_(store: JsonStore, url: str):
    """Fetch an OpenAPI/Swagger document (URL or local file) and save it as a project."""
    click.echo(f"Loading {url}...")
    project, endpoints = import_project(url, store, timeout=_settings(store).request_timeout)
    click.echo(f"Project {project.id}: {project.name} ({project.version})")
    click.echo(f"Base URL: {project.base_url or '(none, pass --base-url when running)'}")
    for tag, tag_endpoints in group_by_tag(endpoints).items():
        click.echo(f"\n[{tag}]")
        for ep in tag_endpoints:
            click.echo(f"  {ep.method:<7}{ep.path}  ({ep.id})")
    click.echo(f"\nFound {len(endpoints)} endpoints.")


@main.command()
@click.pass_obj
def projects(store: JsonStore):
    """List imported projects."""
    current = store.get_current_project_id()
    for project in store.load_projects():
        marker = "*" if project.id == current else " "
        tested = project.last_tested_at or "never"
        click.echo(f"{marker} {project.id}  {project.name}  {project.url}  (last tested: {tested})")


@main.command("delete-project")
@click.argument("project_id")
@click.pass_obj
def delete_project(store: JsonStore, project_id: str):
    """Delete a project and its stored results."""
    _get_project(store, project_id)
    store.delete_project(project_id)
    click.echo(f"Deleted {project_id}")


@main.command()
@click.argument("project_id")
@click.pass_obj
def endpoints(store: JsonStore, project_id: str):
    """Show a project's endpoints with the rules suggested per parameter."""
    project = _get_project(store, project_id)
    for ep in load_endpoints(project, timeout=_settings(store).request_timeout):
        click.echo(f"{ep.id}: {ep.method} {ep.path}")
        for param in ep.parameters:
            rules = ", ".join(r.value for r in suggest(param)) or "-"
            required = " required" if param.required else ""
            click.echo(f"    {param.location}:{param.name} ({param.schema_.type}{required}) -> {rules}")


@main.command()
@click.argument("project_id")
@click.option("-e", "--endpoint", "endpoint_ids", multiple=True, help="Endpoint id to test (repeatable). Default: all.")
@click.option("-r", "--rule", "rules", multiple=True, type=click.Choice(RULE_CHOICES), help="Rule to run (repeatable). Default: suggested rules.")
@click.option("--all-rules", is_flag=True, help="Run every rule against every parameter.")
@click.option("--base-url", default=None, help="Override the base URL declared by the document.")
@click.pass_obj
def run(store: JsonStore, project_id: str, endpoint_ids: tuple[str, ...], rules: tuple[str, ...], all_rules: bool, base_url: str | None):
    """Run validation probes against a project's endpoints."""
    project = _get_project(store, project_id)
    settings = _settings(store)
    base_url = base_url or project.base_url
    if not base_url:
        raise click.ClickException("The document declares no server; pass --base-url.")

    selected = _filter_endpoints(load_endpoints(project, timeout=settings.request_timeout), endpoint_ids)
    click.echo(f"Testing {len(selected)} endpoints against {base_url}...")

    controllers = [
        RunController(
            executor=Executor(HttpClient(timeout=settings.request_timeout)),
            store=store,
            delay=settings.test_delay,
        )
        for _ in selected
    ]
    with ThreadPoolExecutor(max_workers=settings.max_concurrent_tests) as pool:
        futures = [
            pool.submit(controller.start, ep, _selection(ep, rules, all_rules), base_url, project.id)
            for controller, ep in zip(controllers, selected)
        ]
        try:
            wait(futures)
        except KeyboardInterrupt:
            click.echo("Stopping after in-flight requests...")
            for future in futures:
                future.cancel()
            # a worker may pick up an endpoint between cancel() and stop()
            while not all(f.done() for f in futures):
                for controller in controllers:
                    controller.stop()
                wait(futures, timeout=STOP_POLL_INTERVAL)

    total_failed = 0
    for ep, controller, future in zip(selected, controllers, futures):
        if future.cancelled():
            click.echo(f"\n{ep.method} {ep.path} [skipped]: not started")
            continue
        summary = future.result()
        total_failed += summary.stats.failed
        _echo_summary(ep, summary, controller.state)

    click.echo(f"\nDone. {total_failed} validation gaps found.")


def _echo_summary(endpoint: ApiEndpoint, summary: RunSummary, state: RunState) -> None:
    stats = summary.stats
    click.echo(
        f"\n{endpoint.method} {endpoint.path} [{summary.phase.value}]: {stats.total} tests, "
        f"{stats.passed} passed, {stats.failed} failed, {stats.inconclusive} inconclusive"
    )
    if summary.phase is Phase.STOPPED:
        click.echo(f"  stopped at {state.percentage}% ({state.completed}/{state.total})")
    for result in summary.results:
        if result.classification == "fail":
            click.echo(f"  [{result.severity}] {result.id}: {result.message}")
            click.echo(f"      -> {result.remediation}")


@main.command()
@click.argument("endpoint_id", required=False)
@click.option("--failed-only", is_flag=True, help="Only show failures not marked as false positives.")
@click.pass_obj
def results(store: JsonStore, endpoint_id: str | None, failed_only: bool):
    """Show the stored results of an endpoint, or a summary of all endpoints."""
    if endpoint_id is None:
        marks = store.load_false_positives()
        for stored_id, stored in store.load_all_test_results().items():
            s = summarize(stored.results, [m.test_id for m in marks.get(stored_id, [])])
            click.echo(f"{stored_id}: {s.total} tests, {s.passed} passed, {s.failed} failed, {s.inconclusive} inconclusive")
        return

    stored = store.load_test_results(endpoint_id)
    if stored is None:
        raise click.ClickException(f"No results stored for {endpoint_id}")

    accepted = {m.test_id for m in store.load_false_positives().get(endpoint_id, [])}
    for result in stored.results:
        if failed_only and (result.classification != "fail" or result.id in accepted):
            continue
        label = "false-positive" if result.id in accepted else result.classification
        status = result.status_code if result.status_code is not None else "-"
        click.echo(f"{label:<15}{status!s:<5}{result.id}  {result.message}")

    stats = summarize(stored.results, accepted)
    click.echo(
        f"\n{stats.total} tests, {stats.passed} passed, {stats.failed} failed, "
        f"{stats.inconclusive} inconclusive (run at {stored.timestamp})"
    )


@main.command()
@click.pass_obj
def history(store: JsonStore):
    """Show recent runs, newest first."""
    for entry in store.load_history():
        s = entry.stats
        click.echo(
            f"{entry.timestamp}  {entry.method} {entry.path} [{entry.phase}] "
            f"{s.passed}/{s.total} passed, {s.failed} failed, {s.inconclusive} inconclusive"
        )


@main.command("mark-fp")
@click.argument("endpoint_id")
@click.argument("test_id")
@click.option("--reason", default="", help="Why this failure is acceptable.")
@click.pass_obj
def mark_fp(store: JsonStore, endpoint_id: str, test_id: str, reason: str):
    """Mark a failing test as a false positive; it is skipped in later runs."""
    already_marked = store.is_false_positive(endpoint_id, test_id)
    store.save_false_positive(endpoint_id, test_id, reason)
    if already_marked:
        click.echo(f"Updated false-positive reason for {test_id}")
    else:
        click.echo(f"Marked {test_id} as false positive")


@main.command("unmark-fp")
@click.argument("endpoint_id")
@click.argument("test_id")
@click.pass_obj
def unmark_fp(store: JsonStore, endpoint_id: str, test_id: str):
    """Remove a false-positive mark."""
    if not store.remove_false_positive(endpoint_id, test_id):
        raise click.ClickException(f"{test_id} is not marked as false positive")
    click.echo(f"Unmarked {test_id}")


@main.command("export")
@click.argument("output", type=click.Path(dir_okay=False, path_type=Path))
@click.pass_obj
def export(store: JsonStore, output: Path):
    """Export all stored data to a JSON file."""
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(store.export_data(), indent=2), encoding="utf-8")
    click.echo(f"Exported to {output}")


@main.command("import-data")
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def import_data(store: JsonStore, input_path: Path):
    """Replace stored data with the contents of an export file."""
    try:
        data = json.loads(input_path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")
        store.import_data(data)
    except ValueError as e:
        # json.JSONDecodeError and pydantic.ValidationError are both ValueErrors
        raise click.ClickException(f"Invalid export file {input_path}: {e}") from e
    click.echo(f"Imported {input_path}")


@main.command()
@click.confirmation_option(prompt="Delete all projects, results and settings?")
@click.pass_obj
def clear(store: JsonStore):
    """Delete everything in the data directory."""
    store.clear_all()
    click.echo("Cleared all stored data")


@main.command()
@click.option("--delay-ms", type=click.IntRange(min=0), default=None, help="Delay between tests in milliseconds.")
@click.option("--timeout", type=click.FloatRange(min=0, min_open=True), default=None, help="Request timeout in seconds.")
@click.option("--max-concurrent", type=click.IntRange(min=1), default=None, help="Endpoints tested in parallel.")
@click.pass_obj
def settings(store: JsonStore, delay_ms: int | None, timeout: float | None, max_concurrent: int | None):
    """Show or update saved settings."""
    current = store.load_settings()
    updates = {
        k: v
        for k, v in (("test_delay_ms", delay_ms), ("request_timeout", timeout), ("max_concurrent_tests", max_concurrent))
        if v is not None
    }
    if updates:
        current = current.model_copy(update=updates)
        store.save_settings(current)
    for key, value in current.model_dump().items():
        click.echo(f"{key} = {value}")
