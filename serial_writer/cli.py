import click
from pathlib import Path

from rich.console import Console
from rich.table import Table

from . import __version__
from .automation import ActionKind
from .config import Config
from .errors import SerialWriterError
from .models import Engine
from .quality import AnalysisContext, DynamicThresholdAgent, QualityAssuranceGateway
from .signals import default_extractor
from .state import StoryStateStore
from .strategy import CostLedger
from .utils.logger import setup_logger

console = Console()


def _store(config: Config) -> StoryStateStore:
    return StoryStateStore(
        config.storage.data_dir,
        history_size=config.automation.quality_history_size,
        stage_boundaries=config.pacing.stage_boundaries,
    )


@click.group()
@click.option('--config', '-c', type=click.Path(), default='config.yaml',
              help='Path to configuration file')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.pass_context
def cli(ctx: click.Context, config: str, verbose: bool):
    """Serial Writer - autonomous serial fiction with continuity and quality control."""
    ctx.ensure_object(dict)

    config_path = Path(config)
    if config_path.exists():
        ctx.obj['config'] = Config.from_yaml(config_path)
    else:
        ctx.obj['config'] = Config()

    log_level = "DEBUG" if verbose else ctx.obj['config'].log_level
    logger = setup_logger(log_level)
    ctx.obj['logger'] = logger
    ctx.obj['log_level'] = log_level

    logger.debug(f"Serial Writer v{__version__}")
    if config_path.exists():
        logger.info(f"Config loaded from: {config_path}")


@cli.command()
@click.option('--force', type=click.Choice([a.value for a in ActionKind]),
              help='Skip the scheduler and perform this action')
@click.option('--work', 'work_id', help='Target work for a forced continue/complete')
@click.option('--dry-run', is_flag=True, help='Decide and print the prompt without generating')
@click.pass_context
def run(ctx: click.Context, force: str, work_id: str, dry_run: bool):
    """Run one automation cycle: decide, generate, validate, commit."""
    from .generation import GenerationOrchestrator

    config = ctx.obj['config']
    logger = setup_logger(
        ctx.obj['log_level'],
        log_file=config.storage.data_dir / "logs" / "serial_writer.log",
    )

    try:
        orchestrator = GenerationOrchestrator(config)
        result = orchestrator.run_once(
            force=ActionKind(force) if force else None,
            work_id=work_id,
            dry_run=dry_run,
        )
    except SerialWriterError as e:
        logger.error(f"Run failed: {e}")
        raise click.ClickException(str(e))

    if result.dry_run:
        console.print(f"[bold]{result.decision.describe()}[/bold] using strategy {result.strategy}")
        console.print(result.prompt, markup=False, highlight=False)
        return

    table = Table(title=f"{result.work_id} - chapter {result.chapter_number}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Action", result.decision.action.value)
    table.add_row("Title", result.title or "")
    table.add_row("Strategy", result.strategy or "")
    table.add_row("Composite", f"{result.report.composite:.2f}" if result.report else "-")
    table.add_row("Grade", result.report.grade.value if result.report else "-")
    table.add_row("Degraded", "yes" if result.degraded else "no")
    table.add_row("Completed work", "yes" if result.completed else "no")
    table.add_row("Attempts", str(result.attempts))
    table.add_row("Cost", f"{result.cost:.2f}")
    console.print(table)


@cli.command()
@click.pass_context
def status(ctx: click.Context):
    """Show every work and the session budget."""
    config = ctx.obj['config']
    store = _store(config)

    try:
        states = store.list_states()
        ledger = CostLedger.load(store.ledger_path, config.strategy,
                                 session_hours=config.storage.session_hours)
    except SerialWriterError as e:
        ctx.obj['logger'].error(f"Could not read works: {e}")
        raise click.ClickException(str(e))

    table = Table(title="Works")
    table.add_column("Work", style="cyan")
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Chapter", justify="right")
    table.add_column("Progress", justify="right")
    table.add_column("Stage")
    table.add_column("Last quality", justify="right")
    for state in states:
        table.add_row(
            state.work_id,
            state.work.title,
            state.work.status.value,
            f"{state.current_chapter}/{state.work.target_chapters}",
            f"{state.plot_progress:.1f}%",
            state.stage.value,
            f"{state.quality_history[-1]:.2f}" if state.quality_history else "-",
        )
    console.print(table)

    console.print(
        f"Budget: {ledger.spent:.2f}/{ledger.budget:.2f} units spent "
        f"({ledger.usage_ratio:.0%}, {ledger.tier(config.strategy).value} tier)"
    )


@cli.command()
@click.argument('file', type=click.Path(exists=True, dir_okay=False))
@click.option('--work', 'work_id', help='Score against this work\'s continuity record')
@click.pass_context
def score(ctx: click.Context, file: str, work_id: str):
    """Score a chapter text with the four quality analyzers."""
    config = ctx.obj['config']
    logger = ctx.obj['logger']
    text = Path(file).read_text(encoding="utf-8")

    try:
        extractor = default_extractor(config.signal_set)
    except SerialWriterError as e:
        logger.error(f"Could not load signal set: {e}")
        raise click.ClickException(str(e))
    context = AnalysisContext()
    history = []
    milestone_index = None
    if work_id:
        store = _store(config)
        try:
            state = store.load(work_id)
        except SerialWriterError as e:
            logger.error(f"Could not load work '{work_id}': {e}")
            raise click.ClickException(str(e))
        previous = store.recent_bodies(work_id, 3) if state.current_chapter else []
        context = AnalysisContext(state=state, previous_bodies=previous)
        history = state.quality_history
        milestone_index = state.milestone_index

    agent = DynamicThresholdAgent(extractor, config.quality, config.thresholds,
                                  target_words=config.pacing.target_words)
    decision = agent.decide(text, history, milestone_index)
    gateway = QualityAssuranceGateway(extractor, config.quality)
    report, _ = gateway.score(text, context, decision)

    table = Table(title=Path(file).name)
    table.add_column("Engine", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Weight", justify="right")
    for engine in Engine:
        table.add_row(engine.value, f"{report.scores[engine]:.2f}", f"{report.weights[engine]:.2f}")
    console.print(table)

    verdict = "[green]pass[/green]" if report.passed else "[red]fail[/red]"
    console.print(
        f"Composite {report.composite:.2f} vs threshold {report.threshold:.2f}: "
        f"{verdict} ({report.grade.value})"
    )
    for line in decision.explain():
        console.print(f"  threshold: {line}")
    for issue in report.issues:
        console.print(f"  - {issue}")
    for rec in report.recommendations:
        console.print(f"  suggested repair: {rec}")


def main():
    cli(obj={})


if __name__ == '__main__':
    main()
