"""
Typer CLI for the PlayPath progression engine.

Commands:
    playpath db init                  - Initialize database tables
    playpath content seed             - Load the default curriculum and achievements
    playpath content validate         - Check the prerequisite graph for cycles and dangling ids
    playpath child add ID NAME        - Create or update a child profile
    playpath child list               - List child profiles
    playpath complete CHILD ACTIVITY  - Record a completed activity
    playpath status CHILD             - Show unlocks, streak and achievements
    playpath path CHILD               - Show the learning path and next milestone
    playpath rebuild CHILD            - Recompute derived state from the attempt log

Usage:
    playpath --help
    playpath content seed
    playpath complete ana math-01 --total 5 --errors 1
"""

from __future__ import annotations

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from config import get_settings
from playpath.core.errors import ProgressionError, StorageFailure
from playpath.core.log import configure_logging
from playpath.core.models import Child, SubscriptionTier

app = typer.Typer(
    help="PlayPath CLI: progression, unlocks, streaks and achievements",
    no_args_is_help=True,
)

console = Console()


# ========================================
# Context Builder (Dependency Injection)
# ========================================


class CLIContext:
    """
    Dependency injection container for CLI commands.

    Lazily builds the store, catalog and engine so `db init` works on an
    empty database.
    """

    def __init__(self, database_url: str | None = None):
        self.settings = get_settings()
        self.database_url = database_url or self.settings.database_url
        self._store = None
        self._engine = None

    @property
    def store(self):
        """Lazy load SqlProgressStore."""
        if self._store is None:
            from playpath.db.sql_store import SqlProgressStore

            self._store = SqlProgressStore.from_url(self.database_url)
        return self._store

    @property
    def engine(self):
        """Lazy load ProgressionEngine over the stored catalog."""
        if self._engine is None:
            from playpath.content.catalog import ContentCatalog
            from playpath.progression.engine import ProgressionEngine

            catalog = ContentCatalog.from_store(self.store)
            self._engine = ProgressionEngine(self.store, catalog, self.settings)
        return self._engine


@app.callback()
def main_callback(
    ctx: typer.Context,
    database_url: str | None = typer.Option(
        None, "--database-url", help="Override PLAYPATH_DATABASE_URL"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """PlayPath progression engine, developer surface."""
    settings = get_settings()
    configure_logging("DEBUG" if verbose else settings.log_level)
    ctx.obj = CLIContext(database_url)


# ========================================
# Database Commands
# ========================================

db_app = typer.Typer(help="Database management")
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init(ctx: typer.Context) -> None:
    """
    Initialize database tables from SQLAlchemy models.

    Safe to run multiple times (idempotent).
    """
    logger.info("Initializing database tables...")
    cli: CLIContext = ctx.obj
    try:
        store = cli.store
    except (SQLAlchemyError, OSError) as e:
        rprint(f"[red]✗[/red] Database initialization failed: {e}")
        raise typer.Exit(code=1) from e
    rprint(f"[green]✓[/green] Database ready at {store.engine.url}")


# ========================================
# Content Commands
# ========================================

content_app = typer.Typer(help="Curriculum content")
app.add_typer(content_app, name="content")


@content_app.command("seed")
def content_seed(ctx: typer.Context) -> None:
    """Load the default curriculum and achievement table (upsert by id)."""
    from playpath.content.curriculum import seed_default_content

    try:
        subjects, activities, achievements = seed_default_content(ctx.obj.store)
    except StorageFailure as e:
        rprint(f"[red]✗[/red] Seeding failed: {e}")
        raise typer.Exit(code=1) from e
    rprint(
        f"[green]✓[/green] Seeded {subjects} subjects, {activities} activities, "
        f"{achievements} achievements"
    )


@content_app.command("validate")
def content_validate(ctx: typer.Context) -> None:
    """Validate the stored prerequisite graph."""
    from playpath.content.catalog import ContentCatalog

    catalog = ContentCatalog.from_store(ctx.obj.store)
    graph = catalog.graph

    table = Table(title="Content Graph")
    table.add_column("Subject", style="cyan")
    table.add_column("Activities", justify="right")
    table.add_column("Status")
    for subject in graph.subjects:
        status = (
            f"[red]{graph.broken_subjects[subject.id]}[/red]"
            if graph.is_broken(subject.id)
            else "[green]ok[/green]"
        )
        table.add_row(subject.name, str(len(graph.activities_for(subject.id))), status)
    console.print(table)

    if graph.broken_subjects:
        rprint(f"\n[red]✗[/red] {len(graph.broken_subjects)} subject(s) with content errors")
        raise typer.Exit(code=1)
    rprint("\n[green]✓[/green] Content graph is valid")


# ========================================
# Child Commands
# ========================================

child_app = typer.Typer(help="Child profiles")
app.add_typer(child_app, name="child")


@child_app.command("add")
def child_add(
    ctx: typer.Context,
    child_id: str = typer.Argument(..., help="Child id"),
    name: str = typer.Argument(..., help="Display name"),
    age: int = typer.Option(5, "--age", min=3, max=8, help="Age in years (3-8)"),
    premium: bool = typer.Option(False, "--premium", help="Premium subscription"),
    language: str = typer.Option("es", "--language", help="Preferred language"),
) -> None:
    """Create or update a child profile."""
    store = ctx.obj.store
    existing = store.get_child(child_id)
    child = Child(
        id=child_id,
        name=name,
        age=age,
        subscription=SubscriptionTier.PREMIUM if premium else SubscriptionTier.TRIAL,
        preferred_language=language,
        difficulty=existing.difficulty if existing else {},
    )
    try:
        with store.transaction():
            store.save_child(child)
    except StorageFailure as e:
        rprint(f"[red]✗[/red] Could not save {name}: {e}")
        raise typer.Exit(code=1) from e
    rprint(f"[green]✓[/green] Saved {name} ({child.age_band.value}, {child.subscription.value})")


@child_app.command("list")
def child_list(ctx: typer.Context) -> None:
    """List child profiles."""
    children = ctx.obj.store.list_children()
    if not children:
        rprint("[yellow]No children yet.[/yellow] Add one with: playpath child add ID NAME")
        return

    table = Table(title="Children")
    table.add_column("Id", style="cyan")
    table.add_column("Name")
    table.add_column("Age", justify="right")
    table.add_column("Subscription")
    for child in children:
        table.add_row(child.id, child.name, str(child.age), child.subscription.value)
    console.print(table)


# ========================================
# Progression Commands
# ========================================


@app.command("complete")
def complete(
    ctx: typer.Context,
    child_id: str = typer.Argument(..., help="Child id"),
    activity_id: str = typer.Argument(..., help="Activity id"),
    total: int = typer.Option(5, "--total", help="Total questions"),
    errors: int = typer.Option(0, "--errors", help="Number of mistakes"),
    seconds: int = typer.Option(60, "--seconds", help="Time spent"),
) -> None:
    """Record a completed activity and show what it unlocked."""
    try:
        result = ctx.obj.engine.process_completion(
            child_id,
            activity_id,
            {"total_questions": total, "error_count": errors, "time_spent_seconds": seconds},
        )
    except ProgressionError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1) from e

    rprint(f"\n[bold yellow]{'★' * result.stars}{'☆' * (3 - result.stars)}[/bold yellow]  {result.score.breakdown}")
    rprint(f"  Celebration: {result.celebration.message_key}")
    if result.new_unlocks:
        rprint(f"  [green]+{len(result.new_unlocks)} new activities unlocked[/green]")
        for unlock in result.new_unlocks:
            rprint(f"    - {unlock.activity_id} ({unlock.reason.value})")
    for awarded in result.new_achievements:
        rprint(f"  [magenta]Achievement:[/magenta] {awarded.definition.name}")
    recommendation = result.difficulty_recommendation
    if recommendation.changed:
        rprint(
            f"  Difficulty: {recommendation.current_tier.display_name} -> "
            f"{recommendation.recommended_tier.display_name} ({recommendation.reason})"
        )
    streak = result.streak_update
    rprint(f"  Streak: {streak.state.current} day(s) (longest {streak.state.longest})")
    for crown in result.crown_challenges:
        rprint(f"  [bold yellow]Crown challenge available:[/bold yellow] {crown.title}")


@app.command("status")
def status(
    ctx: typer.Context,
    child_id: str = typer.Argument(..., help="Child id"),
    subject_id: str | None = typer.Option(None, "--subject", "-s", help="Limit to one subject"),
) -> None:
    """Show unlocked activities, streak and achievement progress."""
    engine = ctx.obj.engine
    try:
        unlocked = engine.get_unlocked_activities(child_id, subject_id)
        streak = engine.get_streak_status(child_id)
        achievements = engine.get_achievement_progress(child_id)
    except ProgressionError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1) from e

    table = Table(title=f"Unlocked activities for {child_id}")
    table.add_column("Activity", style="cyan")
    table.add_column("Subject")
    table.add_column("Tier")
    table.add_column("Reason")
    table.add_column("Done")
    for info in unlocked:
        table.add_row(
            info.activity.id,
            info.activity.subject_id,
            info.activity.tier.display_name,
            info.reason.value,
            "✓" if info.is_completed else ("new" if info.is_newly_unlocked else ""),
        )
    console.print(table)

    rprint(f"\n[bold]Streak:[/bold] {streak.current} (longest {streak.longest})")
    if streak.days_to_next_milestone is not None:
        rprint(f"  {streak.days_to_next_milestone} day(s) to the {streak.next_milestone}-day milestone")
    if streak.recovery is not None:
        suggestion = streak.recovery.suggested_activity_id or "any Easy activity"
        rprint(f"  [yellow]Streak broken.[/yellow] Try {suggestion} to start again")

    earned = [a for a in achievements if a.is_earned]
    rprint(f"\n[bold]Achievements:[/bold] {len(earned)}/{len(achievements)} earned")
    for item in achievements:
        if not item.is_earned and item.progress > 0:
            rprint(f"  {item.name}: {item.percentage}%")


@app.command("path")
def path(
    ctx: typer.Context,
    child_id: str = typer.Argument(..., help="Child id"),
    subject_id: str | None = typer.Option(None, "--subject", "-s", help="Limit to one subject"),
    length: int = typer.Option(10, "--length", "-n", help="Maximum number of steps"),
) -> None:
    """Show the recommended learning path and the next milestone."""
    engine = ctx.obj.engine
    try:
        learning_path = engine.get_learning_path(child_id, subject_id, length)
        milestone = engine.get_next_milestone(child_id, subject_id) if subject_id else None
    except ProgressionError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1) from e

    table = Table(title=f"Learning path for {child_id} ({learning_path.target_tier.display_name})")
    table.add_column("#", justify="right")
    table.add_column("Activity", style="cyan")
    table.add_column("Tier")
    table.add_column("Why")
    for step in learning_path.steps:
        table.add_row(
            str(step.position), step.activity.id, step.activity.tier.display_name, step.reason
        )
    console.print(table)

    if milestone is not None:
        state = "unlocked" if milestone.is_unlocked else f"{milestone.remaining_activities} activities away"
        rprint(f"\n[bold]Next milestone:[/bold] {milestone.activity.title or milestone.activity.id} ({state})")


@app.command("rebuild")
def rebuild(
    ctx: typer.Context,
    child_id: str = typer.Argument(..., help="Child id"),
) -> None:
    """Recompute unlocks, streak and achievements from the attempt log."""
    try:
        summary = ctx.obj.engine.rebuild_derived_state(child_id)
    except ProgressionError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1) from e
    rprint(
        f"[green]✓[/green] Rebuilt {child_id}: +{summary.unlocks_added} unlocks, "
        f"+{summary.achievements_added} achievements, streak {summary.streak.current}"
    )


if __name__ == "__main__":
    app()
