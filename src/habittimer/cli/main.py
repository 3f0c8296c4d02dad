"""CLI entry point for habittimer.

Uses Click to expose the ``habittimer`` command group.  Every invocation
loads the store, replays background ticks missed since the last run, does its
work and saves the background runs again.
"""

from __future__ import annotations

import sys
import time
from contextlib import contextmanager
from datetime import date, timedelta
from pathlib import Path
from typing import Callable, Iterator, Optional, TypeVar

import click

import habittimer
from habittimer.common.logger import configure_logging
from habittimer.config import CONFIG_DIR_ENV, Settings
from habittimer.core.background import BackgroundSessionManager
from habittimer.core.countdown import CountdownEngine, CountdownState, DisplayState
from habittimer.core.normalize import planned_seconds
from habittimer.core.segments import (
    Habit,
    HabitDay,
    Segment,
    SegmentKind,
    format_duration,
    format_seconds,
    segment_label,
)
from habittimer.core.status import StatusFilePublisher
from habittimer.core.store import HabitStore, HabitTimerError

T = TypeVar("T")


class TerminalNotifier:
    """Rings the terminal bell and prints a finished message."""

    def notify_finished(self, title: str) -> None:
        click.echo(f"\aFinished: {title}")


def _run(action: Callable[[], T]) -> T:
    """Execute *action*, converting ``HabitTimerError`` to a CLI error.

    On ``HabitTimerError`` the message is printed to stderr and the process
    exits with code 1.
    """
    try:
        return action()
    except HabitTimerError as exc:
        click.echo(str(exc), err=True)
        sys.exit(1)


def _parse_segment(text: str) -> Segment:
    """Parse ``active:90``, ``pause:30``, ``start:5`` or ``stop``."""
    kind_text, _, seconds_text = text.partition(":")
    kind_text = kind_text.strip().lower()
    if kind_text == "stop":
        return Segment(SegmentKind.PAUSE, 0, is_stop=True)
    try:
        kind = SegmentKind(kind_text)
        seconds = float(seconds_text) if seconds_text else 0.0
    except ValueError:
        raise click.BadParameter(f"expected KIND:SECONDS or 'stop', got {text!r}") from None
    return Segment(kind, seconds)  # type: ignore[arg-type]


def _parse_days(text: str) -> frozenset[HabitDay]:
    try:
        return frozenset(HabitDay.parse(part) for part in text.split(",") if part.strip())
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from None


def _render(display: DisplayState, state: CountdownState) -> str:
    line = (
        f"{display.label} {format_seconds(display.remaining)}"
        f"  (total left {format_seconds(display.remaining_total)})"
    )
    if display.next_label is not None:
        line += f"  next: {display.next_label} {display.next_duration}"
    if state is CountdownState.PAUSED:
        line += "  [paused]"
    return line


class App:
    """The objects one CLI invocation works with."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.store = HabitStore(settings.config_dir)
        self.store.backfill_skipped()
        self.notifier = TerminalNotifier()
        self.manager = BackgroundSessionManager(
            log_sink=self.store,
            publisher=StatusFilePublisher(settings.config_dir),
            notifier=self.notifier,
        )

    @contextmanager
    def background(self) -> Iterator[BackgroundSessionManager]:
        """Load detached runs, yield the manager, then persist it."""
        self.store.load_background(self.manager)
        try:
            yield self.manager
        finally:
            self.store.save_background(self.manager)


pass_app = click.make_pass_decorator(App)


@click.group()
@click.version_option(version=habittimer.__version__, prog_name="habittimer")
@click.option(
    "--config-dir",
    type=click.Path(file_okay=False, path_type=Path),
    envvar=CONFIG_DIR_ENV,
    default=None,
    help="Where habits, logs and live status are stored.",
)
@click.option("-v", "--verbose", is_flag=True, help="Log to the console as well.")
@click.pass_context
def cli(ctx: click.Context, config_dir: Optional[Path], verbose: bool) -> None:
    """habittimer: segmented interval timers for daily habits."""
    settings = Settings.from_env(config_dir)
    configure_logging(settings, console=verbose)
    ctx.obj = App(settings)


@cli.command()
@click.argument("title")
@click.option(
    "-s",
    "--segment",
    "segments",
    multiple=True,
    metavar="KIND:SECONDS",
    help="active:90, pause:30, start:5 or stop.  Repeat in order.",
)
@click.option("--days", default=None, help="Comma-separated weekdays, e.g. mo,we,fr.  Default: every day.")
@pass_app
def add(app: App, title: str, segments: tuple[str, ...], days: Optional[str]) -> None:
    """Add a habit called TITLE."""
    habit = Habit(
        title=title,
        segments=[_parse_segment(text) for text in segments],
        active_days=_parse_days(days) if days else frozenset(HabitDay),
    )
    app.store.add(habit)
    click.echo(f"Added '{habit.title}' ({format_seconds(planned_seconds(habit))})")


@cli.command(name="list")
@pass_app
def list_habits(app: App) -> None:
    """List habits, with the state of any background run."""
    if not app.store.habits:
        click.echo("No habits yet")
        return
    today = {habit.id for habit in app.store.todays_habits()}
    with app.background() as manager:
        for habit in app.store.habits:
            marker = "*" if habit.id in today else " "
            line = f"{marker} {habit.title}  {format_seconds(planned_seconds(habit))}"
            snapshot = manager.snapshot(habit.id)
            if snapshot is not None:
                line += f"  [{snapshot.badge} {format_seconds(snapshot.remaining_total)}]"
            click.echo(line)


@cli.command()
@click.argument("habit")
@pass_app
def show(app: App, habit: str) -> None:
    """Show the segments of HABIT."""
    found = _run(lambda: app.store.find(habit))
    click.echo(found.title)
    for index, segment in enumerate(found.segments):
        click.echo(f"  {segment_label(found.segments, index):<10} {format_duration(segment)}")
    click.echo(f"  {'Total':<10} {format_seconds(planned_seconds(found))}")


@cli.command()
@click.argument("habit")
@pass_app
def run(app: App, habit: str) -> None:
    """Play HABIT in the foreground.  Ctrl-C leaves it running in the background."""
    found = _run(lambda: app.store.find(habit))
    engine = CountdownEngine(found, log_sink=app.store, notifier=app.notifier)
    with app.background() as manager:
        engine.appear(manager)
        if engine.state is not CountdownState.STOPPED_AT_BARRIER:
            engine.start_or_resume()
        # click.confirm turns Ctrl-C and EOF at the stop prompt into Abort
        try:
            _play(engine, manager)
        except (KeyboardInterrupt, click.Abort):
            click.echo("")
            if engine.disappear(manager):
                click.echo(f"'{found.title}' continues in the background")


def _play(engine: CountdownEngine, manager: BackgroundSessionManager) -> None:
    while engine.state is not CountdownState.COMPLETED:
        if engine.state is CountdownState.STOPPED_AT_BARRIER:
            if not click.confirm("Stop reached.  Continue?", default=True):
                engine.disappear(manager)
                click.echo(f"'{engine.title}' waits in the background")
                return
            engine.start_or_resume()
            continue
        if engine.state is not CountdownState.RUNNING:
            return
        click.echo(_render(engine.display(), engine.state))
        time.sleep(1)
        engine.tick()
        manager.tick()


@cli.command()
@pass_app
def status(app: App) -> None:
    """Show background runs."""
    with app.background() as manager:
        snapshots = manager.snapshots()
    if not snapshots:
        click.echo("No background runs")
        sys.exit(1)
    for snapshot in snapshots:
        click.echo(
            f"{snapshot.title}: {snapshot.badge}, {snapshot.label} "
            f"{format_seconds(snapshot.remaining)}, {format_seconds(snapshot.remaining_total)} left"
        )


def _command(app: App, action: str, reference: str, done: str) -> None:
    found = _run(lambda: app.store.find(reference))
    with app.background() as manager:
        handled = manager.handle_command(action, found.id)
    if not handled:
        click.echo(f"No active session for '{found.title}'", err=True)
        sys.exit(1)
    click.echo(f"{done} '{found.title}'")


@cli.command()
@click.argument("habit")
@pass_app
def pause(app: App, habit: str) -> None:
    """Pause the background run of HABIT."""
    _command(app, "pause", habit, "Paused")


@cli.command()
@click.argument("habit")
@pass_app
def resume(app: App, habit: str) -> None:
    """Resume the background run of HABIT (stepping past a stop)."""
    _command(app, "resume", habit, "Resumed")


@cli.command()
@click.argument("habit")
@pass_app
def cancel(app: App, habit: str) -> None:
    """Cancel the background run of HABIT and log it as aborted."""
    _command(app, "cancel", habit, "Cancelled")


@cli.command()
@click.argument("habit")
@click.option("--yesterday", is_flag=True, help="Skip yesterday's session instead of today's.")
@pass_app
def skip(app: App, habit: str, yesterday: bool) -> None:
    """Log HABIT as skipped for today (or yesterday)."""
    found = _run(lambda: app.store.find(habit))
    day = date.today() - timedelta(days=1) if yesterday else date.today()
    when = "yesterday" if yesterday else "today"
    if not found.is_scheduled(day):
        click.echo(f"'{found.title}' is not due {when}", err=True)
        sys.exit(1)
    if app.store.mark_skipped(found, day):
        click.echo(f"Skipped '{found.title}' {when}")
    else:
        click.echo(f"'{found.title}' already has a log entry {when}")


@cli.command(name="log")
@click.argument("habit", required=False)
@pass_app
def show_log(app: App, habit: Optional[str]) -> None:
    """Show the logbook, newest first."""
    if habit is None:
        entries = app.store.logs
    else:
        found = _run(lambda: app.store.find(habit))
        entries = app.store.logs_for(found.id)
    if not entries:
        click.echo("Logbook is empty")
        return
    for entry in entries:
        click.echo(
            f"{entry.date:%Y-%m-%d %H:%M}  {entry.title}  {entry.status.value}  "
            f"{format_seconds(entry.elapsed_seconds)}/{format_seconds(entry.planned_seconds)}"
        )
