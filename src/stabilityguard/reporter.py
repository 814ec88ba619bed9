from rich.console import Console
from rich.markup import escape
from rich.table import Table

from stabilityguard.core.history import BoundedHistory
from stabilityguard.core.metrics import compute_metrics
from stabilityguard.core.models import TestStability


def _health_color(health: int) -> str:
    if health > 80:
        return "green"
    if health > 40:
        return "yellow"
    return "red"


class RichReporter:
    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def report(self, rankings: list[TestStability], build_number: int | None = None) -> None:
        if not rankings:
            self.console.print("[green]No unstable tests tracked.[/green]")
            return

        title = "Test Stability" if build_number is None else f"Test Stability (build {build_number})"
        self.console.print(f"\n[bold]{title}[/bold]")
        self.console.print(f"Tracking {len(rankings)} test(s) with known failures\n")

        table = Table(title="Unstable Tests", show_header=True, header_style="bold cyan")
        table.add_column("Test ID", style="dim", no_wrap=False)
        table.add_column("Stability", justify="right")
        table.add_column("Flakiness", justify="right")
        table.add_column("Failures", justify="right")
        table.add_column("Runs", justify="right")
        table.add_column("Description")

        for ranked in rankings:
            metrics = ranked.metrics
            color = _health_color(metrics.health)

            table.add_row(
                escape(ranked.test_id),
                f"{metrics.stability}%",
                f"[{color}]{metrics.flakiness}%[/{color}]",
                str(metrics.failed),
                str(metrics.total),
                metrics.description,
            )

        self.console.print(table)

        self._print_summary(rankings)

    def _print_summary(self, rankings: list[TestStability]) -> None:
        self.console.print()

        flaky = sum(1 for r in rankings if r.metrics.flakiness > 0)
        broken = sum(
            1 for r in rankings if r.metrics.total > 0 and r.metrics.stability == 0
        )

        self.console.print("[bold]Summary:[/bold]")
        if flaky > 0:
            self.console.print(f"  [yellow]Changing status[/yellow]: {flaky}")
        if broken > 0:
            self.console.print(f"  [red]Failing every retained run[/red]: {broken}")

        self.console.print()

        most_flaky = rankings[0]
        self.console.print(
            f"[bold]Most flaky:[/bold] {escape(most_flaky.test_id)} "
            f"({most_flaky.metrics.flakiness}%)"
        )

    def report_history(self, test_id: str, history: BoundedHistory | None) -> None:
        metrics = compute_metrics(history)

        self.console.print(f"\n[bold]{escape(test_id)}[/bold]")
        if history is None or len(history) == 0:
            self.console.print("[green]No history tracked for this test.[/green]")
        else:
            timeline = " ".join(
                f"[green]#{o.build_number} ok[/green]"
                if o.passed
                else f"[red]#{o.build_number} FAIL[/red]"
                for o in history.snapshot()
            )
            self.console.print(f"Last {len(history)} of up to {history.capacity} runs:")
            self.console.print(timeline)

        self.console.print(metrics.description)
