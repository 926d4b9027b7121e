"""Terminal rendering of scoreboards, board layouts and question files."""

from typing import Iterable, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..core.board_game import BoardGame, board_rows
from ..core.match_game import MatchGame
from ..core.questions import LoadReport
from ..core.rulesets import format_elapsed
from ..core.schemas import TIE, MarkerType

console = Console()

MARKER_GLYPHS = {MarkerType.OPTIONAL: "?", MarkerType.FORCED: "!"}


class GameNarrator:
    """Prints human-friendly views of both games."""

    def __init__(self, output: Optional[Console] = None):
        self.console = output or console

    def question_report(self, report: LoadReport, *, limit: int = 20) -> None:
        """Show parsed questions and load diagnostics."""
        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("ID", style="dim", width=4)
        table.add_column("Question")
        table.add_column("Answer")

        for question in report.questions[:limit]:
            if question.is_multiple_choice:
                answer = f"{'ABCD'[question.correct_index]}. {question.options[question.correct_index]}"
            else:
                answer = question.answer_text
            table.add_row(str(question.id), question.question_text, answer)

        self.console.print(table)
        if len(report.questions) > limit:
            self.console.print(f"[dim]... {len(report.questions) - limit} more[/dim]")
        self.console.print(f"Parsed {len(report.questions)} question(s), skipped {len(report.skipped_lines)} line(s)")
        if report.used_fallback:
            self.console.print(f"[red]Using built-in fallback questions[/red] ({report.error or 'no valid lines'})")

    def match_scoreboard(self, game: MatchGame) -> None:
        """Show team scores, pairs and the elapsed time."""
        table = Table(show_header=True, header_style="bold cyan", title="Match Game")
        table.add_column("Team")
        table.add_column("Points", justify="right")
        table.add_column("Pairs", justify="right")
        table.add_column("Attempts", justify="right")

        for player in game.players:
            marker = " *" if player.id == game.current_player and not game.completed else ""
            table.add_row(f"{player.name}{marker}", str(player.points), str(player.matches), str(player.attempts))

        self.console.print(table)
        self.console.print(
            f"Pairs {game.matched_pairs}/{game.rules.pairs}  "
            f"Time {format_elapsed(game.elapsed_seconds)}  Attempts {game.attempts}"
        )
        if game.completed:
            if game.winner == TIE:
                result = "[yellow]It's a tie![/yellow]"
            else:
                result = f"[green]{game.player(game.winner).name} wins![/green]"
            self.console.print(Panel(result, title="Game Over"))

    def board_grid(self, game: BoardGame) -> None:
        """Draw the board with markers, checkpoints and player tokens."""
        checkpoints = set(game.checkpoints)
        table = Table(show_header=False, show_lines=True, title="Board")
        for _ in range(game.rules.size):
            table.add_column(justify="center", width=6)

        for row in board_rows(game.rules.size):
            cells = []
            for cell in row:
                tag = ""
                if cell in checkpoints:
                    tag = "[magenta]CP[/magenta]"
                elif cell in game.markers:
                    tag = MARKER_GLYPHS[game.markers[cell]]
                tokens = "".join(str(p.id) for p in game.players if p.position == cell)
                label = f"{cell}{tag}"
                if tokens:
                    label += f"\n[bold]P{tokens}[/bold]"
                cells.append(label)
            table.add_row(*cells)

        self.console.print(table)
        self.console.print("[dim]? optional challenge   ! forced challenge   CP checkpoint[/dim]")

    def board_ranking(self, game: BoardGame) -> None:
        table = Table(show_header=True, header_style="bold cyan", title="Ranking")
        table.add_column("Rank", width=6)
        table.add_column("Team")
        table.add_column("Cell", justify="right")
        table.add_column("Shields", justify="right")

        for player in game.ranking():
            rank = str(player.rank) if player.rank is not None else "-"
            table.add_row(rank, player.name, str(player.position), str(player.shield))
        self.console.print(table)

    def notes(self, lines: Iterable[str]) -> None:
        for line in lines:
            self.console.print(f"[dim]{line}[/dim]")
