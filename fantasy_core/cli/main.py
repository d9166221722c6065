"""CLI commands for the fantasy core engine.

Commands:
- init-db: create the database tables
- serve: run the API with uvicorn
- plans: compare subscription plans
- optimize: build optimal lineups from a player pool CSV
- validate: check a lineup CSV against the roster rules

Player pool CSVs need player_id, position and salary columns; name, team,
projected_points and ownership_percent are optional. Lineup CSVs add a slot
column, and the files written by `optimize --export` are accepted as is.
"""

import json
import logging
import sys
from pathlib import Path

import pandas as pd
import typer
from rich.console import Console
from rich.table import Table

from ..config.settings import settings
from ..database.init_db import create_database, reset_database
from ..exceptions import ConfigurationError, FantasyCoreError
from ..gating.capabilities import CapabilityTable
from ..gating.tiers import PLANS
from ..optimization.lineup_builder import (
    LineupBuilder,
    OptimizationConstraints,
    OptimizationResult,
)
from ..optimization.roster import (
    Player,
    Roster,
    RosterLimits,
    RosterSlot,
    classic_slots,
    slots_from_counts,
)
from ..optimization.validation import validate as validate_roster

app = typer.Typer(help="Fantasy core: feature gating and DFS lineup constraint engine")
console = Console()

logger = logging.getLogger(__name__)

# Column aliases accepted in CSV headers (lower-cased)
COLUMN_ALIASES = {
    "playerid": "player_id",
    "id": "player_id",
    "pos": "position",
    "team_abbr": "team",
    "salary": "cost",
    "projected": "projected_points",
    "projection": "projected_points",
    "ownership": "ownership_percent",
}

OPTIONAL_COLUMNS = {"name": "", "team": "", "projected_points": 0.0, "ownership_percent": 0.0}


def setup_logging():
    """Configure logging to the console, plus a file when LOG_FILE is set."""
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if settings.log_file:
        settings.log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(settings.log_file))

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )


@app.callback()
def main() -> None:
    setup_logging()


def parse_slots(spec: str | None) -> list[RosterSlot]:
    """Slots from "QB:1,RB:2,FLEX:1"; the classic DraftKings layout when empty."""
    if not spec:
        return classic_slots(settings.flex_positions)
    counts: dict[str, int] = {}
    for part in spec.split(","):
        name, _, count = part.partition(":")
        if not name.strip() or not count.strip().isdigit():
            raise typer.BadParameter(f"Invalid slot {part!r}, expected NAME:COUNT")
        counts[name.strip().upper()] = int(count)
    try:
        return slots_from_counts(counts, settings.flex_positions)
    except ConfigurationError as e:
        raise typer.BadParameter(str(e)) from e


def load_frame(csv_path: Path, required: set[str]) -> pd.DataFrame:
    """Read a CSV and normalize its headers to the player field names.

    Optional columns are added (or their blanks filled) with defaults.
    """
    df = pd.read_csv(csv_path)
    df.columns = [COLUMN_ALIASES.get(c.strip().lower(), c.strip().lower()) for c in df.columns]
    missing = required - set(df.columns)
    if missing:
        raise typer.BadParameter(f"{csv_path} is missing columns: {sorted(missing)}")

    for column, default in OPTIONAL_COLUMNS.items():
        df[column] = df[column].fillna(default) if column in df.columns else default
    df["player_id"] = df["player_id"].astype(str)
    return df


def frame_to_players(df: pd.DataFrame) -> list[Player]:
    return [
        Player(
            player_id=row["player_id"],
            name=str(row["name"]) or row["player_id"],
            position=str(row["position"]).strip().upper(),
            team=str(row["team"]).strip().upper(),
            cost=int(row["cost"]),
            projected_points=float(row["projected_points"]),
            ownership_percent=float(row["ownership_percent"]),
        )
        for row in df.to_dict("records")
    ]


def _limits(
    salary_cap: int | None,
    max_per_team: int | None,
    max_ownership: float | None,
    qb_stack: int | None,
) -> RosterLimits:
    return RosterLimits(
        salary_cap=salary_cap if salary_cap is not None else settings.salary_cap,
        max_ownership=max_ownership,
        max_players_per_team=(
            max_per_team if max_per_team is not None else settings.max_players_per_team
        ),
        min_qb_stack=qb_stack,
    )


# ========== DATABASE COMMANDS ==========


@app.command("init-db")
def init_db(
    reset: bool = typer.Option(False, "--reset", help="Drop existing tables first (destroys data)"),
) -> None:
    """Create the database tables."""
    try:
        if reset:
            reset_database()
        else:
            create_database()
        console.print("✅ Database initialized", style="green")
    except Exception as e:
        console.print(f"❌ Database initialization failed: {e}", style="red")
        raise typer.Exit(1) from e


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, help="Bind address (default from settings)"),
    port: int | None = typer.Option(None, help="Port (default from settings)"),
) -> None:
    """Run the API server."""
    import uvicorn

    uvicorn.run(
        "fantasy_core.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
    )


# ========== SUBSCRIPTION COMMANDS ==========


@app.command("plans")
def plans() -> None:
    """Compare subscription plans, their quotas and capabilities."""
    capabilities = CapabilityTable.with_overrides(settings.capability_overrides)

    table = Table(title="Subscription Plans")
    table.add_column("Tier", style="cyan")
    table.add_column("Plan")
    table.add_column("Monthly", justify="right")
    table.add_column("Yearly", justify="right")
    table.add_column("Hourly Quota", justify="right")
    table.add_column("Capabilities", style="green")

    for tier, plan in sorted(PLANS.items(), key=lambda item: item[0].rank):
        quota = settings.quota_for(tier)
        table.add_row(
            tier.value,
            plan.name,
            f"${plan.monthly_price:.2f}",
            f"${plan.yearly_price:.2f}" if plan.yearly_price is not None else "-",
            str(quota) if quota else "unlimited",
            ", ".join(c.route_key for c in capabilities.capabilities_for(tier)),
        )

    console.print(table)


# ========== LINEUP COMMANDS ==========


@app.command("optimize")
def optimize(
    players_csv: Path = typer.Argument(..., exists=True, dir_okay=False, help="Player pool CSV"),
    slots: str | None = typer.Option(None, help='Roster slots, e.g. "QB:1,RB:2,FLEX:1"'),
    salary_cap: int | None = typer.Option(None, help="Salary cap (default from settings)"),
    lock: list[str] = typer.Option([], "--lock", help="Player id that must be in the lineup"),
    exclude: list[str] = typer.Option([], "--exclude", help="Player id to leave out"),
    max_per_team: int | None = typer.Option(None, help="Maximum players from one team"),
    max_ownership: float | None = typer.Option(None, help="Maximum ownership % per player"),
    qb_stack: int | None = typer.Option(None, help="WR/TE teammates required per QB"),
    num_lineups: int = typer.Option(1, min=1, max=20, help="Number of lineups to generate"),
    diversity: float = typer.Option(0.3, min=0.0, max=1.0, help="Projection discount for reused players"),
    output_format: str = typer.Option("table", help="Output format (table, json)"),
    export: Path | None = typer.Option(None, help="Write the best lineup to this CSV"),
) -> None:
    """Build optimal lineups from a player pool CSV.

    Examples:
        fantasy-core optimize players.csv --salary-cap 50000 --qb-stack 1

        fantasy-core optimize players.csv --slots "QB:1,RB:2,FLEX:1" --lock p12 --num-lineups 3
    """
    try:
        candidates = frame_to_players(
            load_frame(players_csv, {"player_id", "position", "cost"})
        )
        roster_slots = parse_slots(slots)
        limits = _limits(salary_cap, max_per_team, max_ownership, qb_stack)
        constraints = OptimizationConstraints(locked_ids=set(lock), excluded_ids=set(exclude))

        console.print(f"🎯 Optimizing over {len(candidates)} players...")
        builder = LineupBuilder()
        if num_lineups > 1:
            results = builder.generate_multiple_lineups(
                candidates, roster_slots, limits, constraints,
                num_lineups=num_lineups, diversity_factor=diversity,
            )
        else:
            results = [builder.optimize(candidates, roster_slots, limits, constraints)]
    except FantasyCoreError as e:
        console.print(f"❌ Optimization failed: {e}", style="red")
        logger.exception("Lineup optimization failed")
        raise typer.Exit(1) from e

    if not results[0].is_optimal:
        infeasibility = results[0].infeasibility
        console.print(
            f"😞 No valid lineup ({infeasibility.reason.value}): {infeasibility.detail}",
            style="yellow",
        )
        raise typer.Exit(2)

    if output_format.lower() == "json":
        _display_json_output(builder, results)
    else:
        for k, result in enumerate(results, start=1):
            _display_lineup_table(result, f"Lineup {k}" if len(results) > 1 else "Optimal Lineup")

    if export:
        builder.export_lineup_to_csv(results[0], str(export))
        console.print(f"💾 Exported lineup to {export}")


@app.command("validate")
def validate(
    lineup_csv: Path = typer.Argument(..., exists=True, dir_okay=False, help="Lineup CSV"),
    slots: str | None = typer.Option(None, help='Roster slots, e.g. "QB:1,RB:2,FLEX:1"'),
    salary_cap: int | None = typer.Option(None, help="Salary cap (default from settings)"),
    max_per_team: int | None = typer.Option(None, help="Maximum players from one team"),
    max_ownership: float | None = typer.Option(None, help="Maximum ownership % per player"),
    qb_stack: int | None = typer.Option(None, help="WR/TE teammates required per QB"),
    explain: bool = typer.Option(False, "--explain", help="Report every violation, not just the first"),
    draft: bool = typer.Option(False, "--draft", help="Allow unfilled slots (draft in progress)"),
) -> None:
    """Validate a lineup CSV. Exits with status 1 when the lineup is invalid."""
    df = load_frame(lineup_csv, {"slot", "player_id", "position", "cost"})
    roster = Roster.from_pairs(
        zip((str(s) for s in df["slot"]), frame_to_players(df))
    )
    result = validate_roster(
        roster,
        parse_slots(slots),
        _limits(salary_cap, max_per_team, max_ownership, qb_stack),
        collect_all=explain,
        require_complete=not draft,
    )

    _display_lineup_table(OptimizationResult.optimal(roster, "input"), "Lineup")
    if result.is_valid:
        console.print("✅ Lineup is valid", style="green")
        return

    table = Table(title="Violations")
    table.add_column("Rule", style="red")
    table.add_column("Detail")
    for violation in result.violations:
        table.add_row(violation.rule.value, violation.detail)
    console.print(table)
    raise typer.Exit(1)


def _display_lineup_table(result: OptimizationResult, title: str) -> None:
    roster = result.roster
    table = Table(title=title)
    table.add_column("Slot", style="cyan")
    table.add_column("Player")
    table.add_column("Pos")
    table.add_column("Team")
    table.add_column("Salary", justify="right")
    table.add_column("Proj", justify="right", style="green")
    table.add_column("Own %", justify="right")

    for a in roster.assignments:
        table.add_row(
            a.slot,
            a.player.name,
            a.player.position,
            a.player.team,
            f"${a.player.cost:,}",
            f"{a.player.projected_points:.1f}",
            f"{a.player.ownership_percent:.1f}",
        )
    console.print(table)
    console.print(
        f"   💰 Salary: ${roster.total_cost:,}   📈 Projected: {roster.projected_points:.2f}"
        f"   👥 Ownership: {roster.total_ownership:.1f}%   ⚙️  {result.algorithm}"
    )


def _display_json_output(builder: LineupBuilder, results: list[OptimizationResult]) -> None:
    output = [
        {
            "algorithm": result.algorithm,
            "total_salary": result.total_salary,
            "projected_points": round(result.projected_points, 2),
            "lineup_value": round(result.lineup_value, 3),
            "lineup": [
                {
                    "slot": a.slot,
                    "player_id": a.player.player_id,
                    "name": a.player.name,
                    "position": a.player.position,
                    "team": a.player.team,
                    "cost": a.player.cost,
                    "projected_points": a.player.projected_points,
                }
                for a in result.roster.assignments
            ],
            "stacking": builder.analyze_stacking(result.roster),
        }
        for result in results
    ]
    console.print_json(json.dumps(output))


if __name__ == "__main__":
    app()
