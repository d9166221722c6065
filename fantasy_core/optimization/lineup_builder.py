"""DFS lineup optimization using integer linear programming.

This file builds the highest-projected roster that satisfies every rule the
validator enforces:

1. Linear Programming (LP): Exact solution with PuLP and the CBC solver
2. Greedy Algorithm: Fast heuristic used as the single retry when the exact
   result fails validation
3. Multiple lineups: Diverse alternatives by discounting already-used players

Key Concepts for Beginners:

Optimization Problem Structure:
- Decision Variables: Binary x[p, s] = 1 when player p fills slot s. Only
  eligible (player, slot) pairs get a variable, so eligibility can never be
  violated by the solver.
- Objective Function: Maximize sum of projected points of selected players
- Constraints: Each slot filled exactly; each player used at most once;
  total salary <= cap; per-team counts <= limit; quarterback stacks;
  locked players selected

Tie-breaking: "Optimal" alone under-specifies the answer when several rosters
score the same. The builder solves lexicographically:
  1. maximize projected points
  2. among rosters within `points_tolerance` of that best, minimize total cost
  3. among those, minimize aggregate ownership

Infeasibility: When no roster exists, the result says which constraint
family is to blame (slot coverage, salary cap, locks, team limit, stacking)
as far as that can be determined by re-solving with one family relaxed.

PuLP Library: Python library for linear programming that interfaces with
optimization solvers like CBC, GLPK, and Gurobi.
"""

import logging
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

import pandas as pd
import pulp as lp

from ..config.settings import Settings, settings as default_settings
from ..exceptions import DataError, InternalInconsistencyError
from .roster import PASS_CATCHERS, Player, Roster, RosterLimits, RosterSlot, SlotAssignment
from .validation import validate

logger = logging.getLogger(__name__)

# Numerical slack for comparing solver objective values
EPSILON = 1e-6

RELAX_SALARY = "salary"
RELAX_TEAM = "team"
RELAX_STACK = "stack"
RELAX_LOCKS = "locks"


class OptimizationStatus(Enum):
    OPTIMAL = "optimal"
    INFEASIBLE = "infeasible"


class InfeasibilityReason(Enum):
    """Constraint family that made the problem infeasible."""

    SLOT_COVERAGE = "slot_coverage"
    SALARY_CAP = "salary_cap"
    LOCKS = "locks"
    TEAM_LIMIT = "team_limit"
    QB_STACK = "qb_stack"
    CONSTRAINTS = "constraints"  # A combination, or undetermined


_RELAXATION_REASONS = (
    (RELAX_LOCKS, InfeasibilityReason.LOCKS),
    (RELAX_SALARY, InfeasibilityReason.SALARY_CAP),
    (RELAX_TEAM, InfeasibilityReason.TEAM_LIMIT),
    (RELAX_STACK, InfeasibilityReason.QB_STACK),
)


@dataclass(frozen=True)
class Infeasibility:
    reason: InfeasibilityReason
    detail: str


@dataclass
class OptimizationConstraints:
    """Per-request player choices: locked players must appear, excluded never."""

    locked_ids: set[str] = field(default_factory=set)
    excluded_ids: set[str] = field(default_factory=set)


@dataclass
class OptimizationResult:
    """Result from lineup optimization: a roster, or the reason there is none."""

    status: OptimizationStatus
    roster: Roster | None = None
    infeasibility: Infeasibility | None = None
    algorithm: str = "linear_programming"

    @property
    def is_optimal(self) -> bool:
        return self.status == OptimizationStatus.OPTIMAL

    @property
    def total_salary(self) -> int:
        return self.roster.total_cost if self.roster else 0

    @property
    def projected_points(self) -> float:
        return self.roster.projected_points if self.roster else 0.0

    @property
    def lineup_value(self) -> float:
        """Points per $1000 of salary used."""
        total_salary = self.total_salary
        return self.projected_points / (total_salary / 1000) if total_salary > 0 else 0.0

    @classmethod
    def optimal(cls, roster: Roster, algorithm: str) -> "OptimizationResult":
        return cls(status=OptimizationStatus.OPTIMAL, roster=roster, algorithm=algorithm)

    @classmethod
    def infeasible(cls, reason: InfeasibilityReason, detail: str) -> "OptimizationResult":
        return cls(
            status=OptimizationStatus.INFEASIBLE,
            infeasibility=Infeasibility(reason, detail),
        )


class LineupBuilder:
    """Builds DFS rosters that satisfy slot, budget, ownership, team and stacking rules.

    1. Linear Programming:
       - Guaranteed optimal solution with a deterministic tie-break
       - Uses PuLP library with CBC solver
    2. Greedy Algorithm:
       - Sorts players by value (points/$1000), picks best available
       - No guarantee of optimality; used as a fallback
    """

    def __init__(
        self,
        config: Settings | None = None,
        time_limit_seconds: int | None = None,
        points_tolerance: float | None = None,
    ):
        config = config or default_settings
        self.time_limit_seconds = (
            time_limit_seconds
            if time_limit_seconds is not None
            else config.optimizer_time_limit_seconds
        )
        self.points_tolerance = (
            points_tolerance if points_tolerance is not None else config.optimizer_points_tolerance
        )

    def optimize(
        self,
        candidates: Sequence[Player],
        slots: Sequence[RosterSlot],
        limits: RosterLimits,
        constraints: OptimizationConstraints | None = None,
    ) -> OptimizationResult:
        """Find the highest-projected valid roster.

        Args:
            candidates: Available players
            slots: Required roster slots
            limits: Salary, ownership, team and stacking limits
            constraints: Locked and excluded player ids

        Returns:
            OptimizationResult holding a roster that passes validate(), or an
            Infeasibility naming the constraint family at fault

        Raises:
            DataError: If two candidates share a player id
            InternalInconsistencyError: If neither the exact solver nor the
                greedy fallback produce a roster that passes validation
        """
        constraints = constraints or OptimizationConstraints()
        pool, infeasibility = self._prepare_pool(candidates, slots, limits, constraints)
        if infeasibility is not None:
            logger.info(f"Optimization infeasible before solving: {infeasibility.detail}")
            return OptimizationResult(
                status=OptimizationStatus.INFEASIBLE, infeasibility=infeasibility
            )

        locked = set(constraints.locked_ids)
        status, roster = self.build_linear_programming_lineup(pool, slots, limits, locked)

        # CBC reports some integer-infeasible models as Undefined
        if status in ("Infeasible", "Undefined"):
            return self._explain_infeasible(pool, slots, limits, locked)

        algorithm = "linear_programming"
        if roster is None:
            logger.warning(f"LP solver status {status}, falling back to greedy")
            roster = self.build_greedy_lineup(pool, slots, limits, locked)
            algorithm = "greedy"
            if roster is None:
                return OptimizationResult.infeasible(
                    InfeasibilityReason.CONSTRAINTS,
                    f"Solver stopped with status {status} and no heuristic roster was found",
                )

        check = validate(roster, slots, limits, collect_all=True)
        if check.is_valid:
            return OptimizationResult.optimal(roster, algorithm)

        logger.error(
            f"{algorithm} roster failed validation: {[v.detail for v in check.violations]}"
        )
        if algorithm == "greedy":
            raise InternalInconsistencyError(
                "Greedy roster failed validation", check.violations
            )

        fallback = self.build_greedy_lineup(pool, slots, limits, locked)
        if fallback is not None:
            fallback_check = validate(fallback, slots, limits, collect_all=True)
            if fallback_check.is_valid:
                logger.warning("Recovered with greedy fallback after invalid LP roster")
                return OptimizationResult.optimal(fallback, "greedy")
            check = fallback_check

        raise InternalInconsistencyError(
            "Optimizer produced a roster its validator rejects", check.violations
        )

    def _prepare_pool(
        self,
        candidates: Sequence[Player],
        slots: Sequence[RosterSlot],
        limits: RosterLimits,
        constraints: OptimizationConstraints,
    ) -> tuple[list[Player], Infeasibility | None]:
        """Filter the candidate pool and catch infeasibility the solver need not see."""
        by_id: dict[str, Player] = {}
        for player in candidates:
            if player.player_id in by_id:
                raise DataError(f"Duplicate candidate player id {player.player_id}")
            by_id[player.player_id] = player

        locked = set(constraints.locked_ids)
        excluded = set(constraints.excluded_ids)
        total_slots = sum(slot.count for slot in slots)

        def locks(detail: str) -> tuple[list[Player], Infeasibility]:
            return [], Infeasibility(InfeasibilityReason.LOCKS, detail)

        both = sorted(locked & excluded)
        if both:
            return locks(f"Players both locked and excluded: {both}")
        unknown = sorted(locked - set(by_id))
        if unknown:
            return locks(f"Locked players not in the candidate pool: {unknown}")
        if len(locked) > total_slots:
            return locks(f"{len(locked)} locked players for {total_slots} roster spots")

        locked_players = [by_id[pid] for pid in sorted(locked)]
        for player in locked_players:
            if not any(slot.accepts(player.position) for slot in slots):
                return locks(f"Locked player {player.name} ({player.position}) fits no slot")
            if limits.max_ownership is not None and player.ownership_percent > limits.max_ownership:
                return locks(
                    f"Locked player {player.name} ownership {player.ownership_percent:.1f}% "
                    f"exceeds {limits.max_ownership:.1f}%"
                )

        locked_cost = sum(p.cost for p in locked_players)
        if limits.salary_cap is not None and locked_cost > limits.salary_cap:
            return locks(f"Locked players cost ${locked_cost} > cap ${limits.salary_cap}")

        if limits.max_players_per_team is not None:
            per_team = Counter(p.team for p in locked_players if p.team)
            for team, count in sorted(per_team.items()):
                if count > limits.max_players_per_team:
                    return locks(
                        f"{count} locked players from {team} > limit {limits.max_players_per_team}"
                    )

        pool = [
            p
            for p in by_id.values()
            if p.player_id not in excluded
            and any(slot.accepts(p.position) for slot in slots)
            and (limits.max_ownership is None or p.ownership_percent <= limits.max_ownership)
        ]

        for slot in slots:
            eligible = sum(1 for p in pool if slot.accepts(p.position))
            if eligible < slot.count:
                return [], Infeasibility(
                    InfeasibilityReason.SLOT_COVERAGE,
                    f"Not enough eligible players for {slot.name}: {eligible} < {slot.count}",
                )
        if len(pool) < total_slots:
            return [], Infeasibility(
                InfeasibilityReason.SLOT_COVERAGE,
                f"Only {len(pool)} eligible players for {total_slots} roster spots",
            )

        return pool, None

    def build_linear_programming_lineup(
        self,
        pool: Sequence[Player],
        slots: Sequence[RosterSlot],
        limits: RosterLimits,
        locked_ids: Iterable[str] = (),
    ) -> tuple[str, Roster | None]:
        """Solve the roster ILP with the lexicographic tie-break.

        Returns:
            (PuLP status name of the first stage, roster or None)
        """
        locked = set(locked_ids)

        # Stage 1: maximize projected points
        model = self._build_problem("lineup_points", lp.LpMaximize, pool, slots, limits, locked)
        model.problem += model.points
        status = self._solve(model.problem)
        if status != "Optimal":
            return status, None
        best_points = lp.value(model.points)
        roster = model.extract()

        # Stage 2: cheapest roster within tolerance of the best projection
        model = self._build_problem("lineup_cost", lp.LpMinimize, pool, slots, limits, locked)
        model.problem += model.points >= best_points - self.points_tolerance - EPSILON
        model.problem += model.cost
        if self._solve(model.problem) != "Optimal":
            logger.warning("Cost tie-break stage did not solve, keeping points-optimal roster")
            return status, roster
        best_cost = lp.value(model.cost)
        roster = model.extract()

        # Stage 3: least aggregate ownership among those
        model = self._build_problem("lineup_ownership", lp.LpMinimize, pool, slots, limits, locked)
        model.problem += model.points >= best_points - self.points_tolerance - EPSILON
        model.problem += model.cost <= best_cost + EPSILON
        model.problem += model.ownership
        if self._solve(model.problem) != "Optimal":
            logger.warning("Ownership tie-break stage did not solve, keeping cost-optimal roster")
            return status, roster

        return status, model.extract()

    def _solve(self, problem: lp.LpProblem) -> str:
        try:
            problem.solve(lp.PULP_CBC_CMD(msg=0, timeLimit=self.time_limit_seconds))
        except lp.PulpSolverError:
            logger.exception("Linear programming solver failed")
            return "Error"
        return lp.LpStatus[problem.status]

    def _build_problem(
        self,
        name: str,
        sense: int,
        pool: Sequence[Player],
        slots: Sequence[RosterSlot],
        limits: RosterLimits,
        locked: set[str],
        relax: frozenset[str] = frozenset(),
    ) -> "_LineupModel":
        """Create variables and constraints; the caller sets the objective."""
        prob = lp.LpProblem(name, sense)

        # Binary decision variable for each eligible (player, slot) pair
        x: dict[tuple[int, int], lp.LpVariable] = {}
        for i, player in enumerate(pool):
            for j, slot in enumerate(slots):
                if slot.accepts(player.position):
                    x[i, j] = lp.LpVariable(f"x_{i}_{j}", cat="Binary")

        selected = {
            i: lp.lpSum(var for (pi, _), var in x.items() if pi == i) for i in range(len(pool))
        }

        # Every slot holds exactly its count
        for j, slot in enumerate(slots):
            prob += (
                lp.lpSum(var for (_, sj), var in x.items() if sj == j) == slot.count,
                f"slot_{j}",
            )

        # A player fills at most one slot
        for i in range(len(pool)):
            prob += selected[i] <= 1, f"once_{i}"

        points = lp.lpSum(p.projected_points * selected[i] for i, p in enumerate(pool))
        cost = lp.lpSum(p.cost * selected[i] for i, p in enumerate(pool))
        ownership = lp.lpSum(p.ownership_percent * selected[i] for i, p in enumerate(pool))

        if RELAX_SALARY not in relax:
            if limits.salary_cap is not None:
                prob += cost <= limits.salary_cap, "salary_cap"
            if limits.min_salary is not None:
                prob += cost >= limits.min_salary, "salary_floor"

        if RELAX_LOCKS not in relax:
            for i, player in enumerate(pool):
                if player.player_id in locked:
                    prob += selected[i] == 1, f"lock_{i}"

        if RELAX_TEAM not in relax and limits.max_players_per_team is not None:
            teams = sorted({p.team for p in pool if p.team})
            for k, team in enumerate(teams):
                prob += (
                    lp.lpSum(selected[i] for i, p in enumerate(pool) if p.team == team)
                    <= limits.max_players_per_team,
                    f"team_{k}",
                )

        if RELAX_STACK not in relax and limits.min_qb_stack:
            for i, qb in enumerate(pool):
                if qb.position != "QB":
                    continue
                catchers = lp.lpSum(
                    selected[k]
                    for k, p in enumerate(pool)
                    if p.position in PASS_CATCHERS and p.team == qb.team
                )
                prob += catchers >= limits.min_qb_stack * selected[i], f"qb_stack_{i}"

        return _LineupModel(prob, x, pool, slots, points, cost, ownership)

    def _explain_infeasible(
        self,
        pool: Sequence[Player],
        slots: Sequence[RosterSlot],
        limits: RosterLimits,
        locked: set[str],
    ) -> OptimizationResult:
        """Attribute infeasibility by re-solving with one constraint family relaxed."""
        for family, reason in _RELAXATION_REASONS:
            model = self._build_problem(
                f"relax_{family}", lp.LpMaximize, pool, slots, limits, locked, frozenset({family})
            )
            model.problem += model.points
            if self._solve(model.problem) == "Optimal":
                return OptimizationResult.infeasible(
                    reason, f"No roster satisfies the {reason.value} constraints"
                )

        everything = frozenset(family for family, _ in _RELAXATION_REASONS)
        model = self._build_problem("relax_all", lp.LpMaximize, pool, slots, limits, locked, everything)
        model.problem += model.points
        if self._solve(model.problem) != "Optimal":
            return OptimizationResult.infeasible(
                InfeasibilityReason.SLOT_COVERAGE,
                "Eligible players cannot cover every slot at once",
            )
        return OptimizationResult.infeasible(
            InfeasibilityReason.CONSTRAINTS,
            "No roster satisfies the combined salary, team, stacking and lock constraints",
        )

    def build_greedy_lineup(
        self,
        pool: Sequence[Player],
        slots: Sequence[RosterSlot],
        limits: RosterLimits,
        locked_ids: Iterable[str] = (),
    ) -> Roster | None:
        """Build a roster with a value-ordered greedy pass.

        Locked players are placed first. Each player takes the narrowest open
        slot that accepts them, as long as the remaining budget can still
        fill the other open slots with the cheapest unused players.

        Returns:
            Roster, or None if the heuristic could not fill every slot
        """
        locked = set(locked_ids)
        open_counts = {slot.name: slot.count for slot in slots}
        narrow_first = sorted(slots, key=lambda s: len(s.eligible_positions))
        per_team: Counter = Counter()
        pairs: list[tuple[str, Player]] = []
        used: set[str] = set()
        spent = 0

        ordered = sorted(
            pool,
            key=lambda p: (p.player_id not in locked, -p.value, -p.projected_points, p.player_id),
        )

        for player in ordered:
            if sum(open_counts.values()) == 0:
                break
            slot = next(
                (s for s in narrow_first if open_counts[s.name] > 0 and s.accepts(player.position)),
                None,
            )
            fits = slot is not None and self._greedy_fits(
                player, pool, used, spent, sum(open_counts.values()) - 1, per_team, limits
            )
            if not fits:
                if player.player_id in locked:
                    return None
                continue

            pairs.append((slot.name, player))
            used.add(player.player_id)
            open_counts[slot.name] -= 1
            spent += player.cost
            if player.team:
                per_team[player.team] += 1

        if sum(open_counts.values()) > 0:
            return None
        return _ordered_roster(pairs, slots)

    @staticmethod
    def _greedy_fits(player, pool, used, spent, still_open, per_team, limits) -> bool:
        if limits.max_players_per_team is not None and player.team:
            if per_team[player.team] + 1 > limits.max_players_per_team:
                return False
        if limits.salary_cap is None:
            return True
        # Keep enough budget to fill the remaining slots with the cheapest players left
        cheapest = sorted(p.cost for p in pool if p.player_id not in used and p is not player)
        reserve = sum(cheapest[:still_open])
        return spent + player.cost + reserve <= limits.salary_cap

    def generate_multiple_lineups(
        self,
        candidates: Sequence[Player],
        slots: Sequence[RosterSlot],
        limits: RosterLimits,
        constraints: OptimizationConstraints | None = None,
        num_lineups: int = 5,
        diversity_factor: float = 0.3,
    ) -> list[OptimizationResult]:
        """Generate distinct lineups for comparison.

        Each round discounts the projection of already-used players by
        `diversity_factor` so later lineups explore other players. Results
        carry the players' real projections and are sorted best first.
        """
        originals = {p.player_id: p for p in candidates}
        used: set[str] = set()
        seen: set[frozenset[str]] = set()
        results: list[OptimizationResult] = []

        for i in range(num_lineups):
            pool = [
                replace(p, projected_points=p.projected_points * (1 - diversity_factor))
                if p.player_id in used
                else p
                for p in candidates
            ]
            result = self.optimize(pool, slots, limits, constraints)
            if not result.is_optimal:
                if i == 0:
                    return [result]
                break

            roster = Roster(
                [SlotAssignment(a.slot, originals[a.player.player_id]) for a in result.roster.assignments]
            )
            key = frozenset(roster.player_ids)
            if key not in seen:
                seen.add(key)
                results.append(OptimizationResult.optimal(roster, result.algorithm))
            used.update(roster.player_ids)

        results.sort(key=lambda r: (-r.projected_points, r.total_salary))
        logger.info(f"Generated {len(results)} distinct lineups out of {num_lineups} attempts")
        return results

    def analyze_stacking(self, roster: Roster) -> dict[str, Any]:
        """Summarize QB/pass-catcher stacks and team concentration in a roster."""
        teams: dict[str, dict[str, list[Player]]] = {}
        for player in roster.players:
            teams.setdefault(player.team, {}).setdefault(player.position, []).append(player)

        stacks: dict[str, Any] = {"qb_stacks": [], "team_counts": {}, "total_stacks": 0}
        for team, positions in sorted(teams.items()):
            stacks["team_counts"][team] = sum(len(players) for players in positions.values())
            pass_catchers = [p for pos in sorted(PASS_CATCHERS) for p in positions.get(pos, [])]
            for qb in positions.get("QB", []):
                if pass_catchers:
                    stacks["qb_stacks"].append(
                        {
                            "team": team,
                            "qb": qb.name,
                            "pass_catchers": [p.name for p in pass_catchers],
                            "stack_size": len(pass_catchers) + 1,
                        }
                    )
                    stacks["total_stacks"] += 1
        return stacks

    def export_lineup_to_csv(self, result: OptimizationResult, filename: str) -> str:
        """Export a roster to a DraftKings-style CSV (slot order preserved)."""
        frame = roster_to_frame(result.roster or Roster())
        frame.to_csv(filename, index=False)
        logger.info(f"Exported lineup to {filename}")
        return filename


def roster_to_frame(roster: Roster) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "Slot": a.slot,
                "PlayerId": a.player.player_id,
                "Name": a.player.name,
                "Position": a.player.position,
                "Team": a.player.team,
                "Salary": a.player.cost,
                "Projected": a.player.projected_points,
                "Ownership": a.player.ownership_percent,
            }
            for a in roster.assignments
        ],
        columns=["Slot", "PlayerId", "Name", "Position", "Team", "Salary", "Projected", "Ownership"],
    )


def _ordered_roster(pairs: Iterable[tuple[str, Player]], slots: Sequence[RosterSlot]) -> Roster:
    order = {slot.name: k for k, slot in enumerate(slots)}
    ranked = sorted(pairs, key=lambda pair: (order[pair[0]], -pair[1].projected_points, pair[1].player_id))
    return Roster([SlotAssignment(slot, player) for slot, player in ranked])


@dataclass
class _LineupModel:
    """An LP problem plus the handles needed to set objectives and read the answer."""

    problem: lp.LpProblem
    x: dict[tuple[int, int], lp.LpVariable]
    pool: Sequence[Player]
    slots: Sequence[RosterSlot]
    points: Any
    cost: Any
    ownership: Any

    def extract(self) -> Roster:
        pairs = [
            (self.slots[j].name, self.pool[i])
            for (i, j), var in self.x.items()
            if var.varValue is not None and var.varValue > 0.5
        ]
        return _ordered_roster(pairs, self.slots)
