"""Roster validation against slot, budget, ownership, team and stacking rules.

Rules are checked in a fixed order:

1. SLOT_CARDINALITY: every slot holds exactly its count (unknown slots and
   over-filled slots always fail; under-filled slots fail when the roster
   must be complete)
2. DUPLICATE_PLAYER: no player occupies more than one slot
3. POSITION_ELIGIBILITY: each player's position is accepted by its slot
4. SALARY_CAP: total cost <= cap (the cap is inclusive), and >= the salary
   floor when one is configured
5. OWNERSHIP: no player's ownership exceeds the ownership ceiling
6. TEAM_LIMIT: no team contributes more players than allowed
7. QB_STACK: each quarterback has enough WR/TE teammates

By default validation stops after the first rule that fails, which is what
save handlers need. Explain mode (collect_all=True) reports every violation
so a UI can highlight each offending slot, player or team.
"""

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from .roster import PASS_CATCHERS, Roster, RosterLimits, RosterSlot


class ValidationRule(Enum):
    SLOT_CARDINALITY = "slot_cardinality"
    DUPLICATE_PLAYER = "duplicate_player"
    POSITION_ELIGIBILITY = "position_eligibility"
    SALARY_CAP = "salary_cap"
    OWNERSHIP = "ownership"
    TEAM_LIMIT = "team_limit"
    QB_STACK = "qb_stack"


@dataclass(frozen=True)
class Violation:
    """One broken rule, pointing at the slot, player or team at fault."""

    rule: ValidationRule
    detail: str
    slot: str | None = None
    player_id: str | None = None
    team: str | None = None


@dataclass
class ValidationResult:
    violations: list[Violation] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.violations) == 0

    @property
    def rules(self) -> set[ValidationRule]:
        return {v.rule for v in self.violations}


def validate(
    roster: Roster,
    slots: Sequence[RosterSlot],
    limits: RosterLimits | None = None,
    collect_all: bool = False,
    require_complete: bool = True,
) -> ValidationResult:
    """Validate a roster.

    Args:
        roster: Proposed roster
        slots: Required slots
        limits: Salary, ownership, team and stacking limits (None: no limits)
        collect_all: Report every violation instead of stopping at the first failing rule
        require_complete: False for in-progress draft rosters; unfilled slots,
            the salary floor and stacking minimums are then not enforced

    Returns:
        ValidationResult; an empty complete-required roster is always invalid
    """
    limits = limits or RosterLimits(salary_cap=None)
    slots_by_name = {slot.name: slot for slot in slots}

    checks = (
        lambda: _check_slot_cardinality(roster, slots, slots_by_name, require_complete),
        lambda: _check_duplicates(roster),
        lambda: _check_eligibility(roster, slots_by_name),
        lambda: _check_budget(roster, limits, require_complete),
        lambda: _check_ownership(roster, limits),
        lambda: _check_team_limit(roster, limits),
        lambda: _check_qb_stack(roster, limits, require_complete),
    )

    violations: list[Violation] = []
    for check in checks:
        violations.extend(check())
        if violations and not collect_all:
            break
    return ValidationResult(violations)


def _check_slot_cardinality(roster, slots, slots_by_name, require_complete) -> list[Violation]:
    violations = []
    filled = Counter(a.slot for a in roster.assignments)

    for name in sorted(set(filled) - set(slots_by_name)):
        violations.append(
            Violation(ValidationRule.SLOT_CARDINALITY, f"Unknown slot {name}", slot=name)
        )

    for slot in slots:
        actual = filled.get(slot.name, 0)
        if actual > slot.count:
            violations.append(
                Violation(
                    ValidationRule.SLOT_CARDINALITY,
                    f"Too many {slot.name}: {actual} > {slot.count}",
                    slot=slot.name,
                )
            )
        elif actual < slot.count and require_complete:
            violations.append(
                Violation(
                    ValidationRule.SLOT_CARDINALITY,
                    f"Not enough {slot.name}: {actual} < {slot.count}",
                    slot=slot.name,
                )
            )

    if require_complete and not roster.assignments and not violations:
        violations.append(Violation(ValidationRule.SLOT_CARDINALITY, "Roster is empty"))
    return violations


def _check_duplicates(roster) -> list[Violation]:
    counts = Counter(roster.player_ids)
    return [
        Violation(
            ValidationRule.DUPLICATE_PLAYER,
            f"Player {player_id} occupies {count} slots",
            player_id=player_id,
        )
        for player_id, count in counts.items()
        if count > 1
    ]


def _check_eligibility(roster, slots_by_name) -> list[Violation]:
    violations = []
    for assignment in roster.assignments:
        slot = slots_by_name.get(assignment.slot)
        if slot is None:
            continue  # Reported as an unknown slot
        if not slot.accepts(assignment.player.position):
            violations.append(
                Violation(
                    ValidationRule.POSITION_ELIGIBILITY,
                    f"{assignment.player.name} ({assignment.player.position}) "
                    f"cannot fill {slot.name}",
                    slot=slot.name,
                    player_id=assignment.player.player_id,
                )
            )
    return violations


def _check_budget(roster, limits, require_complete) -> list[Violation]:
    total = roster.total_cost
    if limits.salary_cap is not None and total > limits.salary_cap:
        return [
            Violation(
                ValidationRule.SALARY_CAP,
                f"Salary cap exceeded: ${total} > ${limits.salary_cap}",
            )
        ]
    if require_complete and limits.min_salary is not None and total < limits.min_salary:
        return [
            Violation(
                ValidationRule.SALARY_CAP,
                f"Salary too low: ${total} < ${limits.min_salary}",
            )
        ]
    return []


def _check_ownership(roster, limits) -> list[Violation]:
    if limits.max_ownership is None:
        return []
    return [
        Violation(
            ValidationRule.OWNERSHIP,
            f"{p.name} ownership {p.ownership_percent:.1f}% > {limits.max_ownership:.1f}%",
            player_id=p.player_id,
        )
        for p in roster.players
        if p.ownership_percent > limits.max_ownership
    ]


def _check_team_limit(roster, limits) -> list[Violation]:
    if limits.max_players_per_team is None:
        return []
    per_team = Counter(p.team for p in roster.players if p.team)
    return [
        Violation(
            ValidationRule.TEAM_LIMIT,
            f"Too many players from {team}: {count} > {limits.max_players_per_team}",
            team=team,
        )
        for team, count in sorted(per_team.items())
        if count > limits.max_players_per_team
    ]


def _check_qb_stack(roster, limits, require_complete) -> list[Violation]:
    if not limits.min_qb_stack or not require_complete:
        return []
    violations = []
    for qb in (p for p in roster.players if p.position == "QB"):
        catchers = {
            p.player_id
            for p in roster.players
            if p.position in PASS_CATCHERS and p.team == qb.team
        }
        if len(catchers) < limits.min_qb_stack:
            violations.append(
                Violation(
                    ValidationRule.QB_STACK,
                    f"{qb.name} stacked with {len(catchers)} pass catchers, "
                    f"{limits.min_qb_stack} required",
                    player_id=qb.player_id,
                    team=qb.team,
                )
            )
    return violations
