"""Roster building blocks shared by validation and optimization.

Key Concepts for Beginners:

Player: A selection candidate supplied by the sports-data collaborator. The
engine treats it as immutable input.

RosterSlot: A named position requirement with a cardinality, e.g. RB x2. Each
slot lists the positions allowed to fill it; FLEX accepts a union such as
{RB, WR, TE}.

Roster: An ordered list of slot assignments. It is "complete" only when every
slot holds exactly its required count.

RosterLimits: The quantitative rules (the "cap"): salary ceiling, optional
salary floor, ownership ceiling, players-per-team ceiling and a
quarterback stacking minimum.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from ..exceptions import ConfigurationError

FLEX = "FLEX"
PASS_CATCHERS = frozenset({"WR", "TE"})


@dataclass(frozen=True)
class Player:
    """Player candidate for roster construction.

    Core Data:
    - player_id, name, position, team: identification
    - cost: salary counted against the cap
    - projected_points: expected fantasy points (the objective)
    - ownership_percent: expected % of contest entries using this player
    """

    player_id: str
    name: str
    position: str
    team: str
    cost: int
    projected_points: float
    ownership_percent: float = 0.0

    @property
    def value(self) -> float:
        """Points per $1000 of salary.

        Example: 20 projected points at $8000 salary = 20 / 8 = 2.5 value
        """
        if self.cost <= 0:
            return 0.0
        return self.projected_points / (self.cost / 1000)


@dataclass(frozen=True)
class RosterSlot:
    """A position requirement: `count` players whose position is eligible."""

    name: str
    count: int
    eligible_positions: frozenset[str]

    def __post_init__(self):
        if self.count < 1:
            raise ConfigurationError(f"Slot {self.name} must require at least one player")
        if not self.eligible_positions:
            raise ConfigurationError(f"Slot {self.name} accepts no positions")

    def accepts(self, position: str) -> bool:
        return position in self.eligible_positions


def slots_from_counts(
    counts: Mapping[str, int], flex_positions: Iterable[str] = ("RB", "WR", "TE")
) -> list[RosterSlot]:
    """Build slots from a {"QB": 1, "RB": 2, "FLEX": 1} style mapping.

    FLEX accepts `flex_positions`; every other slot accepts the position of
    the same name. Counts of zero are skipped. Names are case-insensitive, so
    "rb" and "RB" in one mapping is a configuration error.
    """
    slots = []
    seen = set()
    for name, count in counts.items():
        name = name.strip().upper()
        if name in seen:
            raise ConfigurationError(f"Slot {name} is defined more than once")
        seen.add(name)
        if count == 0:
            continue
        eligible = frozenset(flex_positions) if name == FLEX else frozenset({name})
        slots.append(RosterSlot(name=name, count=count, eligible_positions=eligible))
    if not slots:
        raise ConfigurationError("At least one roster slot is required")
    return slots


def classic_slots(flex_positions: Iterable[str] = ("RB", "WR", "TE")) -> list[RosterSlot]:
    """DraftKings NFL classic: QB, 2 RB, 3 WR, TE, FLEX, DST (9 players)."""
    return slots_from_counts(
        {"QB": 1, "RB": 2, "WR": 3, "TE": 1, FLEX: 1, "DST": 1},
        flex_positions=flex_positions,
    )


@dataclass(frozen=True)
class SlotAssignment:
    slot: str
    player: Player


@dataclass
class Roster:
    """Ordered assignment of players to slots."""

    assignments: list[SlotAssignment] = field(default_factory=list)

    @property
    def players(self) -> list[Player]:
        return [a.player for a in self.assignments]

    @property
    def player_ids(self) -> list[str]:
        return [a.player.player_id for a in self.assignments]

    @property
    def total_cost(self) -> int:
        return sum(a.player.cost for a in self.assignments)

    @property
    def projected_points(self) -> float:
        return sum(a.player.projected_points for a in self.assignments)

    @property
    def total_ownership(self) -> float:
        return sum(a.player.ownership_percent for a in self.assignments)

    def __len__(self) -> int:
        return len(self.assignments)

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[str, Player]]) -> "Roster":
        return cls([SlotAssignment(slot=slot.strip().upper(), player=player) for slot, player in pairs])


@dataclass(frozen=True)
class RosterLimits:
    """Quantitative roster rules. Optional limits are off when None."""

    salary_cap: int | None = 50000
    min_salary: int | None = None
    max_ownership: float | None = None
    max_players_per_team: int | None = None
    min_qb_stack: int | None = None  # WR/TE teammates required per rostered QB
