"""
Pydantic schemas for API request/response models.

Schema Organization:
- Lineup schemas: players, slot assignments, limits, validation output
- Optimization schemas: optimize requests and lineup responses
- Subscription schemas: plans, capabilities and quota usage

Conversion helpers (to_player, to_limits, ...) live next to the schemas they
read so routers stay thin.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, model_validator

from ..config.settings import settings
from ..gating.gate import QuotaUsage
from ..gating.tiers import TierPlan
from ..optimization.roster import (
    Player,
    Roster,
    RosterLimits,
    RosterSlot,
    classic_slots,
    slots_from_counts,
)
from ..optimization.validation import ValidationResult

# ========== LINEUP SCHEMAS ==========


class PlayerIn(BaseModel):
    """Candidate player as supplied by the client or the player pool."""

    player_id: str = Field(..., description="External player identifier")
    name: str = Field(default="", description="Display name")
    position: str = Field(..., description="QB, RB, WR, TE, DST")
    team: str = Field(default="", description="Team abbreviation")
    cost: int = Field(..., ge=0, description="Salary")
    projected_points: float = Field(default=0.0, description="Projected fantasy points")
    ownership_percent: float = Field(default=0.0, ge=0.0, le=100.0)

    def to_player(self) -> Player:
        return Player(
            player_id=self.player_id,
            name=self.name or self.player_id,
            position=self.position.strip().upper(),
            team=self.team.strip().upper(),
            cost=self.cost,
            projected_points=self.projected_points,
            ownership_percent=self.ownership_percent,
        )


class PlayerOut(BaseModel):
    player_id: str
    name: str
    position: str
    roster_slot: str | None = None
    team: str
    cost: int
    projected_points: float
    ownership_percent: float
    value: float

    @classmethod
    def from_player(cls, player: Player, slot: str | None = None) -> "PlayerOut":
        return cls(
            player_id=player.player_id,
            name=player.name,
            position=player.position,
            roster_slot=slot,
            team=player.team,
            cost=player.cost,
            projected_points=player.projected_points,
            ownership_percent=player.ownership_percent,
            value=round(player.value, 3),
        )


class SlotAssignmentIn(BaseModel):
    slot: str = Field(..., description="Roster slot name, e.g. QB or FLEX")
    player: PlayerIn


class RosterRules(BaseModel):
    """Slot requirements and limits shared by validate and optimize requests."""

    positions: dict[str, int] | None = Field(
        default=None, description="Slot counts, e.g. {'QB': 1, 'RB': 2, 'FLEX': 1}"
    )
    salary_cap: int | None = Field(default=None, description="Salary cap (default from settings)")
    min_salary: int | None = Field(default=None, description="Minimum total salary")
    max_ownership: float | None = Field(default=None, description="Per-player ownership ceiling")
    max_players_per_team: int | None = Field(default=None, description="Team stacking limit")
    min_qb_stack: int | None = Field(default=None, description="WR/TE teammates required per QB")

    def to_slots(self) -> list[RosterSlot]:
        if self.positions is None:
            return classic_slots(settings.flex_positions)
        return slots_from_counts(self.positions, settings.flex_positions)

    def to_limits(self) -> RosterLimits:
        return RosterLimits(
            salary_cap=self.salary_cap if self.salary_cap is not None else settings.salary_cap,
            min_salary=self.min_salary,
            max_ownership=self.max_ownership,
            max_players_per_team=(
                self.max_players_per_team
                if self.max_players_per_team is not None
                else settings.max_players_per_team
            ),
            min_qb_stack=self.min_qb_stack,
        )


class ValidateLineupRequest(RosterRules):
    lineup: list[SlotAssignmentIn] = Field(..., description="Slot assignments")
    explain: bool = Field(default=False, description="Report every violation")
    require_complete: bool = Field(
        default=True, description="False for in-progress draft rosters"
    )

    def to_roster(self) -> Roster:
        return Roster.from_pairs((a.slot, a.player.to_player()) for a in self.lineup)


class SaveLineupRequest(ValidateLineupRequest):
    slate_id: int | None = Field(default=None, description="Slate the lineup was built for")


class ViolationOut(BaseModel):
    rule: str
    detail: str
    slot: str | None = None
    player_id: str | None = None
    team: str | None = None


class ValidationResponse(BaseModel):
    is_valid: bool
    total_salary: int
    projected_points: float
    violations: list[ViolationOut]
    slot_counts: dict[str, int]

    @classmethod
    def from_result(cls, roster: Roster, result: ValidationResult) -> "ValidationResponse":
        slot_counts: dict[str, int] = {}
        for assignment in roster.assignments:
            slot_counts[assignment.slot] = slot_counts.get(assignment.slot, 0) + 1
        return cls(
            is_valid=result.is_valid,
            total_salary=roster.total_cost,
            projected_points=round(roster.projected_points, 2),
            violations=[
                ViolationOut(
                    rule=v.rule.value,
                    detail=v.detail,
                    slot=v.slot,
                    player_id=v.player_id,
                    team=v.team,
                )
                for v in result.violations
            ],
            slot_counts=slot_counts,
        )


class SavedLineupResponse(BaseModel):
    id: int
    user_id: str
    slate_id: int | None = None
    total_salary: int
    projected_points: float


# ========== OPTIMIZATION SCHEMAS ==========


class OptimizeLineupRequest(RosterRules):
    """Request model for lineup optimization.

    Candidates come inline (`players`) or from the stored pool (`slate_id`).
    """

    slate_id: int | None = Field(default=None, description="Load candidates from this slate")
    players: list[PlayerIn] | None = Field(default=None, description="Inline candidates")
    locked_ids: list[str] = Field(default_factory=list, description="Players that must appear")
    excluded_ids: list[str] = Field(default_factory=list, description="Players that must not appear")
    num_lineups: int = Field(default=1, ge=1, le=20, description="Number of lineups to generate")
    diversity_factor: float = Field(default=0.3, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _candidates_given(self) -> "OptimizeLineupRequest":
        if self.slate_id is None and not self.players:
            raise ValueError("Provide either slate_id or players")
        return self


class LineupResponse(BaseModel):
    lineup: list[PlayerOut]
    total_salary: int
    projected_points: float
    total_ownership: float
    lineup_value: float
    algorithm: str
    stacking_analysis: dict[str, Any] | None = None


class OptimizeResponse(BaseModel):
    lineups: list[LineupResponse]
    quota_remaining: int | None = None


# ========== SUBSCRIPTION SCHEMAS ==========


class CapabilityOut(BaseModel):
    route_key: str
    required_tier: str
    metered: bool
    description: str


class PlanResponse(BaseModel):
    tier: str
    name: str
    description: str
    monthly_price: float
    yearly_price: float | None = None
    yearly_savings: float | None = None
    currency: str
    hourly_quota: int | None = Field(description="None means unlimited")
    capabilities: list[str]

    @classmethod
    def from_plan(cls, plan: TierPlan, quota: int, capabilities: list[str]) -> "PlanResponse":
        return cls(
            tier=plan.tier.value,
            name=plan.name,
            description=plan.description,
            monthly_price=plan.monthly_price,
            yearly_price=plan.yearly_price,
            yearly_savings=plan.yearly_savings,
            currency=plan.currency,
            hourly_quota=quota or None,
            capabilities=capabilities,
        )


class QuotaResponse(BaseModel):
    ceiling: int | None
    used: int
    remaining: int | None
    reset_at: datetime | None = None
    unlimited: bool

    @classmethod
    def from_usage(cls, usage: QuotaUsage) -> "QuotaResponse":
        return cls(
            ceiling=None if usage.unlimited else usage.ceiling,
            used=usage.used,
            remaining=usage.remaining,
            reset_at=usage.reset_at,
            unlimited=usage.unlimited,
        )


class AccessResponse(BaseModel):
    user_id: str
    tier: str
    capabilities: list[CapabilityOut]
    quota: QuotaResponse
