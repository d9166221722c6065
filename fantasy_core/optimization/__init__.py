"""Lineup validation and optimization package."""

from .lineup_builder import (
    Infeasibility,
    InfeasibilityReason,
    LineupBuilder,
    OptimizationConstraints,
    OptimizationResult,
    OptimizationStatus,
)
from .roster import (
    Player,
    Roster,
    RosterLimits,
    RosterSlot,
    SlotAssignment,
    classic_slots,
    slots_from_counts,
)
from .validation import ValidationResult, ValidationRule, Violation, validate

__all__ = [
    "Infeasibility",
    "InfeasibilityReason",
    "LineupBuilder",
    "OptimizationConstraints",
    "OptimizationResult",
    "OptimizationStatus",
    "Player",
    "Roster",
    "RosterLimits",
    "RosterSlot",
    "SlotAssignment",
    "ValidationResult",
    "ValidationRule",
    "Violation",
    "classic_slots",
    "slots_from_counts",
    "validate",
]
