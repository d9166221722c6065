"""Custom exceptions for the fantasy core.

Only conditions that indicate a bug or an unavailable collaborator are raised.
Outcomes a caller is expected to handle (insufficient tier, exhausted quota,
an invalid roster, an infeasible optimization) are returned as values by
the gate and the constraint engine so handlers can branch on them without
parsing messages.

Usage Examples:
- raise InternalInconsistencyError("Optimizer produced a roster its validator rejects")
- raise RateLimitStoreError("Could not update window for user 42 after 5 attempts")
"""


class FantasyCoreError(Exception):
    """Base exception for fantasy core errors."""


class ConfigurationError(FantasyCoreError):
    """Raised for invalid slot, capability or quota configuration."""


class DataError(FantasyCoreError):
    """Raised when candidate or lineup input cannot be interpreted."""


class OptimizationError(FantasyCoreError):
    """Raised for optimization failures that are not infeasibility."""


class InternalInconsistencyError(OptimizationError):
    """Raised when the optimizer returns a roster its own validator rejects.

    This is a bug signal, never a user-facing outcome. The builder logs the
    violations and retries once with the greedy heuristic before raising.
    The API layer surfaces it as a generic 500.

    Attributes:
        violations: The violations reported for the last attempted roster
    """

    def __init__(self, message: str, violations=None):
        super().__init__(message)
        self.violations = list(violations or [])


class RateLimitStoreError(FantasyCoreError):
    """Raised when the counter store cannot complete an atomic update.

    The store gives up after a bounded number of attempts instead of
    admitting a request it could not count.
    """
