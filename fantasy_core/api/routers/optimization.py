"""
Optimization API endpoints for DFS lineup generation.

Endpoints:
- /optimize/lineup: Generate the optimal lineup (or several distinct ones)

Gated on LINEUP_OPTIMIZER (PRO and above, metered). The handler is a plain
`def` so FastAPI runs the CPU-bound solver in its thread pool instead of
blocking the event loop.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ...database.connection import get_db
from ...database.repositories import PlayerPoolRepository
from ...exceptions import ConfigurationError, DataError, InternalInconsistencyError
from ...gating.gate import Decision
from ...optimization.lineup_builder import (
    LineupBuilder,
    OptimizationConstraints,
    OptimizationResult,
)
from ..dependencies import require_capability
from ..schemas import LineupResponse, OptimizeLineupRequest, OptimizeResponse, PlayerOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/optimize", tags=["optimization"])


def _lineup_response(builder: LineupBuilder, result: OptimizationResult) -> LineupResponse:
    roster = result.roster
    return LineupResponse(
        lineup=[PlayerOut.from_player(a.player, a.slot) for a in roster.assignments],
        total_salary=roster.total_cost,
        projected_points=round(roster.projected_points, 2),
        total_ownership=round(roster.total_ownership, 2),
        lineup_value=round(result.lineup_value, 3),
        algorithm=result.algorithm,
        stacking_analysis=builder.analyze_stacking(roster),
    )


@router.post("/lineup", response_model=OptimizeResponse)
def optimize_lineup(
    request: OptimizeLineupRequest,
    decision: Decision = Depends(require_capability("LINEUP_OPTIMIZER")),
    db: Session = Depends(get_db),
) -> OptimizeResponse:
    """
    Generate the optimal lineup for a slate.

    Maximizes projected points subject to slot requirements, salary cap,
    ownership and team limits, quarterback stacking, and locked/excluded
    players. Ties are broken by lower salary, then lower total ownership.

    Returns 422 with the constraint family at fault when no lineup exists.
    """
    if request.players:
        candidates = [p.to_player() for p in request.players]
    else:
        candidates = PlayerPoolRepository(db).get_player_pool(request.slate_id)
        if not candidates:
            raise HTTPException(
                status_code=404, detail=f"No players found for slate {request.slate_id}"
            )

    try:
        slots = request.to_slots()
    except ConfigurationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    limits = request.to_limits()
    constraints = OptimizationConstraints(
        locked_ids=set(request.locked_ids), excluded_ids=set(request.excluded_ids)
    )
    builder = LineupBuilder()

    try:
        if request.num_lineups > 1:
            results = builder.generate_multiple_lineups(
                candidates,
                slots,
                limits,
                constraints,
                num_lineups=request.num_lineups,
                diversity_factor=request.diversity_factor,
            )
        else:
            results = [builder.optimize(candidates, slots, limits, constraints)]
    except DataError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except InternalInconsistencyError:
        logger.exception("Lineup optimization produced an invalid roster")
        raise HTTPException(
            status_code=500,
            detail={"code": "internal_error", "message": "Lineup optimization failed"},
        )

    first = results[0]
    if not first.is_optimal:
        raise HTTPException(
            status_code=422,
            detail={
                "code": "infeasible",
                "reason": first.infeasibility.reason.value,
                "message": first.infeasibility.detail,
            },
        )

    return OptimizeResponse(
        lineups=[_lineup_response(builder, result) for result in results],
        quota_remaining=decision.quota_remaining,
    )
