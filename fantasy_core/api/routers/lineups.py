"""
Lineup validation and persistence endpoints.

Endpoints:
- /lineups/validate: Check a roster and list every rule it breaks
- /lineups: Validate, then save (also used for draft pick submission with
  require_complete=false)
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ...database.connection import get_db
from ...database.repositories import LineupRepository
from ...exceptions import ConfigurationError
from ...optimization.validation import validate
from ..dependencies import get_current_user_id, require_capability
from ..schemas import (
    SavedLineupResponse,
    SaveLineupRequest,
    ValidateLineupRequest,
    ValidationResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/lineups", tags=["lineups"])


def _validate_request(request: ValidateLineupRequest, collect_all: bool):
    try:
        slots = request.to_slots()
    except ConfigurationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    roster = request.to_roster()
    result = validate(
        roster,
        slots,
        request.to_limits(),
        collect_all=collect_all,
        require_complete=request.require_complete,
    )
    return roster, result


@router.post(
    "/validate",
    response_model=ValidationResponse,
    dependencies=[Depends(require_capability("LINEUP_VALIDATE"))],
)
def validate_lineup(request: ValidateLineupRequest) -> ValidationResponse:
    """Validate a lineup; `explain` reports every violation instead of the first."""
    roster, result = _validate_request(request, collect_all=request.explain)
    return ValidationResponse.from_result(roster, result)


@router.post(
    "",
    response_model=SavedLineupResponse,
    status_code=201,
    dependencies=[Depends(require_capability("LINEUP_SAVE"))],
)
def save_lineup(
    request: SaveLineupRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> SavedLineupResponse:
    """Save a lineup after validating it. Invalid lineups are rejected with 422."""
    roster, result = _validate_request(request, collect_all=True)
    if not result.is_valid:
        raise HTTPException(
            status_code=422,
            detail={
                "code": "invalid_lineup",
                "violations": ValidationResponse.from_result(roster, result).model_dump()[
                    "violations"
                ],
            },
        )

    saved = LineupRepository(db).save(user_id, roster, slate_id=request.slate_id)
    return SavedLineupResponse(
        id=saved.id,
        user_id=saved.user_id,
        slate_id=saved.slate_id,
        total_salary=saved.total_salary,
        projected_points=saved.projected_points,
    )
