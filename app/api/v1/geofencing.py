import logging

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError

from app.core.deps import get_geofencing_evaluator
from app.schemas.geo import GeofenceCheckIn, GeofenceCheckOut
from app.services.geofencing import GeofencingEvaluator, evaluation_error

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/check",
    response_model=GeofenceCheckOut,
    response_model_exclude_none=True,
    openapi_extra={
        "requestBody": {
            "content": {"application/json": {"schema": GeofenceCheckIn.model_json_schema(by_alias=True)}},
        }
    },
)
async def check_geofencing(
    request: Request,
    evaluator: GeofencingEvaluator = Depends(get_geofencing_evaluator),
):
    # Always 200: a failed check, malformed bodies included, must never break the login flow
    try:
        payload = GeofenceCheckIn.model_validate(await request.json())
    except (ValueError, ValidationError) as exc:
        logger.warning("Malformed geofencing check request; allowing: %s", exc)
        return evaluation_error(str(exc)).to_response()
    decision = await evaluator.evaluate(payload.user_id, payload.country_code, payload.city, payload.country)
    return decision.to_response()
