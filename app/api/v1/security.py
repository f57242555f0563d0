from fastapi import APIRouter, Depends

from app.core.auth import get_current_claims
from app.core.deps import get_score_calculator
from app.core.security import TokenClaims
from app.schemas.score import SecurityScore
from app.services.score import SecurityScoreCalculator

router = APIRouter()


@router.get("/score", response_model=SecurityScore)
async def security_score(
    claims: TokenClaims = Depends(get_current_claims),
    calculator: SecurityScoreCalculator = Depends(get_score_calculator),
):
    return await calculator.calculate(claims.sub)
