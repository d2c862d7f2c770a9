"""Rutas de emisión de tickets"""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict
import logging

from shared.database.session import get_db
from shared.auth.dependencies import get_current_user
from shared.utils.rate_limiter import limiter, RATE_LIMITS
from services.ticket_issuance.models.issuance import TicketIssueRequest, TicketIssueResponse
from services.ticket_issuance.services.issuance_service import TicketIssuanceService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/issue", response_model=TicketIssueResponse)
@limiter.limit(RATE_LIMITS["issuance"])
async def issue_ticket(
    request: Request,
    issue_request: TicketIssueRequest,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_user)
):
    """
    Emitir el token QR de un registro propio

    Si el registro ya tiene token se devuelve el mismo.
    """
    try:
        result = await TicketIssuanceService.issue_ticket(
            db=db,
            event_id=issue_request.event_id,
            registration_id=issue_request.registration_id,
            user_id=current_user["user_id"],
            email=current_user.get("email"),
        )
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        logger.warning(f"Emisión rechazada para registro {issue_request.registration_id}: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return TicketIssueResponse(**result)
