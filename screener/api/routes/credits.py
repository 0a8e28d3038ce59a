"""
Credit usage endpoints.

Provides the analysis credit balance of the authenticated account.
"""
import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from screener.db.session import get_db
from screener.db.models.account import Account
from screener.core.auth_dependency import get_current_account
from screener.schemas.credits import CreditStatusResponse
from screener.services.credit_ledger import get_credit_status

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/me", tags=["Credits"])


@router.get("/credits", status_code=status.HTTP_200_OK, response_model=CreditStatusResponse)
def get_credits(
    account: Account = Depends(get_current_account),
    db: Session = Depends(get_db)
):
    """
    Get analysis credit usage for the current billing period.

    Returns:
    - plan: Current plan tier
    - limit / used / remaining: Monthly analysis credits (limit and remaining are null when unlimited)
    - can_analyze / is_at_limit / percentage: Derived flags for the UI

    Requires authentication via Bearer token.
    """
    credit_data = get_credit_status(db, account.id)
    logger.debug(f"Credit status requested: account_id={account.id}, plan={credit_data['plan']}")
    return credit_data
