"""
Credit ledger for monthly CV analysis credits.

Every debit is a single conditional UPDATE against the accounts row
(increment-with-ceiling), so concurrent uploads can never push an account
past its plan limit. Nothing about usage is cached in process memory.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Any, Optional, List

from sqlalchemy import update, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from screener.core import config
from screener.core.exceptions import AccountNotFound, CreditLedgerError
from screener.core.plan_limits import get_plan_limit, normalize_plan
from screener.db.models.account import Account
from screener.db.models.credit_debit import CreditDebit

logger = logging.getLogger(__name__)

# A plan change between reading the tier and debiting invalidates the limit; retry this many times
MAX_DEBIT_ATTEMPTS = 3

LIMIT_WARNING_THRESHOLD = 0.9


@dataclass
class CreditDecision:
    """Outcome of a check_and_debit call. limit/remaining are None for unlimited plans."""
    allowed: bool
    used: int
    remaining: Optional[int]
    limit: Optional[int]
    debit_id: Optional[int] = None


def _read_plan_and_usage(db: Session, account_id: int):
    row = db.execute(
        select(Account.plan_tier, Account.monthly_used, Account.billing_cycle).where(Account.id == account_id)
    ).first()
    if row is None:
        raise AccountNotFound(f"Account {account_id} not found")
    return row


def check_and_debit(db: Session, account_id: int, candidate_id: Optional[str] = None) -> CreditDecision:
    """
    Spend one analysis credit if the account is under its plan limit.

    Args:
        db: Database session
        account_id: Account to debit
        candidate_id: Candidate the credit is spent on (recorded on the debit)

    Returns:
        CreditDecision with the usage after this call

    Raises:
        AccountNotFound: Unknown account
        CreditLedgerError: The database rejected the debit
    """
    try:
        for _ in range(MAX_DEBIT_ATTEMPTS):
            plan_tier, used_before, _cycle = _read_plan_and_usage(db, account_id)
            limit = get_plan_limit(plan_tier)

            stmt = (
                update(Account)
                .where(Account.id == account_id, Account.plan_tier == plan_tier)
                .values(monthly_used=Account.monthly_used + 1)
                .returning(Account.monthly_used, Account.billing_cycle)
                .execution_options(synchronize_session=False)
            )
            if limit is not None:
                stmt = stmt.where(Account.monthly_used < limit)

            row = db.execute(stmt).first()

            if row is not None:
                used, billing_cycle = row
                debit = CreditDebit(
                    account_id=account_id,
                    candidate_id=candidate_id,
                    billing_cycle=billing_cycle,
                )
                db.add(debit)
                db.commit()

                remaining = None if limit is None else max(0, limit - used)
                logger.info(
                    f"Credit debited: account_id={account_id}, candidate_id={candidate_id}, "
                    f"used={used}/{limit if limit is not None else 'unlimited'}, plan={plan_tier}"
                )
                return CreditDecision(allowed=True, used=used, remaining=remaining, limit=limit, debit_id=debit.id)

            db.rollback()

            # No row updated: either the ceiling was hit or the plan changed underneath us
            current_plan, current_used, _ = _read_plan_and_usage(db, account_id)
            if current_plan == plan_tier:
                logger.info(
                    f"Credit denied: account_id={account_id}, plan={plan_tier}, "
                    f"used={current_used}, limit={limit}"
                )
                return CreditDecision(allowed=False, used=current_used, remaining=0, limit=limit)

            logger.debug(f"Plan changed during debit, retrying: account_id={account_id}")

    except AccountNotFound:
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Credit debit failed: account_id={account_id}: {e}", exc_info=True)
        raise CreditLedgerError(f"Credit debit failed for account {account_id}") from e

    raise CreditLedgerError(f"Plan kept changing while debiting account {account_id}")


def refund(db: Session, debit_id: int) -> bool:
    """
    Give back a credit spent on a dispatch that never started.

    Only refunds debits from the account's current billing cycle, and only once.

    Returns:
        True if the counter was decremented
    """
    debit = db.query(CreditDebit).filter(CreditDebit.id == debit_id).first()
    if not debit or debit.refunded_at is not None:
        return False

    try:
        claimed = db.execute(
            update(CreditDebit)
            .where(CreditDebit.id == debit_id, CreditDebit.refunded_at.is_(None))
            .values(refunded_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        ).rowcount
        if not claimed:
            db.rollback()
            return False

        decremented = db.execute(
            update(Account)
            .where(
                Account.id == debit.account_id,
                Account.billing_cycle == debit.billing_cycle,
                Account.monthly_used > 0,
            )
            .values(monthly_used=Account.monthly_used - 1)
            .execution_options(synchronize_session=False)
        ).rowcount
        if not decremented:
            # Period rolled over since the debit; nothing to give back
            db.rollback()
            return False

        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Credit refund failed: debit_id={debit_id}: {e}", exc_info=True)
        raise CreditLedgerError(f"Credit refund failed for debit {debit_id}") from e

    logger.info(f"Credit refunded: account_id={debit.account_id}, debit_id={debit_id}")
    return True


def rollover(db: Session, account_id: int, now: Optional[datetime] = None) -> None:
    """
    Start a new billing period: usage back to zero, plan tier untouched.

    Raises:
        AccountNotFound: Unknown account
    """
    now = now or datetime.utcnow()
    result = db.execute(
        update(Account)
        .where(Account.id == account_id)
        .values(
            monthly_used=0,
            billing_period_start=now,
            billing_cycle=Account.billing_cycle + 1,
            limit_warning_sent=False,
        )
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        db.rollback()
        raise AccountNotFound(f"Account {account_id} not found")
    db.commit()
    logger.info(f"Billing period rolled over: account_id={account_id}")


def reset_expired_periods(db: Session, now: Optional[datetime] = None) -> List[int]:
    """
    Roll over every account whose billing period is older than BILLING_PERIOD_DAYS.

    Returns:
        IDs of the accounts that were rolled over
    """
    now = now or datetime.utcnow()
    cutoff = now - timedelta(days=config.BILLING_PERIOD_DAYS)
    account_ids = [
        row[0] for row in db.execute(
            select(Account.id).where(Account.billing_period_start <= cutoff)
        ).all()
    ]

    for account_id in account_ids:
        rollover(db, account_id, now=now)

    logger.info(f"Reset billing periods for {len(account_ids)} account(s)")
    return account_ids


def flag_limit_warning(db: Session, account_id: int) -> bool:
    """
    Mark the 90% usage warning as sent.

    Returns:
        True only for the call that flipped the flag, so the warning goes out once per period
    """
    plan_tier, used, _ = _read_plan_and_usage(db, account_id)
    limit = get_plan_limit(plan_tier)
    if limit is None or limit <= 0 or used < limit * LIMIT_WARNING_THRESHOLD:
        return False

    flipped = db.execute(
        update(Account)
        .where(Account.id == account_id, Account.limit_warning_sent.is_(False))
        .values(limit_warning_sent=True)
        .execution_options(synchronize_session=False)
    ).rowcount
    db.commit()

    if flipped:
        logger.warning(f"Credit usage reached 90%: account_id={account_id}, used={used}/{limit}")
    return bool(flipped)


def get_credit_status(db: Session, account_id: int) -> Dict[str, Any]:
    """
    Get credit data formatted for GET /me/credits.

    Returns:
        Dictionary with plan, limit, used, remaining and derived flags
    """
    account = db.query(Account).filter(Account.id == account_id).first()
    if not account:
        raise AccountNotFound(f"Account {account_id} not found")

    plan = normalize_plan(account.plan_tier)
    limit = get_plan_limit(plan)
    used = account.monthly_used or 0

    if limit is None:
        remaining = None
        percentage = 0.0
        is_at_limit = False
    else:
        remaining = max(0, limit - used)
        percentage = min(100.0, (used / limit) * 100) if limit else 100.0
        is_at_limit = remaining <= 0

    return {
        "plan": plan,
        "limit": limit,
        "used": used,
        "remaining": remaining,
        "unlimited": limit is None,
        "can_analyze": not is_at_limit,
        "is_at_limit": is_at_limit,
        "percentage": round(percentage, 1),
        "billing_period_start": account.billing_period_start,
        "limit_table": config.PLAN_LIMIT_TABLE,
    }
