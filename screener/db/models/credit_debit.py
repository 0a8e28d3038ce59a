from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.sql import func
from screener.db.base import Base


class CreditDebit(Base):
    """
    One analysis credit spent by an account.

    Written in the same transaction as the counter increment so every unit
    of monthly_used can be traced back to a candidate.
    """
    __tablename__ = "credit_debits"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    candidate_id = Column(String(36), nullable=True, index=True)
    billing_cycle = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    refunded_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_credit_debits_account_cycle", "account_id", "billing_cycle"),
    )
