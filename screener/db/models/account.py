from sqlalchemy import Column, Integer, String, DateTime, Boolean, CheckConstraint
from sqlalchemy.sql import func
from screener.db.base import Base


class Account(Base):
    """
    Employer account.

    Holds the plan tier and the monthly analysis credit counter. The counter
    is only ever changed through the credit ledger's conditional updates.
    """
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Plan
    plan_tier = Column(String, nullable=False, default="free")  # free | starter | pro | business | enterprise
    plan_status = Column(String, nullable=True)  # active | past_due | canceled

    # Credit metering
    monthly_used = Column(Integer, nullable=False, default=0)
    billing_period_start = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    billing_cycle = Column(Integer, nullable=False, default=0)  # bumped on every rollover
    limit_warning_sent = Column(Boolean, nullable=False, default=False)

    # Stripe
    stripe_customer_id = Column(String, nullable=True, index=True)
    stripe_subscription_id = Column(String, nullable=True, index=True)
    stripe_price_id = Column(String, nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("monthly_used >= 0", name="ck_accounts_monthly_used_non_negative"),
    )

    def __repr__(self):
        return f"<Account(id={self.id}, email='{self.email}', plan='{self.plan_tier}')>"
