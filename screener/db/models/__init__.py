"""
Database models module.

This module imports all database models to ensure they are registered with SQLAlchemy's Base.metadata
before table creation.

All models must be imported here to be included in database migrations and table creation.
"""
from screener.db.models.account import Account
from screener.db.models.job_opening import JobOpening
from screener.db.models.candidate import Candidate, AnalysisStatus
from screener.db.models.credit_debit import CreditDebit

__all__ = [
    "Account",
    "JobOpening",
    "Candidate",
    "AnalysisStatus",
    "CreditDebit",
]
