from typing import Optional
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from screener.core import config
from screener.core.security import decode_access_token
from screener.db.session import get_db
from screener.db.models.account import Account

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


def get_current_user(token: str = Depends(oauth2_scheme)) -> str:
    """Get current account email from JWT token."""
    email = decode_access_token(token)
    if email is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return email


def get_account_by_email(email: str, db: Session) -> Optional[Account]:
    return db.query(Account).filter(Account.email == email).first()


def get_current_account(
    email: str = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> Account:
    """Get current Account object from JWT token."""
    account = get_account_by_email(email, db)
    if not account:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Account not found"
        )
    return account


def require_ops_token(x_ops_token: Optional[str] = Header(None)) -> None:
    """Guard for operational endpoints triggered by schedulers."""
    if not config.OPS_TOKEN or x_ops_token != config.OPS_TOKEN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Operations token required"
        )
