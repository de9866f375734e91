import hmac

import jwt
from fastapi import Depends, Header, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from practice_scheduler.auth import jwt_handler
from practice_scheduler.core import config
from practice_scheduler.database import get_db
from practice_scheduler.models.practice import Practice

security = HTTPBearer()


def get_current_practice(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> Practice:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_practice_token(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    email = payload.get("sub")
    practice_id = payload.get("practice_id")
    if not email or practice_id is None:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    practice = db.query(Practice).filter(
        Practice.id == practice_id,
        Practice.owner_email == email,
    ).first()
    if practice is None:
        raise HTTPException(status_code=403, detail="Practice not found or access denied")
    return practice


def verify_telephony_secret(x_telephony_secret: str | None = Header(default=None)) -> None:
    if not config.TELEPHONY_WEBHOOK_SECRET:
        return
    if not x_telephony_secret or not hmac.compare_digest(x_telephony_secret, config.TELEPHONY_WEBHOOK_SECRET):
        raise HTTPException(status_code=401, detail="Invalid telephony secret")
