from typing import Optional

from fastapi import Header, HTTPException, Request

from api.state import AppContext


def get_context(request: Request) -> AppContext:
    return request.app.state.ctx


class CurrentUser:
    def __init__(self, user_id: str, company_id: Optional[str] = None):
        self.user_id = user_id
        self.company_id = company_id


def get_current_user(
    x_user_id: Optional[str] = Header(None),
    x_company_id: Optional[str] = Header(None),
) -> CurrentUser:
    # Token verification happens upstream; we only trust the forwarded identity
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return CurrentUser(x_user_id.strip(), (x_company_id or "").strip() or None)
