from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from gallery_accounts.utils import get_client_ip

@dataclass(frozen=True)
class RequestContext:
    request_id: Optional[str] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = None

def get_request_context(request: Request) -> RequestContext:
    # request_id is placed on request.state by RequestIDMiddleware
    rid = getattr(request.state, "request_id", None)
    return RequestContext(
        request_id=rid,
        ip=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
