from __future__ import annotations

from typing import Callable

from fastapi import Request

# (route_name, username, token) -> absolute url
UrlBuilder = Callable[[str, str, str], str]

CONFIRM_EMAIL_ROUTE = "confirm_email"
RESET_PASSWORD_ROUTE = "reset_password"


class ConfirmationUrlBuilder:
    """Builds the absolute links mailed out for confirmation and reset."""

    def __init__(self, request: Request, base_url: str | None = None):
        self.request = request
        self.base_url = base_url

    def __call__(self, route_name: str, username: str, token: str) -> str:
        path = self.request.app.url_path_for(route_name, username=username, token=token)
        if self.base_url:
            return f"{self.base_url.rstrip('/')}{path}"
        return str(path.make_absolute_url(self.request.base_url))
