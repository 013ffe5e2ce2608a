import logging
from typing import Protocol

log = logging.getLogger("gallery_accounts.mail")


class Mailer(Protocol):
    async def send_password_reset(self, *, to_email: str, username: str, reset_url: str) -> None:
        ...

    async def send_confirmation(self, *, to_email: str, username: str, confirmation_url: str) -> None:
        ...

    async def send_email_change_confirmation(
        self, *, to_email: str, username: str, confirmation_url: str
    ) -> None:
        ...

    async def send_email_change_notice(self, *, to_email: str, username: str, new_email: str) -> None:
        ...


# Dev mailer: logs instead of delivering
class DevMailer:
    async def send_password_reset(self, *, to_email: str, username: str, reset_url: str) -> None:
        log.info("dev_mail", extra={"kind": "password_reset", "to": to_email,
                                    "username": username, "url": reset_url})

    async def send_confirmation(self, *, to_email: str, username: str, confirmation_url: str) -> None:
        log.info("dev_mail", extra={"kind": "confirmation", "to": to_email,
                                    "username": username, "url": confirmation_url})

    async def send_email_change_confirmation(
        self, *, to_email: str, username: str, confirmation_url: str
    ) -> None:
        log.info("dev_mail", extra={"kind": "email_change_confirmation", "to": to_email,
                                    "username": username, "url": confirmation_url})

    async def send_email_change_notice(self, *, to_email: str, username: str, new_email: str) -> None:
        log.info("dev_mail", extra={"kind": "email_change_notice", "to": to_email,
                                    "username": username, "new_email": new_email})
