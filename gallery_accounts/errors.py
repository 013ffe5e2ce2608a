"""Recoverable account-operation failures.

Each carries the HTTP status and the user-facing message the API renders.
None of them leave state behind: whoever raises one has not committed
anything for the request.
"""


class AccountError(Exception):
    status_code = 400
    default_detail = "Account operation failed."

    def __init__(self, detail: str | None = None, *, field: str | None = None):
        self.detail = detail or self.default_detail
        self.field = field
        super().__init__(self.detail)


class AccountNotFound(AccountError):
    status_code = 404
    default_detail = "Not found."


class InvalidToken(AccountError):
    status_code = 400
    default_detail = "The token is not valid or expired."


class AmbiguousAccount(AccountError):
    status_code = 409
    default_detail = "Multiple users registered with this email address. Enter your username."


class ValidationError(AccountError):
    status_code = 422
    default_detail = "Invalid input."


class EmailAddressTaken(AccountError):
    status_code = 409

    def __init__(self, email: str):
        super().__init__(f"The email address '{email}' is already taken.", field="email")


class IncorrectPassword(AccountError):
    status_code = 400
    default_detail = "Current password is incorrect."


class RateLimited(AccountError):
    status_code = 429
    default_detail = "Too many attempts. Please wait."
