from pydantic import BaseModel, EmailStr, Field

USERNAME_PATTERN = r"^[A-Za-z0-9._-]+$"


class RegisterIn(BaseModel):
    username: str = Field(min_length=1, max_length=64, pattern=USERNAME_PATTERN)
    email: EmailStr
    password: str = Field(min_length=8, max_length=256)

class LoginIn(BaseModel):
    username: str
    password: str

class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"


class PasswordForgotIn(BaseModel):
    email: EmailStr
    username: str | None = None  # only needed when several accounts claim the email

class PasswordResetIn(BaseModel):
    new_password: str = Field(min_length=8, max_length=256)

class PasswordChangeIn(BaseModel):
    old_password: str = Field(min_length=1)
    new_password: str = Field(min_length=8, max_length=256)


class ResendConfirmationIn(BaseModel):
    email: EmailStr
    username: str | None = None

class EditProfileIn(BaseModel):
    email_address: EmailStr
    email_allowed: bool = True
