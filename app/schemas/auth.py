from datetime import datetime
from pydantic import BaseModel, EmailStr, Field
from app.schemas.enums import Role

# Letters, digits, "_", "." and "-", ending in a letter or digit. @mentions use the same form.
USERNAME_PATTERN = r"[\w.-]*\w"


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=2, max_length=100, pattern=rf"^{USERNAME_PATTERN}$")
    email: EmailStr
    password: str = Field(..., min_length=6)


class AuthResponse(BaseModel):
    user_id: int
    username: str
    role: Role
    access_token: str
    token_type: str = "bearer"
    expires: datetime
