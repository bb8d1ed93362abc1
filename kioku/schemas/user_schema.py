from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict


class UserBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Profile display name")
    avatar: Optional[str] = Field(None, max_length=50)


class UserCreate(UserBase):
    password: Optional[str] = Field(None, description="Optional profile password")


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    password: Optional[str] = None
    avatar: Optional[str] = Field(None, max_length=50)


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    avatar: str
    created_at: datetime
    last_login_at: Optional[datetime] = None
    has_password: bool


class LoginRequest(BaseModel):
    user_id: str
    password: Optional[str] = None
