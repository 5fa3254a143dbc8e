"""Pydantic schemas for administrator and member authentication."""

from __future__ import annotations

from typing import Annotated, Literal, Optional

from pydantic import BaseModel, EmailStr, Field


class AdminSignUpRequest(BaseModel):
	name: Annotated[str, Field(min_length=1, max_length=80)]
	email: EmailStr
	password: Annotated[str, Field(min_length=8)]
	gym_name: Annotated[str, Field(min_length=1, max_length=120)]
	phone: Optional[Annotated[str, Field(max_length=40)]] = None


class AdminLoginRequest(BaseModel):
	email: EmailStr
	password: str


class MemberLoginRequest(BaseModel):
	name: Annotated[str, Field(min_length=1, max_length=80)]
	club_id: Annotated[str, Field(min_length=1)]


class AdminOut(BaseModel):
	id: str
	name: str
	email: EmailStr
	gym_name: str
	phone: Optional[str] = None
	is_active: bool = True


class TokenResponse(BaseModel):
	access_token: str
	token_type: Literal["bearer"] = "bearer"
	expires_in: int
	session_id: str


class AdminSessionResponse(TokenResponse):
	admin: AdminOut
