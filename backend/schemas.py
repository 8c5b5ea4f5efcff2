"""Pydantic v2 request/response schemas for FastAPI."""

import re
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from models_async import PARAMETER_TYPES


class SignupRequest(BaseModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=1)
    password: str = Field(min_length=8)

    @field_validator("email")
    @classmethod
    def email_format(cls, v: str) -> str:
        v = v.strip().lower()
        parts = v.split("@")
        if len(parts) != 2 or not parts[0] or "." not in parts[1]:
            raise ValueError("Invalid email address")
        return v

    @field_validator("password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        if not re.search(r"[A-Z]", v):
            raise ValueError("Password must contain at least one uppercase letter")
        if not re.search(r"[0-9]", v):
            raise ValueError("Password must contain at least one number")
        return v


class LoginRequest(BaseModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class ProjectCreate(BaseModel):
    # Blank names are rejected by the route with a 400, not by validation
    name: str = ""
    description: Optional[str] = None


class UrlSourceCreate(BaseModel):
    projectId: Optional[str] = None
    url: Optional[str] = None


class AnalyzeSourcesRequest(BaseModel):
    projectId: Optional[str] = None


class ParameterCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    type: str = "text"
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Parameter name is required")
        return v

    @field_validator("type")
    @classmethod
    def known_type(cls, v: str) -> str:
        if v not in PARAMETER_TYPES:
            raise ValueError(f"type must be one of: {', '.join(PARAMETER_TYPES)}")
        return v


class CellValueUpdate(BaseModel):
    parameter_id: str = Field(min_length=1)
    data_source_id: str = Field(min_length=1)
    value: Optional[str] = None
