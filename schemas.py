"""
Database Schemas for the E-LIFE Registration System

Each entity model below corresponds to a MongoDB collection (the plural table
name is listed in TABLES). Attributes mirror the snake_case field names of the
stored rows; JSON input/output uses the camelCase aliases.
"""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

RegistrationStatus = Literal["pending", "approved", "rejected"]
AdminRole = Literal["super", "local", "user"]

TABLES = ("categories", "panchayaths", "registrations", "admins", "announcements")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Entities

class Category(CamelModel):
    id: str
    name: str = Field(..., description="Category name")
    description: str = ""
    actual_fee: float = Field(0, ge=0)
    offer_fee: float = Field(0, ge=0)
    image_url: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None


class Panchayath(CamelModel):
    id: str
    name: str
    district: str = Field("", description="Parent area, free text")
    is_active: bool = True


class Registration(CamelModel):
    id: str
    customer_id: str
    category_id: str
    category_name: str = Field("", description="Snapshot taken at registration time")
    name: str
    address: str
    mobile_number: str
    panchayath_id: str
    panchayath_name: str = Field("", description="Snapshot taken at registration time")
    ward: str
    agent_pro: Optional[str] = None
    status: RegistrationStatus = "pending"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Admin(CamelModel):
    id: str
    username: str
    role: AdminRole = "user"
    is_active: bool = True


class Announcement(CamelModel):
    id: str
    title: str
    content: str = ""
    is_active: bool = True
    created_at: Optional[datetime] = None


# Write payloads

class CategoryCreate(CamelModel):
    name: str
    description: str = ""
    actual_fee: float = Field(0, ge=0)
    offer_fee: float = Field(0, ge=0)
    image_url: Optional[str] = None


class CategoryUpdate(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    actual_fee: Optional[float] = Field(None, ge=0)
    offer_fee: Optional[float] = Field(None, ge=0)
    image_url: Optional[str] = None
    is_active: Optional[bool] = None


class PanchayathCreate(CamelModel):
    name: str
    district: str = ""


class PanchayathUpdate(CamelModel):
    name: Optional[str] = None
    district: Optional[str] = None
    is_active: Optional[bool] = None


class AdminCreate(CamelModel):
    username: str
    password: str = Field(..., min_length=1)
    role: AdminRole = "user"


class AdminUpdate(CamelModel):
    password: Optional[str] = Field(None, min_length=1)
    role: Optional[AdminRole] = None
    is_active: Optional[bool] = None


class RegistrationDraft(CamelModel):
    """What an end user submits; validated by the registration workflow."""
    category_id: str = ""
    name: str = ""
    address: str = ""
    mobile_number: str = ""
    panchayath_id: str = ""
    ward: str = ""
    agent_pro: Optional[str] = None
    status: Optional[str] = None  # ignored, new registrations are always pending


class RegistrationCreate(CamelModel):
    category_id: str
    category_name: str = ""
    name: str
    address: str
    mobile_number: str
    panchayath_id: str
    panchayath_name: str = ""
    ward: str
    agent_pro: Optional[str] = None
    status: Optional[str] = None


class RegistrationUpdate(CamelModel):
    status: Optional[RegistrationStatus] = None
    name: Optional[str] = None
    address: Optional[str] = None
    ward: Optional[str] = None
    agent_pro: Optional[str] = None


class StatusUpdateRequest(CamelModel):
    status: RegistrationStatus


# Auth

class LoginRequest(CamelModel):
    username: str
    password: str


class LoginResponse(CamelModel):
    token: str
    admin: Admin
