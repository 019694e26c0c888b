from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class InvestorCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr


class InvestorDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: str
    created_at: datetime
