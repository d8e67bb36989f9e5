"""
backend/doit/applications/schemas.py

Application Schemas
Defines Pydantic schemas for bids on tasks:
- ApplicationCreate: Message and price offered by the applicant
- ApplicationRead: Stored application with applicant details
- AcceptResult: Outcome of accepting an application
"""

from datetime import datetime
from typing import Annotated

from pydantic import ConfigDict, Field

from doit.core.schemas import DocumentModel
from doit.database.enums import ApplicationStatus


class ApplicationCreate(DocumentModel):
    message: str = Field(default="", max_length=2000, description="Note to the task creator")
    price: Annotated[float, Field(ge=0, description="Price the applicant asks for")]


class ApplicationRead(DocumentModel):
    model_config = ConfigDict(extra="allow")

    id: str
    task_id: str
    applicant_id: str
    message: str = ""
    price: float | None = None
    status: ApplicationStatus = ApplicationStatus.PENDING
    created_at: datetime | None = None
    updated_at: datetime | None = None

    applicant_name: str = Field(default="Unknown user", description="Applicant display name")
    applicant_photo_url: str = Field(default="", alias="applicantPhotoURL")


class AcceptResult(DocumentModel):
    application_id: str
    task_id: str
    chat_id: str | None = Field(default=None, description="Chat opened between creator and applicant")
