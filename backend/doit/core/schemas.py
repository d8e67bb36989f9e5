"""
backend/doit/core/schemas.py

Core Schemas

Defines core Pydantic models used across the application, including:
- DocumentModel: base for schemas mirroring stored documents (camelCase fields)
- Generic message response schema.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class DocumentModel(BaseModel):
    """
    Base schema whose JSON field names match the stored document fields
    (camelCase). Python attributes stay snake_case.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MessageResponse(BaseModel):
    """
    Generic response schema for simple success or informational messages.
    """

    detail: str = Field(..., description="Response message detail")
