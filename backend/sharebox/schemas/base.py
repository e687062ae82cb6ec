"""Base schema classes with camelCase alias generation.

All API schemas inherit from these instead of BaseModel directly.
Backend Python code stays snake_case. API JSON output becomes camelCase.
"""
from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for API schemas. Accepts and outputs camelCase."""
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "from_attributes": True,
    }
