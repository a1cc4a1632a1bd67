"""
SafawiNet Server - API Model Base

Request bodies use camelCase on the wire and snake_case in Python.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base for request models: accepts camelCase or snake_case keys"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
