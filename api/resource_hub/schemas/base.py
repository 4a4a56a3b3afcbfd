from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Snake_case in Python, camelCase on the wire; either spelling accepted on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CountOut(ApiModel):
    count: int
