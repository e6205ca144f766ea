from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Serialises as camelCase, which is what the dashboard reads."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)
