from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ToolInput(BaseModel):
    """Tool arguments; accepted in camelCase (as exported) or snake_case."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")
