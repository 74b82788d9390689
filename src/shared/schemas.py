from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for wire-facing models: camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FrozenCamelModel(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


def slugify_enum(value):
    """Coerce loose enum text ("Loft Conversion", "loft_conversion") to "loft-conversion"."""
    if isinstance(value, str):
        return "-".join(value.strip().lower().replace("_", " ").split())
    return value
