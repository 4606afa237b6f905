from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Base schema with ORM attribute loading enabled."""

    model_config = ConfigDict(from_attributes=True)
