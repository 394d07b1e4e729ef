from pydantic import Field
from toolroom.models.base import MongoModel

class Tool(MongoModel):
    """Tool catalog entry. Owned by the inventory screens; read-only here."""
    name: str
    part_number: str = ""
    manufacturer: str = ""
    description: str = Field("", description="Free text shown on the inventory screens")
