from pydantic import BaseModel

class Actor(BaseModel):
    """The user performing an action. Authentication happens upstream."""
    id: str
    name: str = ""
    role: str = "operator"
