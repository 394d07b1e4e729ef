from datetime import datetime, timedelta
from typing import Annotated, Any, Dict, Optional, Type, TypeVar
from pydantic import BaseModel, BeforeValidator, Field, ConfigDict
from bson import ObjectId

# ObjectId in, hex string out
PyObjectId = Annotated[str, BeforeValidator(str)]

T = TypeVar("T", bound="MongoModel")

def utcnow() -> datetime:
    # Mongo keeps millisecond precision, naive UTC
    now = datetime.utcnow()
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)

def next_timestamp(previous: Optional[datetime]) -> datetime:
    """A write timestamp strictly after `previous`."""
    now = utcnow()
    if previous is not None and now <= previous:
        return previous + timedelta(milliseconds=1)
    return now

class MongoModel(BaseModel):
    """
    Stored document. `id` is the hex string of the Mongo `_id`; enum fields
    hold their plain values.
    """
    id: PyObjectId | None = Field(default=None, alias="_id")

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
        use_enum_values=True,
    )

    @classmethod
    def from_mongo(cls: Type[T], data: Dict[str, Any]) -> Optional[T]:
        """Model from a raw document, or None for a missing one."""
        if not data:
            return None
        data = dict(data)
        id = data.pop("_id", None)
        return cls(id=id, **data)

    def to_mongo(self, exclude_none: bool = False) -> Dict[str, Any]:
        """Document for insert. A missing id is left for the server to assign."""
        data = self.model_dump(by_alias=True, exclude_none=exclude_none)
        if data.get("_id") is None:
            data.pop("_id", None)
        else:
            data["_id"] = ObjectId(data["_id"])
        return data
