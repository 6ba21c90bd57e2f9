from pydantic import BaseModel, ConfigDict
from typing import List, Literal, Optional


class NamedRef(BaseModel):
    id: int
    name: str


class Job(BaseModel):
    id: int
    name: str
    status: Literal["open", "closed", "draft"]
    departments: List[NamedRef] = []
    offices: List[NamedRef] = []


class Stage(BaseModel):
    """Passthrough of the ATS stage; fields beyond these are kept as-is."""

    model_config = ConfigDict(extra="allow")

    id: int
    name: Optional[str] = None
    priority: Optional[int] = None
