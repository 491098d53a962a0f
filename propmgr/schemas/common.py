from pydantic import BaseModel
from typing import Any, Optional


class ErrorOut(BaseModel):
    error: str
    message: str
    details: Optional[Any] = None


class CountOut(BaseModel):
    count: int
