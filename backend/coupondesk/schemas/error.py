from typing import Any

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Body of every non-2xx response."""

    detail: Any
    code: str | None = None
