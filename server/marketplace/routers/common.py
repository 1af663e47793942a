"""Helpers shared by the API routers."""

from fastapi.responses import JSONResponse
from pydantic import BaseModel


def json_response(model: BaseModel, status_code: int = 200) -> JSONResponse:
    """Serialize a response schema with its camelCase field names."""
    return JSONResponse(
        status_code=status_code,
        content=model.model_dump(mode="json", by_alias=True),
    )
