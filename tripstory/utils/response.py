from typing import Any

from pydantic import BaseModel


def _jsonable(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    if isinstance(data, (list, tuple)):
        return [_jsonable(item) for item in data]
    if isinstance(data, dict):
        return {key: _jsonable(value) for key, value in data.items()}
    return data


def success_response(data: Any = None, message: str | None = None) -> dict:
    """Standard envelope. Pydantic models anywhere in ``data`` are dumped to JSON types."""
    return {"status": "success", "data": _jsonable(data), "message": message}


def error_response(message: str, data: Any = None) -> dict:
    return {"status": "error", "data": _jsonable(data), "message": message}
