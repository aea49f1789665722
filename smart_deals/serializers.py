from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List

from bson import ObjectId
from bson.errors import InvalidId

from .errors import InvalidId as InvalidIdError


def parse_object_id(value: str, label: str = "identifier") -> ObjectId:
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError) as exc:
        raise InvalidIdError(f"Invalid {label} format.") from exc


def serialize_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value.isoformat() + "Z"
    if isinstance(value, dict):
        return {str(key): serialize_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_value(item) for item in value]
    return value


def serialize_document(document) -> Dict[str, Any]:
    if not document:
        return {}
    return serialize_value(document)


def serialize_documents(documents: Iterable) -> List[Dict[str, Any]]:
    return [serialize_document(document) for document in documents]


def insert_result_payload(result) -> Dict[str, Any]:
    return {"acknowledged": result.acknowledged, "insertedId": str(result.inserted_id)}
