"""Conversion between live checkpoint state and plain JSON data."""

import base64
import logging
from datetime import date, datetime
from typing import Any, Optional

from langchain_core.load import dumpd, load
from langchain_core.load.serializable import Serializable
from langchain_core.messages import (
    AIMessage,
    AIMessageChunk,
    ChatMessage,
    ChatMessageChunk,
    FunctionMessage,
    FunctionMessageChunk,
    HumanMessage,
    HumanMessageChunk,
    RemoveMessage,
    SystemMessage,
    SystemMessageChunk,
    ToolMessage,
    ToolMessageChunk,
)
from langgraph.checkpoint.serde.base import SerializerProtocol
from pydantic import BaseModel

logger = logging.getLogger(__name__)

SERDE_KEY = "__serde__"

# Classes load() may instantiate from a constructor envelope
REVIVABLE_CLASSES = [
    AIMessage,
    AIMessageChunk,
    ChatMessage,
    ChatMessageChunk,
    FunctionMessage,
    FunctionMessageChunk,
    HumanMessage,
    HumanMessageChunk,
    RemoveMessage,
    SystemMessage,
    SystemMessageChunk,
    ToolMessage,
    ToolMessageChunk,
]


def to_plain_data(value: Any, serde: Optional[SerializerProtocol] = None) -> Any:
    """
    Deep-copy a value into JSON-compatible structures.

    CRITICAL: applied at the store write boundary, the result shares no references with the input
    PATTERN: LangChain messages become lc constructor envelopes
    PATTERN: exceptions become {"message", "name"} error records

    Args:
        value: Arbitrary state, metadata or pending-write value
        serde: Serializer used for objects with no plain form

    Returns:
        Plain dicts, lists, strings, numbers, booleans and None
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, BaseException):
        return {"message": str(value), "name": type(value).__name__}
    if isinstance(value, Serializable) and value.is_lc_serializable():
        return dumpd(value)
    if isinstance(value, dict):
        return {str(key): to_plain_data(item, serde) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_plain_data(item, serde) for item in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if serde is not None:
        try:
            type_tag, payload = serde.dumps_typed(value)
            return {SERDE_KEY: type_tag, "data": base64.b64encode(payload).decode("ascii")}
        except (TypeError, ValueError) as e:
            logger.warning(f"Serializer rejected {type(value).__name__}: {e}")
    return repr(value)


def from_plain_data(value: Any, serde: Optional[SerializerProtocol] = None) -> Any:
    """
    Revive plain data produced by to_plain_data.

    LangChain message envelopes are loaded back into objects and
    serializer blobs are decoded. Envelopes for any other class stay
    plain dicts. Everything else is copied as-is.
    """
    if isinstance(value, list):
        return [from_plain_data(item, serde) for item in value]
    if not isinstance(value, dict):
        return value

    if value.get("lc") == 1 and value.get("type") == "constructor":
        try:
            return load(value, allowed_objects=REVIVABLE_CLASSES)
        except Exception as e:
            logger.warning(f"Could not revive serialized object {value.get('id')}: {e}")
            return {key: from_plain_data(item, serde) for key, item in value.items()}

    if serde is not None and isinstance(value.get(SERDE_KEY), str) and "data" in value:
        try:
            payload = base64.b64decode(value["data"])
            return serde.loads_typed((value[SERDE_KEY], payload))
        except Exception as e:
            logger.warning(f"Could not decode {value[SERDE_KEY]} blob: {e}")
            return dict(value)

    return {key: from_plain_data(item, serde) for key, item in value.items()}
