import json
import logging
from typing import Any, Dict, NamedTuple, Optional, Union

from pydantic import ValidationError

from .errors import BadRequestError, MissingFieldsError, UnhandledEventError
from .schemas import ClassifiedRequest, DirectNotification, EventKind
from ..config import Settings

logger = logging.getLogger(__name__)

REQUIRED_DIRECT_FIELDS = ("userIds", "title", "body", "postId", "type")

# Container segment names followed by the collection id in an event name
_COLLECTION_SEGMENTS = ("collections", "tables")


class EventRef(NamedTuple):
    collection_id: Optional[str]
    operation: Optional[str]


def parse_body(raw: Union[bytes, str, Dict[str, Any], None]) -> Dict[str, Any]:
    """
    Decode a request body into a payload dictionary.

    Args:
        raw: Body as received; bytes, a JSON string (possibly double-encoded) or a parsed object

    Returns:
        The decoded payload

    Raises:
        BadRequestError: If the body is empty, not valid JSON or not an object
    """
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise BadRequestError(f"Invalid JSON body: {e}")
    if not isinstance(raw, str) or not raw.strip():
        raise BadRequestError("Invalid JSON body: request body is empty")

    try:
        payload = json.loads(raw)
        # Some webhook relays send the JSON document as a JSON string
        if isinstance(payload, str):
            payload = json.loads(payload)
    except json.JSONDecodeError as e:
        raise BadRequestError(f"Invalid JSON body: {e.msg}")

    if not isinstance(payload, dict):
        raise BadRequestError("Invalid JSON body: expected a JSON object")
    return payload


def parse_event_name(name: str) -> EventRef:
    """
    Split an event name such as
    ``databases.default.collections.posts.documents.abc123.create``
    into its collection id and operation.
    """
    if not name:
        return EventRef(None, None)
    segments = name.split(".")
    collection_id = None
    for index, segment in enumerate(segments[:-1]):
        if segment in _COLLECTION_SEGMENTS:
            collection_id = segments[index + 1]
            break
    if collection_id is None:
        return EventRef(None, None)
    return EventRef(collection_id, segments[-1])


def _kind_for(ref: EventRef, settings: Settings) -> Optional[EventKind]:
    if ref.operation != "create":
        return None
    if ref.collection_id == settings.posts_collection_id:
        return EventKind.NEW_POST
    if ref.collection_id == settings.comments_collection_id:
        return EventKind.NEW_COMMENT
    return None


def _document_from(payload: Dict[str, Any]) -> Dict[str, Any]:
    document = payload.get("document")
    if isinstance(document, dict) and document:
        return document
    return {key: value for key, value in payload.items() if key not in ("events", "document")}


def classify(payload: Dict[str, Any], settings: Settings, event_header: Optional[str] = None) -> ClassifiedRequest:
    """
    Decide whether a payload is a new post, a new comment or a direct call.

    Args:
        payload: Decoded request body
        settings: Settings holding the configured collection ids
        event_header: Event name delivered out of band, if any

    Returns:
        ClassifiedRequest carrying the document or the validated direct call

    Raises:
        UnhandledEventError: For webhook events other than post/comment creates
        MissingFieldsError: For direct calls lacking a required field
    """
    events = payload.get("events")
    if isinstance(events, list) and events:
        event_name = events[0] if isinstance(events[0], str) else ""
    else:
        event_name = event_header or ""

    if event_name:
        ref = parse_event_name(event_name)
        kind = _kind_for(ref, settings)
        logger.info(f"Event received: {event_name} (collection: {ref.collection_id}, operation: {ref.operation})")
        if kind is None:
            logger.warning(f"Unhandled event type: {event_name}")
            raise UnhandledEventError("Unhandled event type")
        return ClassifiedRequest(kind=kind, document=_document_from(payload))

    collection_id = payload.get("$collectionId")
    if collection_id:
        kind = _kind_for(EventRef(collection_id, "create"), settings)
        logger.info(f"Document received for collection {collection_id}")
        if kind is None:
            logger.warning(f"Unhandled collection: {collection_id}")
            raise UnhandledEventError("Unhandled event type")
        return ClassifiedRequest(kind=kind, document=_document_from(payload))

    missing = [field for field in REQUIRED_DIRECT_FIELDS if not payload.get(field)]
    if missing:
        logger.warning(f"Direct call missing fields: {', '.join(missing)}")
        raise MissingFieldsError(f"Missing required fields: {', '.join(REQUIRED_DIRECT_FIELDS)}")

    try:
        direct = DirectNotification.model_validate(payload)
    except ValidationError as e:
        fields = ", ".join(".".join(str(part) for part in err["loc"]) for err in e.errors())
        raise MissingFieldsError(f"Invalid fields: {fields}")

    return ClassifiedRequest(kind=EventKind.DIRECT, direct=direct)
