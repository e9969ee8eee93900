import logging
from typing import Any, Callable, Dict, Optional, Union

from pydantic import ValidationError

from .classifier import classify, parse_body
from .dispatch import PushDispatcher, build_dispatcher
from .enrichment import NoRecipients, SameActor, build_new_comment_intent, build_new_post_intent
from .errors import BadRequestError, ConfigurationError, NotificationError
from .schemas import (ClassifiedRequest, CommentDocument, EventKind, FunctionResponse,
                      NotificationIntent, PostDocument)
from .tokens import TokenResolver, build_token_resolver
from ..config import Settings
from ..firebase import connect
from ..store import DocumentStore, FirestoreDocumentStore

logger = logging.getLogger(__name__)

RawBody = Union[bytes, str, Dict[str, Any], None]


def check_credentials(settings: Settings) -> None:
    """Fail fast when a required connection credential is missing."""
    missing = settings.missing_credentials()
    if missing:
        raise ConfigurationError(f"{missing[0]} is not defined")


class NotificationService:
    def __init__(self, settings: Settings, store: DocumentStore, resolver: TokenResolver,
                 dispatcher: PushDispatcher):
        """
        Initialize the notification service

        Args:
            settings: Settings shared by all components
            store: Document store for posts, comments and users
            resolver: Token resolver for recipient devices
            dispatcher: Push dispatcher for the outbound call
        """
        self.settings = settings
        self.store = store
        self.resolver = resolver
        self.dispatcher = dispatcher

    async def process(self, raw_body: RawBody, event_header: Optional[str] = None) -> FunctionResponse:
        """
        Run one invocation from raw body to response.

        Raises:
            NotificationError: On any input, configuration or downstream failure
        """
        payload = parse_body(raw_body)
        classified = classify(payload, self.settings, event_header)

        if classified.kind == EventKind.DIRECT:
            intent = NotificationIntent(**classified.direct.model_dump())
            return await self.send_notification(intent)

        outcome = await self._enrich(classified)
        if isinstance(outcome, (NoRecipients, SameActor)):
            return FunctionResponse.success(message=outcome.message)
        return await self.send_notification(outcome)

    async def _enrich(self, classified: ClassifiedRequest):
        try:
            if classified.kind == EventKind.NEW_POST:
                post = PostDocument.model_validate(classified.document)
                logger.info(f"Handling new post {post.id} by {post.authorId}")
                return await build_new_post_intent(post, self.store, self.settings)

            comment = CommentDocument.model_validate(classified.document)
            logger.info(f"Handling new comment {comment.id} on post {comment.postId}")
            return await build_new_comment_intent(comment, self.store, self.settings)
        except ValidationError as e:
            fields = ", ".join(".".join(str(part) for part in err["loc"]) for err in e.errors())
            raise BadRequestError(f"Invalid {classified.kind.value} document: {fields}")

    async def send_notification(self, intent: NotificationIntent) -> FunctionResponse:
        """
        Resolve device tokens for the intent's users and dispatch once.

        Args:
            intent: What to send and to whom

        Returns:
            FunctionResponse reporting the recipient count and message id
        """
        logger.info(f"Sending {intent.type.value} notification to users: {', '.join(intent.userIds)}")

        tokens = await self.resolver.resolve(intent.userIds)
        if not tokens:
            logger.info("No push tokens found for the specified users")
            return FunctionResponse.success(message="No push tokens found", sentTo=0)

        logger.info(f"Found {len(tokens)} push tokens for {len(intent.userIds)} users")
        result = await self.dispatcher.send(tokens, intent)

        return FunctionResponse.success(
            messageId=result.message_id,
            sentTo=result.sent_to,
            tokensUsed=len(tokens),
        )

    async def handle(self, raw_body: RawBody, event_header: Optional[str] = None) -> FunctionResponse:
        """Run process() and convert every failure into an error response."""
        try:
            return await self.process(raw_body, event_header)
        except NotificationError as e:
            if e.status_code >= 500:
                logger.error(f"Failed to process request: {e.message}")
            else:
                logger.warning(f"Rejected request: {e.message}")
            return FunctionResponse.failure(e.message, e.status_code)
        except Exception as e:
            logger.exception(f"Failed to process request: {str(e)}")
            return FunctionResponse.failure(str(e), 500)


def build_service(settings: Settings) -> NotificationService:
    """Wire the Firestore store, token resolver chain and dispatcher."""
    check_credentials(settings)
    connection = connect(settings)
    store = FirestoreDocumentStore(connection.get_firestore_db())
    return NotificationService(
        settings=settings,
        store=store,
        resolver=build_token_resolver(settings, store),
        dispatcher=build_dispatcher(settings, app=connection.get_app()),
    )


async def handle_request(raw_body: RawBody, settings: Settings, event_header: Optional[str] = None,
                         service_factory: Callable[[Settings], NotificationService] = build_service) -> FunctionResponse:
    """
    Entry point shared by the HTTP app and the Lambda handler.

    Credentials are checked before the service is built.
    """
    logger.debug(f"Raw request body: {raw_body!r}")
    try:
        check_credentials(settings)
        service = service_factory(settings)
    except NotificationError as e:
        logger.error(e.message)
        return FunctionResponse.failure(e.message, e.status_code)
    except Exception as e:
        logger.exception(f"Failed to initialize services: {str(e)}")
        return FunctionResponse.failure(str(e), 500)
    return await service.handle(raw_body, event_header)
