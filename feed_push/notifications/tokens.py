import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

from .errors import TokenSourceUnavailable
from .schemas import PushTarget
from ..config import Settings
from ..store import DocumentStore

logger = logging.getLogger(__name__)

PUSH_PROVIDER_TYPE = "push"


class TokenResolver(Protocol):
    """Resolves user ids to deliverable device tokens."""

    name: str

    async def resolve(self, user_ids: Sequence[str]) -> List[str]:
        ...


def _first_token(document: Dict[str, Any], fields: Iterable[str]) -> Optional[str]:
    for field in fields:
        value = document.get(field)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


class ManagedTargetResolver:
    """Reads each user's registered push targets from the managed registry."""

    name = "managed_targets"

    def __init__(self, store: DocumentStore, settings: Settings):
        self.store = store
        self.settings = settings

    async def _targets_for(self, user_id: str) -> List[str]:
        try:
            documents = await self.store.list_subcollection(
                self.settings.users_collection_id,
                user_id,
                self.settings.push_targets_collection_id,
                self.settings.token_query_limit,
            )
        except Exception as e:
            logger.error(f"Failed to get targets for user {user_id}: {str(e)}")
            return []

        identifiers = []
        for document in documents:
            target = PushTarget.model_validate(document)
            if target.providerType == PUSH_PROVIDER_TYPE and target.identifier and target.identifier.strip():
                identifiers.append(target.identifier.strip())
        return identifiers

    async def resolve(self, user_ids: Sequence[str]) -> List[str]:
        if not self.settings.push_targets_collection_id:
            raise TokenSourceUnavailable("push targets registry is not configured")
        results = await asyncio.gather(*(self._targets_for(user_id) for user_id in user_ids))
        tokens = [token for targets in results for token in targets]
        return tokens[:self.settings.token_query_limit]


class TokenCollectionResolver:
    """Queries the dedicated push token collection by user id."""

    name = "token_collection"
    token_fields = ("pushToken", "token")

    def __init__(self, store: DocumentStore, settings: Settings):
        self.store = store
        self.settings = settings

    async def resolve(self, user_ids: Sequence[str]) -> List[str]:
        if not self.settings.push_tokens_collection_id:
            raise TokenSourceUnavailable("push token collection is not configured")
        documents = await self.store.query_in(
            self.settings.push_tokens_collection_id,
            "userId",
            user_ids,
            self.settings.token_query_limit,
        )
        return [token for token in (_first_token(doc, self.token_fields) for doc in documents) if token]


class UserFieldResolver:
    """Reads a token field stored directly on the user records."""

    name = "user_field"
    token_fields = ("pushToken", "expoPushToken")

    def __init__(self, store: DocumentStore, settings: Settings):
        self.store = store
        self.settings = settings

    async def resolve(self, user_ids: Sequence[str]) -> List[str]:
        documents = await self.store.get_documents(
            self.settings.users_collection_id,
            user_ids,
            self.settings.token_query_limit,
        )
        return [token for token in (_first_token(doc, self.token_fields) for doc in documents) if token]


class ChainedTokenResolver:
    """
    Tries token sources in order and returns the first non-empty result.

    A source is skipped when it is unavailable, fails, or finds nothing.
    Resolution never raises; exhausting every source yields no tokens.
    """

    name = "chain"

    def __init__(self, strategies: Sequence[TokenResolver]):
        self.strategies = list(strategies)

    async def resolve(self, user_ids: Sequence[str]) -> List[str]:
        if not user_ids:
            return []

        for strategy in self.strategies:
            try:
                tokens = await strategy.resolve(user_ids)
            except TokenSourceUnavailable as e:
                logger.info(f"Token source {strategy.name} unavailable: {str(e)}, trying next")
                continue
            except Exception as e:
                logger.error(f"Error fetching push tokens from {strategy.name}: {str(e)}")
                continue

            # Preserve order while dropping duplicate device registrations
            tokens = list(dict.fromkeys(tokens))
            logger.info(f"Found {len(tokens)} push tokens from {strategy.name}")
            if tokens:
                return tokens

        return []


RESOLVERS = {
    ManagedTargetResolver.name: ManagedTargetResolver,
    TokenCollectionResolver.name: TokenCollectionResolver,
    UserFieldResolver.name: UserFieldResolver,
}


def build_token_resolver(settings: Settings, store: DocumentStore) -> ChainedTokenResolver:
    strategies = []
    for source in settings.token_sources:
        resolver_cls = RESOLVERS.get(source)
        if resolver_cls is None:
            logger.warning(f"Unknown token source in configuration: {source}")
            continue
        strategies.append(resolver_cls(store, settings))
    return ChainedTokenResolver(strategies)
