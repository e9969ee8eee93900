import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

import firebase_admin
import httpx
from firebase_admin import messaging
from firebase_admin.exceptions import FirebaseError

from .errors import DeliveryError, ProviderNotConfiguredError
from .schemas import DispatchResult, NotificationIntent
from ..config import Settings

logger = logging.getLogger(__name__)

PROVIDER_NOT_CONFIGURED_MESSAGE = (
    "Push provider is not configured: upload the FCM/APNs credentials for this app "
    "to the push service before sending notifications"
)

# Expo ticket error codes that mean the project has no push credentials
_EXPO_CREDENTIAL_ERRORS = {"InvalidCredentials"}
_EXPO_CREDENTIAL_HINTS = ("fcm server key", "push credentials", "apns credentials")


class PushDispatcher(Protocol):
    """Issues the single outbound push call for an invocation."""

    async def send(self, tokens: Sequence[str], intent: NotificationIntent) -> DispatchResult:
        ...


def build_push_data(intent: NotificationIntent, settings: Settings) -> Dict[str, str]:
    """Metadata attached to every notification for in-app navigation."""
    data = {
        "type": intent.type.value,
        "postId": intent.postId,
        "screen": settings.navigation_screen,
    }
    data.update(intent.enrichment())
    return data


def _is_credentials_error(code: Optional[str], message: Optional[str]) -> bool:
    if code in _EXPO_CREDENTIAL_ERRORS:
        return True
    lowered = (message or "").lower()
    return any(hint in lowered for hint in _EXPO_CREDENTIAL_HINTS)


class ExpoPushDispatcher:
    """Sends notifications through the Expo push HTTP API."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if self.settings.expo_access_token:
            headers["Authorization"] = f"Bearer {self.settings.expo_access_token}"
        return headers

    def build_payload(self, tokens: Sequence[str], intent: NotificationIntent) -> Dict[str, Any]:
        payload = {
            "to": list(tokens),
            "title": intent.title,
            "body": intent.body,
            "data": build_push_data(intent, self.settings),
            "badge": 1,
            "sound": "default",
            "priority": "high",
        }
        if intent.postImage:
            payload["richContent"] = {"image": intent.postImage}
            payload["mutableContent"] = True
        return payload

    async def send(self, tokens: Sequence[str], intent: NotificationIntent) -> DispatchResult:
        """
        Post one push request for all tokens.

        Args:
            tokens: Expo push tokens of the recipients
            intent: Notification content and metadata

        Returns:
            DispatchResult with the recipient count and the first ticket id

        Raises:
            ProviderNotConfiguredError: If Expo has no push credentials for the app
            DeliveryError: On a non-success response, timeout or transport failure
        """
        payload = self.build_payload(tokens, intent)
        logger.debug(f"Expo payload: {json.dumps(payload)}")

        try:
            async with httpx.AsyncClient(timeout=self.settings.push_timeout_seconds,
                                         transport=self.transport) as client:
                response = await client.post(self.settings.expo_push_url, json=payload, headers=self._headers())
        except httpx.TimeoutException:
            logger.error(f"Expo API timed out after {self.settings.push_timeout_seconds}s")
            raise DeliveryError(f"Push delivery timed out after {self.settings.push_timeout_seconds}s")
        except httpx.HTTPError as e:
            logger.error(f"Expo API request failed: {str(e)}")
            raise DeliveryError(f"Push delivery failed: {str(e)}")

        if not response.is_success:
            error_text = response.text
            logger.error(f"Expo API error: {error_text}")
            if any(code in error_text for code in _EXPO_CREDENTIAL_ERRORS):
                raise ProviderNotConfiguredError(PROVIDER_NOT_CONFIGURED_MESSAGE)
            raise DeliveryError(error_text)

        try:
            result = response.json()
        except ValueError:
            raise DeliveryError(f"Push delivery returned a non-JSON response: {response.text}")
        logger.info(f"Expo API response: {json.dumps(result)}")

        tickets = result.get("data") if isinstance(result, dict) else None
        if isinstance(tickets, dict):
            tickets = [tickets]
        if not isinstance(result, dict) or result.get("errors") or not tickets:
            error_text = response.text
            logger.error(f"Expo API returned no push tickets: {error_text}")
            if any(code in error_text for code in _EXPO_CREDENTIAL_ERRORS):
                raise ProviderNotConfiguredError(PROVIDER_NOT_CONFIGURED_MESSAGE)
            raise DeliveryError(error_text)
        return self._check_tickets(tickets, len(tokens))

    def _check_tickets(self, tickets: List[Dict[str, Any]], token_count: int) -> DispatchResult:
        errors = [ticket for ticket in tickets if ticket.get("status") == "error"]
        for ticket in errors:
            details = ticket.get("details") or {}
            if _is_credentials_error(details.get("error"), ticket.get("message")):
                logger.error(f"Expo push credentials missing: {ticket.get('message')}")
                raise ProviderNotConfiguredError(PROVIDER_NOT_CONFIGURED_MESSAGE)

        if tickets and len(errors) == len(tickets):
            raise DeliveryError(errors[0].get("message") or "Push delivery failed for every recipient")
        if errors:
            logger.warning(f"{len(errors)} of {len(tickets)} push tickets reported errors")

        message_id = tickets[0].get("id") if tickets else None
        return DispatchResult(sent_to=token_count, message_id=message_id)


class FcmPushDispatcher:
    """Sends notifications through Firebase Cloud Messaging."""

    def __init__(self, settings: Settings, app: Optional[firebase_admin.App] = None):
        self.settings = settings
        self.app = app

    def build_message(self, tokens: Sequence[str], intent: NotificationIntent) -> messaging.MulticastMessage:
        return messaging.MulticastMessage(
            tokens=list(tokens),
            notification=messaging.Notification(
                title=intent.title,
                body=intent.body,
                image=intent.postImage,
            ),
            data=build_push_data(intent, self.settings),
            android=messaging.AndroidConfig(
                priority="high",
                notification=messaging.AndroidNotification(sound="default"),
            ),
            apns=messaging.APNSConfig(
                payload=messaging.APNSPayload(aps=messaging.Aps(badge=1, sound="default")),
            ),
        )

    async def send(self, tokens: Sequence[str], intent: NotificationIntent) -> DispatchResult:
        """
        Send one multicast message for all tokens.

        The SDK call is blocking, so it runs in a worker thread bounded by
        push_timeout_seconds. A thread cannot be cancelled: after a timeout is
        reported the SDK call keeps running and may still deliver the message.

        Raises:
            ProviderNotConfiguredError: If FCM has no APNs credentials or no app is initialized
            DeliveryError: On timeout, a Firebase error, or when every recipient failed
        """
        message = self.build_message(tokens, intent)
        try:
            batch_response = await asyncio.wait_for(
                asyncio.to_thread(messaging.send_each_for_multicast, message, app=self.app),
                timeout=self.settings.push_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.error(f"FCM timed out after {self.settings.push_timeout_seconds}s")
            raise DeliveryError(f"Push delivery timed out after {self.settings.push_timeout_seconds}s")
        except messaging.ThirdPartyAuthError as e:
            logger.error(f"FCM third-party credentials missing: {str(e)}")
            raise ProviderNotConfiguredError(PROVIDER_NOT_CONFIGURED_MESSAGE)
        except ValueError as e:
            # Raised when no Firebase app has been initialized
            logger.error(f"FCM is not initialized: {str(e)}")
            raise ProviderNotConfiguredError(PROVIDER_NOT_CONFIGURED_MESSAGE)
        except FirebaseError as e:
            logger.error(f"Firebase error sending push: {str(e)}")
            raise DeliveryError(str(e))

        logger.info(f"FCM sent {batch_response.success_count} of {len(tokens)} notifications")

        if batch_response.success_count == 0:
            first_error = next((resp.exception for resp in batch_response.responses if resp.exception), None)
            if isinstance(first_error, messaging.ThirdPartyAuthError):
                raise ProviderNotConfiguredError(PROVIDER_NOT_CONFIGURED_MESSAGE)
            raise DeliveryError(str(first_error) if first_error else "Push delivery failed for every recipient")

        message_id = next((resp.message_id for resp in batch_response.responses if resp.success), None)
        return DispatchResult(sent_to=len(tokens), message_id=message_id)


def build_dispatcher(settings: Settings, app: Optional[firebase_admin.App] = None) -> PushDispatcher:
    if settings.push_provider == "fcm":
        return FcmPushDispatcher(settings, app=app)
    return ExpoPushDispatcher(settings)
