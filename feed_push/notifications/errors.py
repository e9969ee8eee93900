"""Failures raised while handling a notification request.

Each error carries the status code it maps to at the handler boundary.
"""


class NotificationError(Exception):
    """Base class for all failures that map to an error response."""

    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ConfigurationError(NotificationError):
    """Required credentials or settings are missing."""


class BadRequestError(NotificationError):
    """The request body could not be parsed."""

    status_code = 400


class MissingFieldsError(BadRequestError):
    """A direct call is missing required fields."""


class UnhandledEventError(BadRequestError):
    """A well-formed webhook event that is not a post or comment create."""


class DocumentNotFoundError(NotificationError):
    """A referenced record does not exist in the document store."""

    def __init__(self, collection: str, document_id: str):
        super().__init__(f"Document {document_id} not found in collection {collection}")
        self.collection = collection
        self.document_id = document_id


class DeliveryError(NotificationError):
    """The push provider rejected or failed the delivery call."""


class ProviderNotConfiguredError(DeliveryError):
    """The push provider has no credentials for the target app."""


class TokenSourceUnavailable(Exception):
    """A token source is absent or unconfigured; the next source should be tried."""
