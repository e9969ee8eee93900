from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class NotificationType(str, Enum):
    NEW_POST = "new_post"
    NEW_COMMENT = "new_comment"


class EventKind(str, Enum):
    NEW_POST = "new_post"
    NEW_COMMENT = "new_comment"
    DIRECT = "direct"


class StoredDocument(BaseModel):
    """Base for records read from the document store"""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(default="", alias="$id")


class PostDocument(StoredDocument):
    authorId: str
    authorName: Optional[str] = None
    title: Optional[str] = None
    content: Optional[str] = None
    image: Optional[str] = None


class CommentDocument(StoredDocument):
    userId: str
    postId: str
    authorName: Optional[str] = None
    content: Optional[str] = None


class UserDocument(StoredDocument):
    name: Optional[str] = None
    image: Optional[str] = None
    pushToken: Optional[str] = None
    expoPushToken: Optional[str] = None


class PushTarget(BaseModel):
    """A per-device registration in the managed target registry"""
    model_config = ConfigDict(extra="allow")

    userId: Optional[str] = None
    providerType: str = "push"
    identifier: Optional[str] = None


class DirectNotification(BaseModel):
    """Direct-call payload; every field is required"""
    userIds: List[str] = Field(min_length=1)
    title: str = Field(min_length=1)
    body: str = Field(min_length=1)
    postId: str = Field(min_length=1)
    type: NotificationType


class NotificationIntent(BaseModel):
    """What to send and to whom, before token resolution"""
    userIds: List[str]
    title: str
    body: str
    postId: str
    type: NotificationType
    authorName: Optional[str] = None
    authorImage: Optional[str] = None
    postImage: Optional[str] = None
    postTitle: Optional[str] = None
    commentPreview: Optional[str] = None

    def enrichment(self) -> Dict[str, str]:
        """Optional enrichment fields that are set."""
        fields = self.model_dump(
            include={"authorName", "authorImage", "postImage", "postTitle", "commentPreview"},
            exclude_none=True,
        )
        return {key: value for key, value in fields.items() if value != ""}


class ClassifiedRequest(BaseModel):
    kind: EventKind
    document: Dict[str, Any] = {}
    direct: Optional[DirectNotification] = None


class DispatchResult(BaseModel):
    sent_to: int
    message_id: Optional[str] = None


class FunctionResponse(BaseModel):
    status_code: int = 200
    body: Dict[str, Any]

    @classmethod
    def success(cls, **fields) -> "FunctionResponse":
        return cls(status_code=200, body={"ok": True, **fields})

    @classmethod
    def failure(cls, error: str, status_code: int = 500) -> "FunctionResponse":
        return cls(status_code=status_code, body={"ok": False, "error": error})
