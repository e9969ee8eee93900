import asyncio
import logging
from typing import Union

from .formatting import display_name, format_new_comment, format_new_post, truncate
from .schemas import (CommentDocument, NotificationIntent, NotificationType, PostDocument,
                      UserDocument)
from ..config import Settings
from ..store import DocumentStore

logger = logging.getLogger(__name__)


class NoRecipients:
    """Outcome when a new post has nobody else to notify."""
    message = "No users to notify"


class SameActor:
    """Outcome when a comment's author also wrote the post."""
    message = "No notification needed - same user"


EnrichmentOutcome = Union[NotificationIntent, NoRecipients, SameActor]


async def build_new_post_intent(post: PostDocument, store: DocumentStore, settings: Settings) -> EnrichmentOutcome:
    """
    Build the broadcast for a new post: every user except the author.

    Args:
        post: The created post
        store: Document store for the author profile and the user list
        settings: Collection ids and text budgets

    Returns:
        NotificationIntent, or NoRecipients when nobody else is registered
    """
    author_data, users = await asyncio.gather(
        store.get_document(settings.users_collection_id, post.authorId),
        store.list_documents(settings.users_collection_id, settings.token_query_limit),
    )
    author = UserDocument.model_validate(author_data)

    user_ids = [user["$id"] for user in users if user.get("$id") and user["$id"] != post.authorId]
    if not user_ids:
        logger.info(f"No users to notify for new post {post.id}")
        return NoRecipients()

    author_name = author.name or post.authorName
    title, body = format_new_post(author_name, post.title, post.content, settings.post_preview_length)
    logger.info(f"Built new_post notification for post {post.id} to {len(user_ids)} users")

    return NotificationIntent(
        userIds=user_ids,
        title=title,
        body=body,
        postId=post.id,
        type=NotificationType.NEW_POST,
        authorName=display_name(author_name),
        authorImage=author.image,
        postImage=post.image,
        postTitle=post.title,
    )


async def build_new_comment_intent(comment: CommentDocument, store: DocumentStore,
                                   settings: Settings) -> EnrichmentOutcome:
    """
    Build the notification for a new comment, addressed to the post's author.

    Args:
        comment: The created comment
        store: Document store for the post and the commenter profile
        settings: Collection ids and text budgets

    Returns:
        NotificationIntent, or SameActor when the commenter wrote the post
    """
    post_data, commenter_data = await asyncio.gather(
        store.get_document(settings.posts_collection_id, comment.postId),
        store.get_document(settings.users_collection_id, comment.userId),
    )
    post = PostDocument.model_validate(post_data)
    commenter = UserDocument.model_validate(commenter_data)

    if post.authorId == comment.userId:
        logger.info("Comment author is the same as post author, no notification needed")
        return SameActor()

    commenter_name = commenter.name or comment.authorName
    title, body = format_new_comment(commenter_name, comment.content, settings.comment_preview_length)
    logger.info(f"Built new_comment notification for post {comment.postId} to author {post.authorId}")

    return NotificationIntent(
        userIds=[post.authorId],
        title=title,
        body=body,
        postId=comment.postId,
        type=NotificationType.NEW_COMMENT,
        authorName=display_name(commenter_name),
        authorImage=commenter.image,
        postImage=post.image,
        postTitle=post.title,
        commentPreview=truncate(comment.content, settings.comment_preview_length) or None,
    )
