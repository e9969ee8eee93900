from typing import Optional, Tuple

ELLIPSIS = "..."
DEFAULT_NAME = "Someone"


def truncate(text: Optional[str], max_len: int, ellipsis: str = ELLIPSIS) -> str:
    """Cut text to max_len characters, marking the cut with an ellipsis."""
    if not text or not text.strip():
        return ""
    if len(text) <= max_len:
        return text
    return text[:max_len] + ellipsis


def preview(title: Optional[str], content: Optional[str], max_len: int) -> str:
    """Prefer the title; otherwise fall back to a truncated content preview."""
    if title and title.strip():
        return title.strip()
    return truncate(content, max_len)


def display_name(name: Optional[str]) -> str:
    if name and name.strip():
        return name.strip()
    return DEFAULT_NAME


def format_new_post(author_name: Optional[str], title: Optional[str], content: Optional[str],
                    max_len: int) -> Tuple[str, str]:
    """
    Build the title and body of a new post notification.

    Args:
        author_name: Name of the post's author
        title: Post title, if any
        content: Post content, used when there is no title
        max_len: Maximum characters of content shown

    Returns:
        (title, body) tuple
    """
    name = display_name(author_name)
    body = preview(title, content, max_len) or f"{name} shared a new post"
    return f"New post from {name}", body


def format_new_comment(commenter_name: Optional[str], comment_content: Optional[str],
                       max_len: int) -> Tuple[str, str]:
    """
    Build the title and body of a new comment notification.

    Args:
        commenter_name: Name of the user who commented
        comment_content: Comment text
        max_len: Maximum characters of the comment shown

    Returns:
        (title, body) tuple
    """
    name = display_name(commenter_name)
    comment_preview = truncate(comment_content, max_len)
    if comment_preview:
        return "New comment", f'{name} commented on your post: "{comment_preview}"'
    return "New comment", f"{name} commented on your post"
