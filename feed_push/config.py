from functools import lru_cache
from typing import List, Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration settings for the feed push functions"""

    # Application settings
    service_name: str = "feed-push-functions"
    log_level: str = "INFO"
    environment: str = "dev"

    # Firebase settings (both required at invocation time)
    firebase_project_id: Optional[str] = None
    firebase_secret: Optional[str] = None

    # Collection identifiers
    posts_collection_id: str = "posts"
    comments_collection_id: str = "comments"
    users_collection_id: str = "users"
    push_tokens_collection_id: str = "push_tokens"  # empty disables the collection
    push_targets_collection_id: str = "targets"  # per-user sub-collection

    # Token resolution, tried in order
    token_sources: List[str] = ["managed_targets", "token_collection", "user_field"]
    token_query_limit: int = 100

    # Push delivery settings
    push_provider: Literal["expo", "fcm"] = "expo"
    expo_push_url: str = "https://exp.host/--/api/v2/push/send"
    expo_access_token: Optional[str] = None
    push_timeout_seconds: float = 10.0

    # Notification text settings
    post_preview_length: int = 60
    comment_preview_length: int = 40
    navigation_screen: str = "post-details"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    def missing_credentials(self) -> List[str]:
        """Return the environment names of required credentials that are unset."""
        missing = []
        if not self.firebase_project_id:
            missing.append("FIREBASE_PROJECT_ID")
        if not self.firebase_secret:
            missing.append("FIREBASE_SECRET")
        return missing


@lru_cache
def get_settings() -> Settings:
    return Settings()
