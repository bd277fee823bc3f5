"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

from date_nights.domain.couples import BootstrapMode, MembershipStrategy

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_anon_key: str
    site_url: str = "http://localhost:3000"
    photos_bucket: str = "photos"
    session_poll_attempts: int = 10
    session_poll_delay_seconds: float = 0.15
    session_settle_delay_seconds: float = 0.15
    join_timeout_seconds: float = 8.0
    signed_url_ttl_seconds: int = 3600
    membership_strategy: MembershipStrategy = MembershipStrategy.CHECK_THEN_INSERT
    bootstrap_mode: BootstrapMode = BootstrapMode.RPC
    visitor_cookie_name: str = "dn_visitor"
    max_visitor_contexts: int = 1000
    visitor_idle_ttl_seconds: float = 1800.0
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )
