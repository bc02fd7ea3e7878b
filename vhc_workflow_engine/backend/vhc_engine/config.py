# backend/vhc_engine/config.py
from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ---- App ----
    app_env: str = "local"  # local|dev|prod
    database_url: str = "sqlite:///./vhc_engine.db"
    engine_version: str = "2026-10-01.v1"

    # ---- CORS (used by main.py) ----
    cors_allow_origins: list[str] | str = ["*"]

    # ---- Pricing ----
    vat_rate: float = 0.20

    # ---- Intake ----
    # Organizations may override this with organizations.checkin_enabled
    checkin_enabled_default: bool = False

    # ---- Customer portal ----
    portal_token_ttl_hours: int = 72

    # ---- Auth (supplied by the surrounding platform) ----
    auth_mode: str = "dev"  # dev only; real principals come from the gateway
    dev_auto_provision: bool = True
    dev_header_org_slug: str = "X-Org-Slug"
    dev_header_user_email: str = "X-User-Email"

    def model_post_init(self, __context) -> None:
        if not (0.0 <= float(self.vat_rate) < 1.0):
            raise ValueError(f"vat_rate must be within [0, 1), got {self.vat_rate}")

        env = (self.app_env or "local").strip().lower()
        is_prod = env in ("prod", "production")

        if is_prod:
            if (self.auth_mode or "").strip().lower() == "dev":
                raise ValueError("SECURITY: auth_mode=dev is not allowed in prod")

            origins = self.cors_allow_origins
            if origins == "*" or origins == ["*"] or (isinstance(origins, str) and "*" in origins):
                raise ValueError("SECURITY: cors_allow_origins wildcard is not allowed in prod")


settings = Settings()
