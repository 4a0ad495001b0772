from __future__ import annotations

import os
from dataclasses import dataclass, field

# Feature flags seeded from FEATURE_<NAME> env vars; value is the default when unset.
FEATURE_DEFAULTS: dict[str, bool] = {
    "ai_suggestions": False,
    "ai_weekly_reports": False,
    "ai_daily_okr_analysis": False,
    "ai_risk_detection": False,
    "invitation_reminders": True,
}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    secret_key: str = "change-me"
    database_url: str = "sqlite:///dev.db"
    jwt_secrets: list[str] = field(default_factory=list)  # first element signs dev tokens; all verify
    jwt_issuer: str | None = None
    jwt_audience: str | None = None
    jwt_leeway_seconds: int = 60
    cron_secret: str | None = None
    invitation_ttl_days: int = 7
    app_base_url: str = "http://localhost:3000"
    brevo_api_key: str | None = None
    email_sender_address: str = "no-reply@okr.local"
    email_sender_name: str = "OKR Platform"
    email_webhook_secret: str | None = None
    ai_api_key: str | None = None
    ai_base_url: str | None = None
    ai_model: str = "gpt-4o-mini"
    features: dict[str, bool] = field(default_factory=lambda: dict(FEATURE_DEFAULTS))

    @classmethod
    def from_env(cls) -> Config:
        jwt_multi = os.getenv("AUTH_JWT_SECRETS", "")
        # Comma-separated secrets allow rotation at the identity provider.
        jwt_list = [s for s in [j.strip() for j in jwt_multi.split(",")] if s]
        return cls(
            secret_key=os.getenv("SECRET_KEY", "change-me"),
            database_url=os.getenv("DATABASE_URL", "sqlite:///dev.db"),
            jwt_secrets=jwt_list,
            jwt_issuer=os.getenv("AUTH_ISSUER") or None,
            jwt_audience=os.getenv("AUTH_AUDIENCE") or None,
            jwt_leeway_seconds=int(os.getenv("AUTH_LEEWAY_SECONDS", "60")),
            cron_secret=os.getenv("CRON_SECRET") or None,
            invitation_ttl_days=int(os.getenv("INVITATION_TTL_DAYS", "7")),
            app_base_url=os.getenv("APP_BASE_URL", "http://localhost:3000").rstrip("/"),
            brevo_api_key=os.getenv("BREVO_API_KEY") or None,
            email_sender_address=os.getenv("EMAIL_SENDER_ADDRESS", "no-reply@okr.local"),
            email_sender_name=os.getenv("EMAIL_SENDER_NAME", "OKR Platform"),
            email_webhook_secret=os.getenv("EMAIL_WEBHOOK_SECRET") or None,
            ai_api_key=os.getenv("AI_API_KEY") or os.getenv("OPENAI_API_KEY") or None,
            ai_base_url=os.getenv("AI_BASE_URL") or None,
            ai_model=os.getenv("AI_MODEL", "gpt-4o-mini"),
            features={
                name: _env_bool(f"FEATURE_{name.upper()}", default)
                for name, default in FEATURE_DEFAULTS.items()
            },
        )

    def override(self, d: dict):
        for k, v in d.items():
            if not hasattr(self, k):
                continue
            if k == "features" and isinstance(v, dict):
                merged = dict(self.features)
                merged.update({str(name): bool(on) for name, on in v.items()})
                setattr(self, k, merged)
            else:
                setattr(self, k, v)

    def to_flask_dict(self):
        return {
            "SECRET_KEY": self.secret_key,
            "SQLALCHEMY_DATABASE_URI": self.database_url,
            "JWT_SECRETS": self.jwt_secrets,
            "JWT_ISSUER": self.jwt_issuer,
            "JWT_AUDIENCE": self.jwt_audience,
            "JWT_LEEWAY_SECONDS": self.jwt_leeway_seconds,
            "CRON_SECRET": self.cron_secret,
            "INVITATION_TTL_DAYS": self.invitation_ttl_days,
            "APP_BASE_URL": self.app_base_url,
            "BREVO_API_KEY": self.brevo_api_key,
            "EMAIL_SENDER_ADDRESS": self.email_sender_address,
            "EMAIL_SENDER_NAME": self.email_sender_name,
            "EMAIL_WEBHOOK_SECRET": self.email_webhook_secret,
            "AI_API_KEY": self.ai_api_key,
            "AI_BASE_URL": self.ai_base_url,
            "AI_MODEL": self.ai_model,
            # API only; no cookie sessions are issued
            "SESSION_COOKIE_HTTPONLY": True,
            "SESSION_COOKIE_SAMESITE": "Lax",
        }
