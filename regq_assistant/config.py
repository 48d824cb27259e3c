from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


# Load environment variables from a local .env if present (harmless in containers)
load_dotenv()


_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    azure_openai_endpoint: Optional[str] = None
    azure_openai_api_key: Optional[str] = None
    azure_openai_chat_deployment_name: Optional[str] = None
    azure_openai_api_version: Optional[str] = None
    chat_store_path: str = "./data/chat_history.json"
    max_history_turns: int = 5
    # Regulatory document fetching
    fetch_documents: bool = True
    document_max_chars: int = 20000
    http_timeout_seconds: float = 20.0
    log_level: str = "INFO"
    # Auth0 auth
    auth_disabled: bool = False
    auth0_domain: str | None = None
    auth0_audience: str | None = None  # API Identifier configured in Auth0
    auth0_issuer: str | None = None    # Optional override; defaults to https://<domain>/

    def require_model_settings(self) -> None:
        """Raise when the Azure OpenAI connection is not fully configured."""
        missing = [
            name
            for name, value in {
                "AZURE_OPENAI_ENDPOINT": self.azure_openai_endpoint,
                "AZURE_OPENAI_API_KEY": self.azure_openai_api_key,
                "AZURE_OPENAI_CHAT_DEPLOYMENT_NAME": self.azure_openai_chat_deployment_name,
            }.items()
            if not value
        ]
        if missing:
            raise RuntimeError(
                "Missing required environment variables: " + ", ".join(missing)
            )

    def require_auth_settings(self) -> None:
        if self.auth_disabled:
            return
        auth_missing = [
            name
            for name, value in {
                "AUTH0_DOMAIN": self.auth0_domain,
                "AUTH0_AUDIENCE": self.auth0_audience,
            }.items()
            if not value
        ]
        if auth_missing:
            raise RuntimeError(
                "Missing required environment variables for Auth0 auth: "
                + ", ".join(auth_missing)
            )


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_VALUES


def get_settings() -> Settings:
    endpoint = os.getenv("AZURE_OPENAI_ENDPOINT") or os.getenv("AZURE_OPEN_AI__ENDPOINT")
    api_key = os.getenv("AZURE_OPENAI_API_KEY") or os.getenv("AZURE_OPEN_AI__API_KEY")
    deployment = os.getenv("AZURE_OPENAI_CHAT_DEPLOYMENT_NAME") or os.getenv(
        "AZURE_OPEN_AI__CHAT_COMPLETION_DEPLOYMENT_NAME"
    )

    auth0_domain = os.getenv("AUTH0_DOMAIN")
    auth0_issuer = os.getenv("AUTH0_ISSUER")
    if not auth0_issuer and auth0_domain:
        # Note: auth0 issuer ends with a trailing slash
        auth0_issuer = f"https://{auth0_domain}/"

    return Settings(
        azure_openai_endpoint=endpoint,
        azure_openai_api_key=api_key,
        azure_openai_chat_deployment_name=deployment,
        azure_openai_api_version=os.getenv("AZURE_OPENAI_API_VERSION"),
        chat_store_path=os.getenv("CHAT_STORE_PATH", "./data/chat_history.json"),
        max_history_turns=_int_env("MAX_HISTORY_TURNS", 5),
        fetch_documents=_bool_env("FETCH_DOCUMENTS", True),
        document_max_chars=_int_env("DOCUMENT_MAX_CHARS", 20000),
        http_timeout_seconds=_float_env("HTTP_TIMEOUT_SECONDS", 20.0),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        auth_disabled=_bool_env("AUTH_DISABLED", False),
        auth0_domain=auth0_domain,
        auth0_audience=os.getenv("AUTH0_AUDIENCE"),
        auth0_issuer=auth0_issuer,
    )
