"""Environment-driven settings for the Pizzaz MCP server."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from dotenv import load_dotenv
from mcp.server.transport_security import TransportSecuritySettings

ROOT_DIR = Path(__file__).resolve().parent.parent

LOG_FORMATS = ("console", "json")


def _split_env_list(value: str | None) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _env_flag(value: str | None, default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Process configuration for the HTTP front door and the widget catalog."""

    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"
    log_format: str = "console"
    assets_dir: Path = ROOT_DIR / "assets"
    assets_base_url: str = "http://localhost:4444"
    json_response: bool = True
    allowed_hosts: List[str] = field(default_factory=list)
    allowed_origins: List[str] = field(default_factory=list)

    @classmethod
    def from_env(cls, env_file: Path | None = ROOT_DIR / ".env") -> "Settings":
        """Load settings from the environment, after reading ``.env`` if present.

        Variables already set in the process environment win over the file.
        """
        if env_file is not None:
            load_dotenv(env_file)

        raw_port = os.getenv("PORT", "3000")
        try:
            port = int(raw_port)
        except ValueError:
            raise ValueError(f"PORT must be an integer, got {raw_port!r}") from None

        log_format = os.getenv("LOG_FORMAT", "console").strip().lower()
        if log_format not in LOG_FORMATS:
            raise ValueError(
                f"LOG_FORMAT must be one of {', '.join(LOG_FORMATS)}, got {log_format!r}"
            )

        assets_dir = os.getenv("PIZZAZ_ASSETS_DIR")

        return cls(
            host=os.getenv("HOST", "0.0.0.0"),
            port=port,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_format=log_format,
            assets_dir=Path(assets_dir) if assets_dir else ROOT_DIR / "assets",
            assets_base_url=os.getenv(
                "PIZZAZ_ASSETS_BASE_URL", "http://localhost:4444"
            ).rstrip("/"),
            json_response=_env_flag(os.getenv("MCP_JSON_RESPONSE"), True),
            allowed_hosts=_split_env_list(os.getenv("MCP_ALLOWED_HOSTS")),
            allowed_origins=_split_env_list(os.getenv("MCP_ALLOWED_ORIGINS")),
        )


def transport_security_settings(settings: Settings) -> TransportSecuritySettings:
    if not settings.allowed_hosts and not settings.allowed_origins:
        return TransportSecuritySettings(enable_dns_rebinding_protection=False)
    return TransportSecuritySettings(
        enable_dns_rebinding_protection=True,
        allowed_hosts=list(settings.allowed_hosts),
        allowed_origins=list(settings.allowed_origins),
    )
