"""Environment-driven configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .constants import CREDENTIALS_PATH, MIRROR_DB_PATH
from .errors import ConfigurationError

_TRUE_VALUES = ("1", "true", "yes", "on")


def _env_flag(env: dict, name: str) -> bool:
    return env.get(name, "").strip().lower() in _TRUE_VALUES


@dataclass
class AppConfig:
    client_id: str | None = None
    client_secret: str | None = None
    credentials_path: Path = CREDENTIALS_PATH
    mirror_db: Path | None = None
    json_logs: bool = False
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, env: dict | None = None) -> AppConfig:
        env = dict(os.environ if env is None else env)

        mirror_db = None
        if env.get("MAIL_LEDGER_MIRROR_DB"):
            mirror_db = Path(env["MAIL_LEDGER_MIRROR_DB"]).expanduser()
        elif _env_flag(env, "MAIL_LEDGER_MIRROR_ENABLED"):
            mirror_db = MIRROR_DB_PATH

        credentials = env.get("MAIL_LEDGER_CREDENTIALS")
        return cls(
            client_id=env.get("MAIL_LEDGER_GOOGLE_CLIENT_ID") or None,
            client_secret=env.get("MAIL_LEDGER_GOOGLE_CLIENT_SECRET") or None,
            credentials_path=Path(credentials).expanduser() if credentials else CREDENTIALS_PATH,
            mirror_db=mirror_db,
            json_logs=_env_flag(env, "MAIL_LEDGER_JSON_LOGS"),
            log_level=(env.get("MAIL_LEDGER_LOG_LEVEL") or "WARNING").upper(),
        )

    @property
    def uses_client_file(self) -> bool:
        return not self.client_id

    def missing(self) -> list[str]:
        """Names of required settings that are not configured."""
        if self.client_id:
            return [] if self.client_secret else ["MAIL_LEDGER_GOOGLE_CLIENT_SECRET"]
        if self.credentials_path.exists():
            return []
        return [f"MAIL_LEDGER_GOOGLE_CLIENT_ID (or an OAuth client file at {self.credentials_path})"]

    def require_valid(self) -> None:
        missing = self.missing()
        if missing:
            raise ConfigurationError(
                "Missing configuration: " + ", ".join(missing) + ".\n"
                "Create an OAuth client (Desktop app) in the Google Cloud Console and either "
                "export its id/secret or save the downloaded JSON as:\n"
                f"  {self.credentials_path}"
            )
