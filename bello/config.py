from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

STORE_SCOPES = ("process", "request")


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./bello.db"
    store_scope: str = "process"  # process|request
    log_level: str = "INFO"
    r2_account_id: Optional[str] = None
    r2_access_key_id: Optional[str] = None
    r2_secret_access_key: Optional[str] = None
    r2_bucket_name: Optional[str] = None
    r2_endpoint_url: Optional[str] = None
    upload_expires: int = 600

    @property
    def storage_configured(self) -> bool:
        return all(
            (self.r2_account_id, self.r2_access_key_id, self.r2_secret_access_key, self.r2_bucket_name)
        )

    @property
    def storage_endpoint(self) -> str:
        if self.r2_endpoint_url:
            return self.r2_endpoint_url
        return f"https://{self.r2_account_id}.r2.cloudflarestorage.com"


def load_settings() -> Settings:
    scope = os.getenv("BELLO_STORE_SCOPE", "process").lower()
    if scope not in STORE_SCOPES:
        raise ValueError(f"BELLO_STORE_SCOPE must be one of {STORE_SCOPES}, got {scope!r}")
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./bello.db"),
        store_scope=scope,
        log_level=os.getenv("BELLO_LOG_LEVEL", "INFO").upper(),
        r2_account_id=os.getenv("R2_ACCOUNT_ID"),
        r2_access_key_id=os.getenv("R2_ACCESS_KEY_ID"),
        r2_secret_access_key=os.getenv("R2_SECRET_ACCESS_KEY"),
        r2_bucket_name=os.getenv("R2_BUCKET_NAME"),
        r2_endpoint_url=os.getenv("R2_ENDPOINT_URL"),
        upload_expires=int(os.getenv("BELLO_UPLOAD_EXPIRES", "600")),
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()
