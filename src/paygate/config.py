"""
Configuration for the paygate service.

Settings come from the environment (a local .env file is loaded first when
present). Required values are checked once at startup so a misconfigured
deployment fails before it accepts traffic.
"""

import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Tuple

from dotenv import find_dotenv, load_dotenv

REQUIRED_PROCESSOR_VARS = (
    "MONNIFY_BASE_URL",
    "MONNIFY_API_KEY",
    "MONNIFY_SECRET_KEY",
    "MONNIFY_CONTRACT_CODE",
    "JWT_SECRET",
)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_TOKEN_TTL_SECONDS = 300
DEFAULT_CURRENCY = "NGN"
DEFAULT_PREFERRED_BANKS = "035"
DEFAULT_REFERENCE_PREFIX = "PGT"


class ConfigError(RuntimeError):
    """Raised when required configuration is missing or malformed."""

    def __init__(self, missing: List[str], message: Optional[str] = None):
        self.missing = missing
        super().__init__(message or "Missing required configuration: " + ", ".join(missing))


@dataclass(frozen=True)
class Settings:
    base_url: str
    api_key: str
    secret_key: str
    contract_code: str
    jwt_secret: str
    database_url: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    token_ttl: int = DEFAULT_TOKEN_TTL_SECONDS
    currency: str = DEFAULT_CURRENCY
    preferred_banks: Tuple[str, ...] = field(default=(DEFAULT_PREFERRED_BANKS,))
    reference_prefix: str = DEFAULT_REFERENCE_PREFIX


def _number(env: Mapping[str, str], name: str, default, cast):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigError([name], f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigError([name], f"{name} must be positive, got {raw!r}")
    return value


def load_settings(env: Optional[Mapping[str, str]] = None, require_database: bool = True) -> Settings:
    """
    Build Settings from `env` (defaults to os.environ after loading .env).

    Raises ConfigError naming every missing required variable.
    """
    if env is None:
        load_dotenv(find_dotenv(usecwd=True), override=False)
        env = os.environ

    required = list(REQUIRED_PROCESSOR_VARS)
    if require_database:
        required.append("DATABASE_URL")
    missing = [name for name in required if not (env.get(name) or "").strip()]
    if missing:
        raise ConfigError(missing)

    banks_raw = env.get("PROCESSOR_PREFERRED_BANKS") or DEFAULT_PREFERRED_BANKS
    preferred_banks = tuple(b.strip() for b in banks_raw.split(",") if b.strip())

    return Settings(
        base_url=env["MONNIFY_BASE_URL"].strip().rstrip("/"),
        api_key=env["MONNIFY_API_KEY"].strip(),
        secret_key=env["MONNIFY_SECRET_KEY"].strip(),
        contract_code=env["MONNIFY_CONTRACT_CODE"].strip(),
        jwt_secret=env["JWT_SECRET"],
        database_url=(env.get("DATABASE_URL") or "").strip() or None,
        timeout=_number(env, "PROCESSOR_TIMEOUT", DEFAULT_TIMEOUT_SECONDS, float),
        token_ttl=_number(env, "PROCESSOR_TOKEN_TTL", DEFAULT_TOKEN_TTL_SECONDS, int),
        currency=(env.get("PROCESSOR_CURRENCY") or DEFAULT_CURRENCY).strip().upper(),
        preferred_banks=preferred_banks or (DEFAULT_PREFERRED_BANKS,),
        reference_prefix=(env.get("TRANSFER_REFERENCE_PREFIX") or DEFAULT_REFERENCE_PREFIX).strip(),
    )
