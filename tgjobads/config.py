import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .models import Currency, VectorizationModelParams, currency_from_code

ENV_PREFIX = "TGJOBADS_"


def load_env() -> None:
    """Load .env from project root if present. Existing variables win."""
    env_path = Path.cwd() / ".env"
    if not env_path.exists():
        return
    load_dotenv(dotenv_path=env_path, override=False)


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(ENV_PREFIX + name, default)


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}")


def vectorization_params_from_env() -> VectorizationModelParams:
    """Build the active model params; a non-positive version falls back to 1."""
    version = _env_int("VECTOR_VERSION", 1)
    return VectorizationModelParams(
        version=version if version > 0 else 1,
        shingle_size=_env_int("SHINGLE_SIZE", 5),
        shingle_unit=_env("SHINGLE_UNIT", "char"),
        hash_function_count=_env_int("HASH_FUNCTION_COUNT", 100),
        min_hash_seed=_env_int("MINHASH_SEED", 1000),
        lsh_band_count=_env_int("LSH_BAND_COUNT", 20),
        vocabulary_size=_env_int("VOCABULARY_SIZE", 1_000_000),
    )


@dataclass(frozen=True)
class Settings:
    """
    Run configuration, passed explicitly to pipelines.

    Nothing inside the core algorithms reads the environment; only
    `Settings.from_env()` does.
    """

    db_path: Path = Path("data/ads.db")
    log_level: str = "INFO"
    workers: int = 4
    reporting_currency: Currency = Currency.USD
    tfidf_drift: float = 0.1
    classifier_version: int = 1
    llm_model: str = "gpt-4o-mini"
    llm_timeout: float = 30.0
    llm_max_attempts: int = 3
    llm_base_delay: float = 1.0
    llm_max_concurrency: int = 5
    rate_cache_path: Path = Path("data/rates.csv")
    rate_api_url: str = "https://www.cbr.ru/scripts/XML_dynamic.asp"
    rate_max_gap_days: int = 7
    vectorization: VectorizationModelParams = field(default_factory=VectorizationModelParams)

    @classmethod
    def from_env(cls) -> "Settings":
        load_env()
        currency_code = _env("REPORTING_CURRENCY", "USD")
        currency = currency_from_code(currency_code)
        if currency is None:
            raise ValueError(f"Unknown reporting currency: {currency_code}")

        return cls(
            db_path=Path(_env("DB_PATH", "data/ads.db")),
            log_level=_env("LOG_LEVEL", "INFO"),
            workers=_env_int("WORKERS", 4),
            reporting_currency=currency,
            tfidf_drift=_env_float("TFIDF_DRIFT", 0.1),
            classifier_version=_env_int("CLASSIFIER_VERSION", 1),
            llm_model=_env("LLM_MODEL", "gpt-4o-mini"),
            llm_timeout=_env_float("LLM_TIMEOUT", 30.0),
            llm_max_attempts=_env_int("LLM_MAX_ATTEMPTS", 3),
            llm_base_delay=_env_float("LLM_BASE_DELAY", 1.0),
            llm_max_concurrency=_env_int("LLM_MAX_CONCURRENCY", 5),
            rate_cache_path=Path(_env("RATE_CACHE_PATH", "data/rates.csv")),
            rate_api_url=_env("RATE_API_URL", "https://www.cbr.ru/scripts/XML_dynamic.asp"),
            rate_max_gap_days=_env_int("RATE_MAX_GAP_DAYS", 7),
            vectorization=vectorization_params_from_env(),
        )
