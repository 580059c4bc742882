import os
from dataclasses import dataclass, replace
from typing import Optional

from dotenv import load_dotenv


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122 Safari/537.36"
)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw.strip())


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Config:
    """Runtime knobs for one batch run.

    Built once (usually via `from_env`) and passed to every component at
    construction; nothing reads the environment after that.
    """
    site: str = "mk_us"
    locale: str = "en_US"
    api_base: str = "https://www.michaelkors.com/on/demandware.store/Sites-{site}-Site/{locale}"
    default_brand: str = "Michael Kors"
    quantity: int = 1
    concurrency: int = 6
    product_concurrency: int = 2
    timeout_ms: int = 25000
    retries: int = 2
    retry_delay_ms: int = 800
    backoff: str = "linear"
    max_combinations: int = 500
    source: str = "rest"
    user_agent: str = DEFAULT_USER_AGENT
    referer: str = "https://www.michaelkors.com/"
    headless: bool = True
    slow_mo_ms: int = 150
    output_dir: str = "./out"
    output_db: str = ""
    start_at: int = 0
    limit: int = 0

    def __post_init__(self) -> None:
        # Concurrency limits below 1 would deadlock the pool.
        object.__setattr__(self, "concurrency", max(1, int(self.concurrency)))
        object.__setattr__(self, "product_concurrency", max(1, int(self.product_concurrency)))
        if self.retries < 0:
            raise ValueError(f"retries must be >= 0, got {self.retries}")
        if self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be > 0, got {self.timeout_ms}")
        if self.quantity < 1:
            raise ValueError(f"quantity must be >= 1, got {self.quantity}")
        # 0 means "no cap" for max_combinations and limit
        for name in ("retry_delay_ms", "max_combinations", "start_at", "limit", "slow_mo_ms"):
            value = getattr(self, name)
            if value < 0:
                raise ValueError(f"{name} must be >= 0, got {value}")
        if self.backoff not in ("linear", "exponential"):
            raise ValueError(f"backoff must be 'linear' or 'exponential', got {self.backoff!r}")
        if self.source not in ("rest", "interactive"):
            raise ValueError(f"source must be 'rest' or 'interactive', got {self.source!r}")

    @property
    def base_url(self) -> str:
        return self.api_base.format(site=self.site, locale=self.locale)

    @property
    def timeout_s(self) -> float:
        return self.timeout_ms / 1000.0

    @property
    def retry_delay_s(self) -> float:
        return self.retry_delay_ms / 1000.0

    def with_overrides(self, **changes) -> "Config":
        return replace(self, **changes)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Config":
        """Load `.env` (if present) and read every knob from the environment."""
        load_dotenv(env_file)
        d = cls()
        return cls(
            site=os.getenv("SITE", d.site),
            locale=os.getenv("LOCALE", d.locale),
            api_base=os.getenv("API_BASE", d.api_base),
            default_brand=os.getenv("DEFAULT_BRAND", d.default_brand),
            quantity=_env_int("QUANTITY", d.quantity),
            concurrency=_env_int("CONCURRENCY", d.concurrency),
            product_concurrency=_env_int("PRODUCT_CONCURRENCY", d.product_concurrency),
            timeout_ms=_env_int("TIMEOUT_MS", d.timeout_ms),
            retries=_env_int("RETRIES", d.retries),
            retry_delay_ms=_env_int("RETRY_DELAY_MS", d.retry_delay_ms),
            backoff=os.getenv("BACKOFF", d.backoff).strip().lower(),
            max_combinations=_env_int("MAX_COMBINATIONS", d.max_combinations),
            source=os.getenv("SOURCE", d.source).strip().lower(),
            user_agent=os.getenv("USER_AGENT", d.user_agent),
            referer=os.getenv("REFERER", d.referer),
            headless=_env_bool("HEADLESS", d.headless),
            slow_mo_ms=_env_int("SLOW_MO_MS", d.slow_mo_ms),
            output_dir=os.getenv("OUTPUT_DIR", d.output_dir),
            output_db=os.getenv("OUTPUT_DB", d.output_db),
            start_at=_env_int("START_AT", d.start_at),
            limit=_env_int("LIMIT", d.limit),
        )
