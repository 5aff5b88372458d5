import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)


def _canon_prefix(val):
    """
    Normalize API prefix to always be exactly like '/api':
      - defaults to '/api' when unset/empty
      - ensures a single leading slash
      - removes any trailing slash (except for root)
    """
    val = (val or "/api").strip()
    if not val.startswith("/"):
        val = "/" + val
    if len(val) > 1 and val.endswith("/"):
        val = val[:-1]
    return val


API_PREFIX = _canon_prefix(os.getenv("API_PREFIX"))

DEFAULT_PROFILE_WRITE_RETRIES = 3


def _positive_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid %s value %r; using %s", name, raw, default)
        return default
    if value < 1:
        logger.warning("%s must be at least 1; using %s", name, default)
        return default
    return value


def _positive_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Invalid %s value %r; using %s", name, raw, default)
        return default
    if value <= 0:
        logger.warning("%s must be positive; using %s", name, default)
        return default
    return value


def profile_write_retries() -> int:
    """Attempts allowed for one submission or deletion before giving up."""
    return _positive_int("PROFILE_WRITE_RETRIES", DEFAULT_PROFILE_WRITE_RETRIES)


def rate_limits_disabled() -> bool:
    return os.getenv("DISABLE_RATE_LIMITS", "").lower() == "true"


def cors_origins() -> list[str]:
    """Trusted browser origins from ``ALLOWED_ORIGINS``.

    Raises ValueError when the variable is unset, holds only blank entries or
    contains the ``*`` wildcard.
    """
    origins = [
        o.strip() for o in os.getenv("ALLOWED_ORIGINS", "").split(",") if o.strip()
    ]
    if not origins:
        raise ValueError(
            "ALLOWED_ORIGINS must list at least one trusted origin "
            "(comma separated)."
        )
    if "*" in origins:
        raise ValueError(
            "ALLOWED_ORIGINS cannot include '*' (wildcard). Specify explicit, trusted origins."
        )
    return origins


def cors_allow_credentials() -> bool:
    return os.getenv("ALLOW_CREDENTIALS", "true").lower() == "true"


@dataclass(frozen=True)
class AzureOpenAISettings:
    api_key: str
    endpoint: str
    model_name: str
    deployment_name: str
    api_version: str
    timeout: float

    @property
    def enabled(self) -> bool:
        return bool(self.api_key and self.endpoint and self.deployment_name)

    @property
    def completions_url(self) -> str:
        endpoint = self.endpoint.rstrip("/")
        return (
            f"{endpoint}/openai/deployments/{self.deployment_name}"
            f"/chat/completions?api-version={self.api_version}"
        )


def get_azure_openai_settings() -> AzureOpenAISettings:
    """Read the Azure OpenAI settings; the deployment defaults to the model name."""
    model_name = os.getenv("AZURE_OPENAI_MODEL_NAME") or "gpt-35-turbo"
    return AzureOpenAISettings(
        api_key=os.getenv("AZURE_OPENAI_API_KEY", ""),
        endpoint=os.getenv("AZURE_OPENAI_ENDPOINT", ""),
        model_name=model_name,
        deployment_name=os.getenv("AZURE_OPENAI_DEPLOYMENT_NAME") or model_name,
        api_version=os.getenv("AZURE_OPENAI_API_VERSION") or "2023-05-15",
        timeout=_positive_float("AZURE_OPENAI_TIMEOUT_SECONDS", 10.0),
    )


def log_level(default: str = "INFO") -> int:
    name = (os.getenv("LOG_LEVEL") or default).upper()
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        logger.warning("Unknown LOG_LEVEL %r; using %s", name, default)
        return logging.getLevelName(default)
    return level
