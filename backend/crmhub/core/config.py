# crmhub/core/config.py

from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from loguru import logger
from pathlib import Path
import warnings


def find_dotenv_path(filename='.env', raise_error_if_not_found=False, usecwd=False) -> str | None:
    """Sobe a árvore de diretórios procurando o arquivo .env."""
    if usecwd or '__file__' not in globals(): start_dir = Path.cwd()
    else: start_dir = Path(__file__).resolve().parent
    current_dir = start_dir
    for _ in range(10):
        env_path = current_dir / filename
        if env_path.is_file(): logger.debug(f"Found {filename} file at: {env_path}"); return str(env_path)
        parent_dir = current_dir.parent
        if parent_dir == current_dir: break
        current_dir = parent_dir
    if not usecwd and '__file__' in globals():
        env_path_cwd = Path.cwd() / filename
        if env_path_cwd.is_file(): logger.debug(f"Found {filename} file at CWD: {env_path_cwd}"); return str(env_path_cwd)
    logger.debug(f"{filename} not found in parent directories of {start_dir} or CWD.")
    if raise_error_if_not_found: raise IOError(f'{filename} not found')
    return None


def env_files() -> tuple[str, ...]:
    """.env e depois .env.local (que pode sobrescrever); os que não existem ficam de fora."""
    return tuple(p for p in (find_dotenv_path('.env'), find_dotenv_path('.env.local')) if p)


class Settings(BaseSettings):
    PROJECT_NAME: str = "CRM Hub"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # Database & Queue
    MONGODB_URI: str
    MONGODB_DB_NAME: str | None = None
    REDIS_URL: str = "redis://localhost:6379/0"
    CELERY_BROKER_URL: str | None = None  # padrão: REDIS_URL
    CELERY_RESULT_BACKEND: str | None = None  # padrão: REDIS_URL

    # Security
    SECRET_KEY: str  # For JWT
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    API_RATE_LIMIT: str = "500/minute"
    CORS_ORIGINS: str = "*"

    # Meta / WhatsApp API Credentials
    META_ACCESS_TOKEN: str | None = None
    META_PHONE_NUMBER_ID: str | None = None
    META_GRAPH_API_VERSION: str = "v19.0"
    META_APP_SECRET: str | None = None

    # Regras de negócio
    DEFAULT_COUNTRY_CODE: str = "55"
    TIMEZONE: str = "America/Sao_Paulo"
    DEFAULT_SETTLEMENT_DAYS: int = 30  # meio de pagamento com settlement_days 0

    # Webhooks de integração (limites por token / IP / dia)
    WEBHOOK_RATE_LIMIT_PER_TOKEN: int = 100
    WEBHOOK_RATE_LIMIT_PER_IP: int = 200
    WEBHOOK_DAILY_LIMIT: int = 1000

    # Follow-ups
    FOLLOWUP_DISPATCH_BATCH: int = 50
    FOLLOWUP_CLAIM_TIMEOUT_MINUTES: int = 10  # `sending` mais antigo que isso volta para a fila

    model_config = SettingsConfigDict(
        env_file=env_files(),
        env_file_encoding='utf-8',
        extra='ignore',
        case_sensitive=False,
    )


@lru_cache()
def get_settings() -> Settings:
    """Carrega e valida as configurações da aplicação."""
    logger.info("Loading application settings...")
    env_files_found = env_files()
    if env_files_found:
        logger.info(f"Loading environment variables from: {', '.join(env_files_found)}")
    else:
        logger.warning("No .env file found. Loading settings from system environment variables only.")

    try:
        settings_instance = Settings()

        required_vars = ['MONGODB_URI', 'SECRET_KEY']
        missing = [k for k in required_vars if not getattr(settings_instance, k, None)]
        if missing:
            logger.critical(f"Missing critical environment variables: {', '.join(missing)}")
            raise ValueError(f"Missing critical environment variables: {', '.join(missing)}")

        if settings_instance.SECRET_KEY == "!!!GENERATE_A_STRONG_SECRET_KEY_32_BYTES_HEX!!!":
            logger.warning("SECURITY WARNING: Using default SECRET_KEY. Generate a strong key (e.g., `openssl rand -hex 32`).")
            warnings.warn("SECURITY WARNING: Using default SECRET_KEY. Please generate and set a strong secret key!")

        # WhatsApp é opcional: apenas avisar
        wa_keys = ['META_ACCESS_TOKEN', 'META_PHONE_NUMBER_ID']
        missing_wa = [k for k in wa_keys if not getattr(settings_instance, k, None)]
        if missing_wa:
            logger.warning(f"WhatsApp API keys missing ({', '.join(missing_wa)}). Follow-up dispatch will fail until configured.")

        logger.info("Settings loaded and validated successfully.")
        return settings_instance
    except ValueError as val_err:  # pydantic ValidationError herda de ValueError
        logger.critical(f"CRITICAL ERROR in settings validation: {val_err}")
        raise SystemExit(f"Settings validation failed: {val_err}")


settings = get_settings()
