from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: str = ""

    # Server (webhook callbacks point here)
    base_url: str = "http://localhost:8000"

    # Dashboard CORS origins (comma-separated)
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    # Acquirer endpoints
    spedpay_api_url: str = "https://api.spedpay.space"
    inter_api_url: str = "https://cdpj.partners.bancointer.com.br"
    ativus_api_url: str = "https://api.ativushub.com.br/v1/gateway/api/"
    ativus_status_url: str = "https://api.ativushub.com.br/s1/getTransaction/api/getTransactionStatus.php"
    ativus_list_url: str = "https://api.ativushub.com.br/s1/getTransaction/api/getTransactions.php"

    # Process-level credential fallbacks (admin_settings rows take precedence)
    spedpay_api_key: str = ""
    ativus_api_key: str = ""
    inter_client_id: str = ""
    inter_client_secret: str = ""
    inter_certificate: str = ""
    inter_private_key: str = ""
    inter_pix_key: str = ""

    # Acquirer used when neither the row nor the merchant says otherwise
    default_acquirer: str = "spedpay"

    # Batch poller
    batch_page_size: int = 100
    batch_delay_seconds: float = 0.1
    http_timeout_seconds: float = 30.0
    status_max_retries: int = 3
    status_retry_base_seconds: float = 0.5

    # Token cache: reuse while expiry is further away than this
    token_refresh_margin_seconds: int = 300

    # Dates stored next to timestamps (created_date_brazil, paid_date_brazil)
    reporting_timezone: str = "America/Sao_Paulo"

    # bcrypt hash of the X-Admin-Token accepted by cron/admin endpoints
    admin_token_hash: str = ""

    # In-process poller, off by default (production uses an external cron)
    poll_scheduler_enabled: bool = False
    poll_interval_minutes: int = 5

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
