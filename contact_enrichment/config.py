from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    database_url: str = "sqlite:///data/opportunities.db"
    database_echo: bool = False
    log_level: str = "INFO"

    # Fetcher
    throttle_delay: float = 5.0  # seconds between requests to one registrable domain
    request_timeout: float = 20.0
    max_redirects: int = 5
    max_attempts: int = 4
    backoff_base: float = 1.0
    backoff_cap: float = 30.0
    cache_ttl: float = 24 * 60 * 60
    cache_max_entries: int = 1000
    max_body_bytes: int = 2 * 1024 * 1024

    # Orchestrator
    batch_size: int = 10
    opportunity_stagger: float = 1.0
    batch_pause: float = 2.0
    max_pages: int = 12
    premium_max_pages: int = 20
    high_authority_threshold: int = 50
    guess_emails: bool = True

    extractor_source: str = "contact-enrichment"
    extractor_version: str = "2.0"
