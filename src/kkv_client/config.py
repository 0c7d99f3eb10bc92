from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from .metrics import host_label


class KKVSettings(BaseSettings):
    cache_host: str
    pixy_host: str
    topic_name: str
    gzip: bool = False
    debounce_ms: int = 10
    put_interval_ms: int = 20
    put_n_retries: int = 5
    request_timeout: float = 10.0
    readiness_path: str = "/q/health/ready"

    model_config = SettingsConfigDict(env_prefix="KKV_", env_file=".env", case_sensitive=False)

    @property
    def cache_name(self) -> str:
        """Cache host without scheme, used as the cache_kkv_host metric label."""
        return host_label(self.cache_host)


@lru_cache()
def get_settings() -> KKVSettings:
    return KKVSettings()
