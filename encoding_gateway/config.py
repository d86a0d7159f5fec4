from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

SUPPORTED_FORMATS = ("protobuf", "thrift", "avro")


class Settings(BaseSettings):
    # App
    APP_NAME: str = "Encoding Gateway"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8080

    # Backends
    DEFAULT_FORMAT: str = "protobuf"
    ENABLED_FORMATS: str = "protobuf,thrift,avro"
    SCHEMA_COMPILE_TIMEOUT_SECONDS: float = 10.0
    PROTOC_COMMAND: str = ""
    SCRATCH_DIR: str = ""

    # HTTP
    MAX_BODY_BYTES: int = 1024 * 1024
    STRICT_HTTP_STATUS: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    @property
    def enabled_formats(self) -> list[str]:
        """Formats to mount, always including the default format."""
        names = [name.strip().lower() for name in self.ENABLED_FORMATS.split(",") if name.strip()]
        default = self.DEFAULT_FORMAT.strip().lower()
        if default not in names:
            names.insert(0, default)
        return names

    @property
    def protoc_command(self) -> list[str]:
        return self.PROTOC_COMMAND.split()


@lru_cache()
def get_settings() -> Settings:
    return Settings()
