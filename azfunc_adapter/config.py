from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", populate_by_name=True)

    # Inbound envelope. One extraction strategy per deployment, never per request.
    invocation_id_source: Literal["header", "metadata"] = Field(default="header", alias="AZFN_INVOCATION_ID_SOURCE")
    invocation_id_header: str = Field(default="X-Azure-Functions-InvocationId", alias="AZFN_INVOCATION_ID_HEADER")
    invocation_id_pointer: str = Field(default="/Metadata/Id", alias="AZFN_INVOCATION_ID_POINTER")
    request_body_pointer: str = Field(default="/Data/req/Body", alias="AZFN_REQUEST_BODY_POINTER")
    request_body_format: Literal["string", "json"] = Field(default="string", alias="AZFN_REQUEST_BODY_FORMAT")

    # Outbound envelope.
    output_shape: Literal["outputs", "return_value"] = Field(default="outputs", alias="AZFN_OUTPUT_SHAPE")
    output_binding: str = Field(default="res", alias="AZFN_OUTPUT_BINDING")
    response_headers: Literal["location", "all"] = Field(default="location", alias="AZFN_RESPONSE_HEADERS")
    # The host drops the Logs payload for any transport status other than 200.
    force_ok_status: bool = Field(default=True, alias="AZFN_FORCE_OK_STATUS")

    log_level: str = Field(default="INFO", alias="LOGLEVEL")
    host: str = Field(default="127.0.0.1", alias="HOST")
    port: int = Field(default=80, alias="FUNCTIONS_CUSTOMHANDLER_PORT")

    @field_validator("invocation_id_pointer", "request_body_pointer")
    @classmethod
    def _check_pointer(cls, value: str) -> str:
        if value and not value.startswith("/"):
            raise ValueError(f"JSON pointer must be empty or start with '/': {value!r}")
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        return value.strip().upper() or "INFO"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
