"""Typed configuration variants for integrations and notification channels.

Raw rows are merged with their decrypted credentials and validated here before
anything reaches a connector, so connectors never deal with loose dicts.
"""

import re
from typing import Annotated, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

_URL_RE = re.compile(r"^https?://.+")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _check_base_url(value: str) -> str:
    if not _URL_RE.match(value or ""):
        raise ValueError("URL must start with http:// or https://")
    return value.rstrip("/")


class RPPagination(BaseModel):
    method: Literal["OFFSET", "CURSOR"]
    param_name: str
    additional_params: Dict[str, str] = {}  # e.g. {"somentePreco2": "true"}


class RPConfig(BaseModel):
    """RP point-of-sale (source) settings."""
    type: Literal["RP"] = "RP"
    base_url: str
    auth_method: Literal["TOKEN", "LOGIN"]

    # TOKEN
    static_token: Optional[str] = None
    token_header: Optional[str] = None  # e.g. "Authorization", "token", "X-API-Key"

    # LOGIN
    login_endpoint: Optional[str] = None  # e.g. "/v1.1/auth"
    username: Optional[str] = None
    password: Optional[str] = None
    token_response_field: str = "response.token"

    # e.g. "/v2.8/produtounidade/listaprodutos/{lastId}/unidade/{storeReg}/detalhado"
    products_endpoint: str
    pagination: Optional[RPPagination] = None
    store_identifier_field: Literal["registration", "document"] = "registration"

    @field_validator("base_url")
    @classmethod
    def check_base_url(cls, value: str) -> str:
        return _check_base_url(value)

    @model_validator(mode="after")
    def check_auth_fields(self) -> "RPConfig":
        errors = []
        if self.auth_method == "TOKEN":
            if not self.static_token:
                errors.append("static_token is required for TOKEN authentication")
            if not self.token_header:
                errors.append("token_header is required for TOKEN authentication")
        else:
            if not self.login_endpoint:
                errors.append("login_endpoint is required for LOGIN authentication")
            if not self.username or not self.password:
                errors.append("username and password are required for LOGIN authentication")
            if not self.token_response_field:
                errors.append("token_response_field is required for LOGIN authentication")
        if errors:
            raise ValueError("; ".join(errors))
        return self


class CresceVendasConfig(BaseModel):
    """CresceVendas (target) settings."""
    type: Literal["CRESCEVENDAS"] = "CRESCEVENDAS"
    base_url: str
    auth_headers: Dict[str, str]
    send_products_endpoint: str = "/admin/integrations/discount_stores/batch_upload"
    get_products_endpoint: str = "/admin/integrations/discount_stores"

    @field_validator("base_url")
    @classmethod
    def check_base_url(cls, value: str) -> str:
        return _check_base_url(value)

    @field_validator("auth_headers")
    @classmethod
    def check_auth_headers(cls, value: Dict[str, str]) -> Dict[str, str]:
        email = value.get("X-AdminUser-Email")
        if not email:
            raise ValueError("X-AdminUser-Email header is required")
        if not _EMAIL_RE.match(email):
            raise ValueError("X-AdminUser-Email must be a valid e-mail address")
        if not value.get("X-AdminUser-Token"):
            raise ValueError("X-AdminUser-Token header is required")
        return value


IntegrationConfig = Annotated[Union[RPConfig, CresceVendasConfig], Field(discriminator="type")]


class TelegramConfig(BaseModel):
    type: Literal["TELEGRAM"] = "TELEGRAM"
    bot_token: str
    chat_id: str
    parse_mode: Optional[str] = "Markdown"
    api_base_url: str = "https://api.telegram.org"

    @field_validator("chat_id", mode="before")
    @classmethod
    def chat_id_as_str(cls, value):
        return str(value)


class WebhookConfig(BaseModel):
    type: Literal["WEBHOOK"] = "WEBHOOK"
    webhook_url: str
    method: Literal["POST", "PUT"] = "POST"
    headers: Dict[str, str] = {}
    timeout: float = 10.0

    @field_validator("webhook_url")
    @classmethod
    def check_webhook_url(cls, value: str) -> str:
        return _check_base_url(value)


ChannelConfig = Annotated[Union[TelegramConfig, WebhookConfig], Field(discriminator="type")]
