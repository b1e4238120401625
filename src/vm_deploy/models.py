import re
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

LABEL_PATTERN = re.compile(r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$")


class ProxyVariant(str, Enum):
    HTTP_PROXY = "http_proxy"
    HTTPS_REDIRECT = "https_redirect"
    TLS = "tls"


class RunConfig(BaseModel):
    image: Optional[str] = Field(None, description="Container image reference to deploy")
    domain: Optional[str] = Field(None, description="Apex domain served by the reverse proxy")
    email: Optional[str] = Field(None, description="Contact address for the certificate authority")
    mode: Literal["full", "simple"] = Field("full", description="Installer flavour")
    staging: bool = Field(False, description="Use the certificate authority's staging environment")

    @field_validator("image")
    @classmethod
    def validate_image(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v or any(ch.isspace() for ch in v):
            raise ValueError("image reference must be a non-empty string without whitespace")
        return v

    @field_validator("domain")
    @classmethod
    def validate_domain(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().lower().rstrip(".")
        if not v or len(v) > 253:
            raise ValueError("domain must be between 1 and 253 characters")

        labels = v.split(".")
        if len(labels) < 2:
            raise ValueError(f"'{v}' is not a fully qualified domain name")
        for label in labels:
            if not LABEL_PATTERN.match(label):
                raise ValueError(f"'{v}' is not a valid DNS hostname (bad label '{label}')")
        if labels[0] == "www":
            raise ValueError(f"pass the apex domain, not '{v}'; the www alias is derived")
        return v

    @model_validator(mode="after")
    def require_image_or_domain(self) -> "RunConfig":
        if not self.image and not self.domain:
            raise ValueError("at least one of image or domain is required")
        if self.mode == "simple" and not (self.image and self.domain):
            raise ValueError("simple mode requires both image and domain")
        return self

    @property
    def include_www(self) -> bool:
        return self.mode == "full"

    @property
    def www_domain(self) -> str:
        return f"www.{self.domain}"

    @property
    def pre_cert_variant(self) -> ProxyVariant:
        """Site layout used before a certificate exists."""
        if self.mode == "simple":
            return ProxyVariant.HTTP_PROXY
        return ProxyVariant.HTTPS_REDIRECT

    @property
    def certificate_email(self) -> str:
        return self.email or f"admin@{self.domain}"


class ContainerSpec(BaseModel):
    name: str = Field(..., description="Deterministic container name")
    image: str = Field(..., description="Docker image tag to run")
    host_port: int = Field(..., ge=1, le=65535, description="Public port on the host")
    container_port: int = Field(..., ge=1, le=65535, description="Internal container port")
    restart_policy: str = Field("unless-stopped", pattern="^(no|always|on-failure|unless-stopped)$")

    @field_validator("image")
    @classmethod
    def validate_image_tag(cls, v: str) -> str:
        if ":" not in v.rsplit("/", 1)[-1] and "@" not in v:
            return f"{v}:latest"
        return v
