"""Configuration models."""

from typing import Dict, List, Optional
from pydantic import BaseModel, Field, validator


class BackendConfig(BaseModel):
    """CSM endpoints configuration."""
    base_url: str = Field(default="https://api.cmn.local/apis")
    root_cert: Optional[str] = Field(None, description="Path to CA bundle for the API gateway")
    gitea_base_url: str = Field(default="https://api.cmn.local/vcs")
    timeout: float = Field(default=30.0, gt=0)


class PollingConfig(BaseModel):
    """Remote session and job polling."""
    interval: float = Field(default=2.0, ge=0)
    session_attempts: int = Field(default=3600, ge=1)
    job_attempts: int = Field(default=3600, ge=1)


class RetryConfig(BaseModel):
    """Bounded retry for deletions."""
    attempts: int = Field(default=5, ge=1)
    delay: float = Field(default=2.0, ge=0)
    backoff: float = Field(default=1.0, ge=1.0)


class AuthConfig(BaseModel):
    """Token claims interpretation."""
    admin_role: str = Field(default="pa_admin")
    ignored_roles: List[str] = Field(
        default_factory=lambda: ["offline_access", "uma_authorization"]
    )
    ignored_role_prefixes: List[str] = Field(default_factory=lambda: ["default-roles"])
    system_groups: List[str] = Field(
        default_factory=lambda: ["alps", "prealps", "alpsm", "alpse", "alpsb"]
    )


class VcsConfig(BaseModel):
    """Git server settings."""
    clone_url_rewrites: Dict[str, str] = Field(
        default_factory=dict,
        description="Host substitutions applied to product catalog clone URLs",
    )


class ConnectorConfig(BaseModel):
    """Main configuration model."""
    log_level: str = Field(default="INFO")
    backend: BackendConfig = Field(default_factory=BackendConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    vcs: VcsConfig = Field(default_factory=VcsConfig)

    @validator("log_level")
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    class Config:
        """Pydantic config."""
        extra = "ignore"
