"""Service configuration using pydantic-settings.

This module defines the AgentSettings class that reads configuration
from environment variables with the SMARTY_ prefix. Only the repository
path is strictly required; forge credentials are validated against the
selected forge.
"""

from enum import Enum
from pathlib import Path
from typing import Annotated, Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class ForgeKind(str, Enum):
    """Supported pull request backends."""

    GITHUB = "github"
    BITBUCKET = "bitbucket"
    GH_CLI = "gh-cli"


class NamingStrategy(str, Enum):
    """Branch naming strategies."""

    DETERMINISTIC = "deterministic"
    ASSISTED = "assisted"


class AgentSettings(BaseSettings):
    """Change-request service configuration from environment variables.

    All environment variables are prefixed with SMARTY_ (e.g.,
    SMARTY_REPO_PATH, SMARTY_AUTH_TOKEN).
    """

    model_config = SettingsConfigDict(
        env_prefix="SMARTY_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # Repository Configuration
    # -------------------------------------------------------------------------
    # Shared working directory holding the managed checkout
    repo_path: str

    # Branch all work diverges from and all pull requests target
    baseline_branch: str = "master"

    # Remote that is fetched from and pushed to
    remote_name: str = "origin"

    # Clone URL used to bootstrap the checkout when it is missing
    clone_url: Optional[str] = None

    # Identity written to the checkout's git config during bootstrap
    git_user_name: str = "Claude Agent"
    git_user_email: str = "claude-agent@example.com"

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    host: str = "0.0.0.0"
    port: int = 3000

    # Bearer token required on POST /; empty disables authentication
    auth_token: Optional[str] = None

    # Origins allowed by CORS; "*" allows any origin
    allowed_origins: Annotated[list[str], NoDecode] = ["*"]

    # -------------------------------------------------------------------------
    # Rate Limiting
    # -------------------------------------------------------------------------
    rate_limit_window_seconds: int = 86400
    rate_limit_max_requests: int = 5

    # -------------------------------------------------------------------------
    # Claude Code Configuration
    # -------------------------------------------------------------------------
    claude_path: str = "claude"
    claude_model: str = "sonnet"

    # Hard limit on a single agent run; unset means no limit
    agent_timeout_seconds: Optional[int] = None

    # -------------------------------------------------------------------------
    # Branch Naming
    # -------------------------------------------------------------------------
    branch_naming: NamingStrategy = NamingStrategy.DETERMINISTIC
    naming_model: str = "haiku"
    naming_timeout_seconds: int = 30

    # -------------------------------------------------------------------------
    # Forge Configuration
    # -------------------------------------------------------------------------
    forge: ForgeKind = ForgeKind.GITHUB

    github_token: Optional[str] = None
    github_owner: Optional[str] = None
    github_repo: Optional[str] = None
    github_base_url: str = "https://api.github.com"

    bb_username: Optional[str] = None
    bb_email: Optional[str] = None
    bb_api_token: Optional[str] = None
    bb_workspace: Optional[str] = None
    bb_repo: Optional[str] = None
    bitbucket_base_url: str = "https://api.bitbucket.org/2.0"

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("repo_path")
    @classmethod
    def validate_repo_path(cls, v: str) -> str:
        """Validate that the repository path is absolute."""
        if not v or not v.strip():
            raise ValueError("repo_path cannot be empty")
        if not Path(v).is_absolute():
            raise ValueError("repo_path must be an absolute path")
        return v

    @field_validator("auth_token")
    @classmethod
    def normalize_auth_token(cls, v: Optional[str]) -> Optional[str]:
        """Treat a blank token as authentication disabled."""
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def split_origins(cls, v):
        """Accept a comma-separated string of origins."""
        if isinstance(v, str):
            origins = [origin.strip() for origin in v.split(",")]
            return [origin for origin in origins if origin] or ["*"]
        return v

    @field_validator(
        "rate_limit_window_seconds",
        "rate_limit_max_requests",
        "naming_timeout_seconds",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate that counters and durations are positive."""
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator("agent_timeout_seconds")
    @classmethod
    def validate_agent_timeout(cls, v: Optional[int]) -> Optional[int]:
        """Validate that an agent timeout, when set, is positive."""
        if v is not None and v < 1:
            raise ValueError("agent_timeout_seconds must be at least 1")
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @model_validator(mode="after")
    def validate_forge_credentials(self) -> "AgentSettings":
        """Validate that the selected forge has the credentials it needs."""
        if self.forge == ForgeKind.GITHUB:
            missing = [
                name
                for name in ("github_token", "github_owner", "github_repo")
                if not getattr(self, name)
            ]
        elif self.forge == ForgeKind.BITBUCKET:
            missing = [
                name
                for name in ("bb_api_token", "bb_workspace", "bb_repo")
                if not getattr(self, name)
            ]
            if not (self.bb_email or self.bb_username):
                missing.append("bb_email")
        else:
            missing = []

        if missing:
            raise ValueError(
                f"forge '{self.forge.value}' requires: {', '.join(missing)}"
            )
        return self

    @property
    def auth_enabled(self) -> bool:
        return self.auth_token is not None

    @property
    def repository_label(self) -> str:
        """Short label for the managed repository, used in logs and metrics."""
        if self.forge == ForgeKind.BITBUCKET and self.bb_workspace:
            return f"{self.bb_workspace}/{self.bb_repo}"
        if self.forge == ForgeKind.GITHUB and self.github_owner:
            return f"{self.github_owner}/{self.github_repo}"
        return Path(self.repo_path).name


def get_settings() -> AgentSettings:
    """Create and return an AgentSettings instance.

    Returns:
        AgentSettings: Configured settings instance.

    Raises:
        pydantic.ValidationError: If required fields are missing or invalid.
    """
    return AgentSettings()
