"""Configuration management for the autoheal toolkit."""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Dict, List, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


DEFAULT_FREE_MODELS: List[str] = [
    "qwen/qwen3-235b-a22b-thinking-2507",
    "deepseek/deepseek-r1-0528:free",
    "meta-llama/llama-3.3-70b-instruct:free",
    "qwen/qwen3-coder:free",
    "google/gemma-3-27b-it:free",
    "openai/gpt-oss-20b:free",
]

DEFAULT_ID_PREFIX_DOMAINS: Dict[str, str] = {
    "ED": "https://www.endpointclinical.com",
}

DEFAULT_BRAND_DOMAINS: Dict[str, str] = {
    "saucedemo": "https://www.saucedemo.com",
    "amazon": "https://www.amazon.com",
    "google": "https://www.google.com",
    "youtube": "https://www.youtube.com",
    "facebook": "https://www.facebook.com",
    "github": "https://github.com",
    "wikipedia": "https://www.wikipedia.org",
    "endpoint clinical": "https://www.endpointclinical.com",
}

AI_PROVIDERS = ("openrouter", "openai", "local", "disabled")


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # AI Generation Configuration
    ai_provider: str = Field(
        default="openrouter", description="Text generation provider"
    )
    openrouter_api_key: str = Field(default="", description="OpenRouter API key")
    openai_api_key: str = Field(default="", description="OpenAI API key")
    ai_base_url: Optional[str] = Field(
        default=None, description="Override the provider base URL"
    )
    ai_model: str = Field(
        default="openai/gpt-4o-mini", description="Default generation model"
    )
    ai_free_models: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_FREE_MODELS),
        description="Models tried in order when the account runs out of credit",
    )
    local_llm_url: str = Field(
        default="http://localhost:11434/v1",
        description="OpenAI-compatible endpoint of the local model server",
    )
    local_llm_model: str = Field(default="llama3.2:3b", description="Local model")
    ai_max_tokens: int = Field(default=2000, ge=1, description="Default max tokens")
    ai_script_max_tokens: int = Field(
        default=4000, ge=1, description="Max tokens for test script generation"
    )
    ai_temperature: float = Field(
        default=0.1, ge=0.0, le=2.0, description="Default temperature"
    )
    ai_script_temperature: float = Field(
        default=0.3, ge=0.0, le=2.0, description="Temperature for test scripts"
    )
    ai_max_retries: int = Field(
        default=2, ge=0, description="Client-level retry attempts"
    )
    ai_request_timeout_seconds: int = Field(
        default=120, ge=5, description="Request timeout for generation calls"
    )
    ai_app_referer: str = Field(
        default="http://localhost:3001", description="HTTP-Referer sent to OpenRouter"
    )
    ai_app_title: str = Field(
        default="autoheal", description="X-Title sent to OpenRouter"
    )

    # Jira Configuration
    jira_host: str = Field(default="", description="Jira base URL")
    jira_email: str = Field(default="", description="Jira account email")
    jira_api_token: str = Field(default="", description="Jira API token")
    jira_project_key: str = Field(default="ED", description="Project for new stories")
    jira_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Jira request timeout"
    )

    # TestRail Configuration
    testrail_host: str = Field(default="", description="TestRail base URL")
    testrail_username: str = Field(default="", description="TestRail user")
    testrail_api_key: str = Field(default="", description="TestRail API key")
    testrail_project_id: int = Field(default=7, ge=1, description="Project ID")
    testrail_suite_id: int = Field(default=14, ge=1, description="Suite ID")
    testrail_section_id: int = Field(default=45, ge=1, description="Section ID")
    testrail_timeout_seconds: float = Field(
        default=30.0, gt=0, description="TestRail request timeout"
    )

    # Runner Configuration
    runner_command: str = Field(
        default="npx playwright test", description="Test runner command line"
    )
    runner_config_path: Optional[str] = Field(
        default="config/playwright.config.js",
        description="Playwright config file passed with --config",
    )
    runner_project: Optional[str] = Field(
        default="chromium", description="Playwright project (browser) name"
    )
    runner_timeout_seconds: int = Field(
        default=180, ge=1, description="Hard wall-clock timeout per execution"
    )
    runner_test_timeout_ms: int = Field(
        default=60000, ge=1000, description="Per-test timeout flag (ms)"
    )
    runner_max_output_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=1024,
        description="Captured output buffer per stream",
    )
    healing_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Total executions allowed, including the first run",
    )
    working_dir: Path = Field(
        default=Path("."), description="Directory the runner is launched from"
    )
    tests_dir: Path = Field(
        default=Path("src/tests"), description="Generated test artifacts"
    )
    results_dir: Path = Field(
        default=Path("test-results"), description="Runner evidence output"
    )
    video_filename: str = Field(
        default="video.webm", description="Video file name inside each result dir"
    )
    data_dir: Path = Field(default=Path("data"), description="Data directory")

    # Target Resolution Configuration
    placeholder_domain: str = Field(
        default="https://example.com",
        description="Last-resort URL when nothing better is known",
    )
    id_prefix_domains: Dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_ID_PREFIX_DOMAINS),
        description="Story key prefix to production domain",
    )
    brand_domains: Dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_BRAND_DOMAINS),
        description="Keyword to domain table",
    )

    # Page Inspection Configuration
    page_inspection_enabled: bool = Field(
        default=True, description="Inspect the live page before generating scripts"
    )
    page_inspection_timeout_ms: int = Field(
        default=30000, ge=1000, description="Navigation timeout for inspection"
    )
    browser_headless: bool = Field(
        default=True, description="Run inspection browser headless"
    )

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API bind host")
    api_port: int = Field(default=3001, ge=1, le=65535, description="API port")
    api_cors_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["*"], description="Allowed CORS origins"
    )

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="Log format (json or text)")
    log_file: Optional[str] = Field(default=None, description="Log file path")
    sanitize_logs: bool = Field(
        default=True, description="Redact secrets before logs are emitted"
    )

    @field_validator("ai_provider")
    @classmethod
    def validate_ai_provider(cls, v: str) -> str:
        """Validate generation provider."""
        provider = v.strip().lower()
        if provider not in AI_PROVIDERS:
            raise ValueError(
                f"Invalid AI provider: {v}. Allowed values: {list(AI_PROVIDERS)}"
            )
        return provider

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        if v not in ["json", "text"]:
            raise ValueError(f"Invalid log format: {v}")
        return v

    @field_validator("ai_free_models", "api_cors_origins", mode="before")
    @classmethod
    def split_comma_list(cls, raw: Any) -> List[str]:
        """Normalize list inputs (list, tuple, comma-separated string)."""
        if raw is None:
            return []
        if isinstance(raw, str):
            return [item.strip() for item in raw.split(",") if item.strip()]
        if isinstance(raw, (list, tuple, set)):
            return [str(item).strip() for item in raw if item is not None and str(item).strip()]
        return []

    @field_validator("id_prefix_domains")
    @classmethod
    def normalize_prefixes(cls, v: Dict[str, str]) -> Dict[str, str]:
        """Store ID prefixes upper-cased."""
        return {key.strip().upper(): value for key, value in v.items()}

    @property
    def jira_configured(self) -> bool:
        return bool(self.jira_host and self.jira_email and self.jira_api_token)

    @property
    def testrail_configured(self) -> bool:
        return bool(
            self.testrail_host and self.testrail_username and self.testrail_api_key
        )

    @property
    def ai_configured(self) -> bool:
        if self.ai_provider == "disabled":
            return False
        if self.ai_provider == "local":
            return True
        if self.ai_provider == "openai":
            return bool(self.openai_api_key)
        return bool(self.openrouter_api_key)

    def create_directories(self) -> None:
        """Create required directories if they don't exist."""
        for dir_path in [self.tests_dir, self.results_dir, self.data_dir]:
            dir_path.mkdir(parents=True, exist_ok=True)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    env_file = Path(".env")
    if env_file.exists():
        load_dotenv(env_file)

    settings = Settings()
    settings.create_directories()
    return settings

