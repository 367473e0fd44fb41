from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # LLM providers
    default_provider: str = "openai"
    default_model: str = ""
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    gemini_api_key: str = ""
    deepseek_api_key: str = ""
    llm_api_key: str = ""  # Generic key -- used when provider-specific key is empty
    llm_base_url: str = ""  # Custom base URL for openai_compatible provider
    lmstudio_url: str = "http://localhost:1234"
    llm_timeout_seconds: float = 120.0
    llm_max_tokens: int = 4096

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    shutdown_grace_seconds: float = 30.0

    # Storage
    store_path: str = "./data/polyplex.json"

    # Quality gate
    min_depth: int = 2
    max_depth: int = 5
    min_average_score: int = 90
    min_artifact_score: int = 80
    refine_threshold: int = 90

    # Pipeline
    max_artifacts: int = 12
    critique_fallback_score: int = 40
    integration_bonus: int = 3
    integration_penalty: int = 5
    integration_snippet_chars: int = 1200
    wisdom_window: int = 8

    # Autopilot defaults
    autopilot_wisdom_window: int = 3
    autopilot_target_count: int = 3
    autopilot_max_active: int = 2
    autopilot_tick_seconds: float = 8.0
    autopilot_min_tick_seconds: float = 2.0
    autopilot_auto_approve_threshold: int = 93

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _check_bounds(self) -> "Settings":
        if self.min_depth < 1:
            raise ValueError(f"MIN_DEPTH must be >= 1, got: {self.min_depth}")
        if self.max_depth < self.min_depth:
            raise ValueError(
                f"MAX_DEPTH ({self.max_depth}) must be >= MIN_DEPTH ({self.min_depth})"
            )
        for name in ("min_average_score", "min_artifact_score", "refine_threshold", "critique_fallback_score"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ValueError(f"{name.upper()} must be within 0..100, got: {value}")
        if self.max_artifacts < 1:
            raise ValueError(f"MAX_ARTIFACTS must be >= 1, got: {self.max_artifacts}")
        return self


settings = Settings()
