"""Global configuration — loaded from environment variables."""

from pathlib import Path

from pydantic_settings import BaseSettings


class MechEvolveSettings(BaseSettings):
    workspace_dir: Path = Path(".mechevolve")
    db_path: Path = Path(".mechevolve/evolve.db")
    host: str = "127.0.0.1"
    port: int = 3011
    log_level: str = "INFO"

    # Agent population
    tier2_cap: int = 3
    agent_error_threshold: int = 3  # consecutive failures before status=error
    promotion_min_suggestions: int = 10
    promotion_min_success_rate: float = 0.6

    # Pattern memory and confidence
    default_confidence: float = 0.5
    recognition_threshold: int = 2
    recognition_weight: float = 0.5
    pattern_saturation: int = 10
    pattern_example_limit: int = 5
    memory_list_limit: int = 50

    # Responses and ledger queries
    max_suggestions_per_agent: int = 3
    history_default_limit: int = 20
    suggestion_default_limit: int = 10

    # Optimistic concurrency on agent documents
    update_retries: int = 5

    model_config = {"env_prefix": "MECHEVOLVE_"}


settings = MechEvolveSettings()
