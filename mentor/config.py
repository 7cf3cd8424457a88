from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # LLM provider (OpenAI-compatible endpoint)
    llm_api_key: str = ""
    llm_base_url: str = "https://openrouter.ai/api/v1"
    llm_model: str = "openai/gpt-4o-mini"
    llm_provider_name: str = "openrouter"
    llm_timeout_seconds: float = 60.0
    llm_max_output_tokens: int = 8000

    # Provider capabilities, used by the strategy decision table
    llm_structured_output: bool = False
    llm_server_side_tools: bool = False
    llm_upfront_research: bool = False
    llm_local_tools: bool = True

    # Strategy selection
    analysis_strategy: str = "auto"  # auto | direct | streaming | autonomous | upfront | passthrough
    autonomous_max_turns: int = 8

    # Research
    research_mode: str = "summary_only"  # summary_only | full_article
    research_max_results: int = 8

    # Search provider
    search_provider: str = "tavily"  # tavily | brave
    search_fallback_to_tavily: bool = True
    brave_api_key: str = ""
    tavily_api_key: str = ""

    # Article reading / conversion
    article_timeout_seconds: float = 30.0
    article_max_chars: int = 20000
    markdown_converter: str = "markitdown"  # markitdown | llm

    # App
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_to_file: bool = False
    log_dir: str = "logs"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


settings = Settings()
