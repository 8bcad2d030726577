from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Visual description (Anthropic)
    anthropic_api_key: str = ""
    claude_vision_model: str = "claude-haiku-4-5-20251001"  # Fast/cheap model for descriptions
    vision_max_tokens: int = 4096
    vision_timeout_seconds: float = 120.0

    # Images
    max_image_size_bytes: int = 10 * 1024 * 1024  # 10MB

    # Archives
    max_archive_depth: int = 8
    max_archive_entries: int = 10000
    max_entry_size_bytes: int = 100 * 1024 * 1024  # 100MB per decompressed entry
    archive_concurrency: int = 8

    # Format detection
    sniff_prefix_bytes: int = 8192

    # PDF fallback
    pdf_render_dpi: int = 150
    pdf_min_words: int = 10
    pdf_min_alphanumeric_ratio: float = 0.5
    pdf_min_unstructured_chars: int = 50
    pdf_image_heavy_word_limit: int = 350

    # Spreadsheets
    spreadsheet_max_rows: int = 10000
    spreadsheet_max_cols: int = 100

    # Logging
    log_level: str = "INFO"

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Accept lowercase level names from the environment."""
        return v.upper() if isinstance(v, str) else v

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
