from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    environment: str = "development"  # "production" hides provider error detail
    log_level: str = "INFO"
    log_json: bool = False

    # Gemini (text embeddings)
    google_api_key: str = ""
    text_embedding_model: str = "models/text-embedding-004"

    # Vertex AI (image embeddings)
    vertex_project_id: str = ""
    vertex_location: str = "us-central1"
    google_application_credentials_json: str = ""
    google_application_credentials_json_b64: str = ""

    # Provider call policy
    embedding_timeout_seconds: float = 15.0
    embedding_max_retries: int = 2
    embedding_backoff_seconds: float = 1.0      # first retry delay, doubles per attempt
    embedding_backoff_max_seconds: float = 4.0
    request_deadline_seconds: float = 40.0

    max_image_bytes: int = 1_500_000  # decoded
    error_detail_max_chars: int = 200

    warmup_image_dir: Optional[str] = None

    class Config:
        env_file = ".env"

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


settings = Settings()
