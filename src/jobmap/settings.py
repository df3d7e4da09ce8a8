from pathlib import Path
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    ddb_path: Path = Path("data/jobs.duckdb")

    # Geocoding provider
    mapbox_token: str = ""
    mapbox_base_url: str = "https://api.mapbox.com/geocoding/v5/mapbox.places"
    geocode_timeout: float = 10.0

    # Batch geocoder worker pool
    geocode_concurrency: int = 5
    geocode_pacing_s: float = 0.12

    # Sequential server-side run
    run_pacing_s: float = 0.1
    run_default_limit: int = 50
    run_max_limit: int = 500

    max_import_rows: int = 1000

    class Config:
        env_prefix = ""
        env_file   = ".env"
        extra      = "ignore"

settings = Settings()
