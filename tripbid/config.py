from pydantic_settings import BaseSettings
from pathlib import Path
import yaml


class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql+asyncpg://postgres@localhost:5432/tripbid"
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_SOCKET_TIMEOUT: float = 2.0
    REDIS_CONNECT_TIMEOUT: float = 2.0
    REDIS_HEALTH_CHECK_INTERVAL: int = 30
    DB_ECHO: bool = False

    BASE_FARE: float = 2.0
    PER_KM_RATE: float = 0.5

    NEARBY_RADIUS_KM: float = 10.0
    HISTORY_LIMIT: int = 20
    ALLOW_CANCEL_IN_PROGRESS: bool = True

    REALTIME_ENABLED: bool = True
    NOTIFY_TIMEOUT: float = 3.0

    LOG_FILE: str = "tripbid.log"
    LOG_LEVEL: str = "INFO"

    # Load .env located next to this file (tripbid/.env) so defaults are overridden
    model_config = {"env_file": str(Path(__file__).resolve().parent / ".env")}


def load_settings() -> Settings:
    """Load settings from application.yaml and merge with environment variables."""
    config_path = Path(__file__).resolve().parent / "application.yaml"

    config_dict = {}

    if config_path.exists():
        with open(config_path, "r") as f:
            yaml_config = yaml.safe_load(f)
            if yaml_config:
                # Map YAML structure to Settings fields
                if "database" in yaml_config:
                    db = yaml_config["database"]
                    config_dict["DATABASE_URL"] = db.get("url")
                    config_dict["DB_ECHO"] = db.get("echo")

                if "redis" in yaml_config:
                    rds = yaml_config["redis"]
                    config_dict["REDIS_URL"] = rds.get("url")
                    config_dict["REDIS_SOCKET_TIMEOUT"] = rds.get("socket_timeout")
                    config_dict["REDIS_CONNECT_TIMEOUT"] = rds.get("connect_timeout")
                    config_dict["REDIS_HEALTH_CHECK_INTERVAL"] = rds.get("health_check_interval")

                if "pricing" in yaml_config:
                    pricing = yaml_config["pricing"]
                    config_dict["BASE_FARE"] = pricing.get("base_fare")
                    config_dict["PER_KM_RATE"] = pricing.get("per_km_rate")

                if "matching" in yaml_config:
                    match = yaml_config["matching"]
                    config_dict["NEARBY_RADIUS_KM"] = match.get("nearby_radius_km")

                if "trips" in yaml_config:
                    trips = yaml_config["trips"]
                    config_dict["HISTORY_LIMIT"] = trips.get("history_limit")
                    config_dict["ALLOW_CANCEL_IN_PROGRESS"] = trips.get("allow_cancel_in_progress")

                if "realtime" in yaml_config:
                    realtime = yaml_config["realtime"]
                    config_dict["REALTIME_ENABLED"] = realtime.get("enabled")
                    config_dict["NOTIFY_TIMEOUT"] = realtime.get("notify_timeout")

                if "logging" in yaml_config:
                    log = yaml_config["logging"]
                    config_dict["LOG_FILE"] = log.get("file")
                    config_dict["LOG_LEVEL"] = log.get("level")

    # Create Settings with YAML values, but allow env vars to override
    return Settings(**{k: v for k, v in config_dict.items() if v is not None})


settings = load_settings()
