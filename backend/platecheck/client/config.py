from pydantic_settings import BaseSettings

class ClientSettings(BaseSettings):
    """Polling tunables. Read from the environment like the server settings, but
    kept separate so the client does not need server credentials."""
    POLL_INTERVAL_SECONDS: float = 2.5
    POLL_TIMEOUT_SECONDS: float = 60.0

    class Config:
        env_file = ".env"
        extra = "ignore"

client_settings = ClientSettings()
