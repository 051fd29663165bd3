import os


class Settings:
    def __init__(self) -> None:
        # single-file SQLite store by default
        self.DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./data/messages.db")
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
        self.MESSAGE_TTL_SECONDS: int = int(os.getenv("MESSAGE_TTL_SECONDS", "86400"))
        # 0 disables the in-process sweeper
        self.PURGE_INTERVAL_SECONDS: float = float(os.getenv("PURGE_INTERVAL_SECONDS", "3600"))
        self.DB_TIMEOUT_SECONDS: float = float(os.getenv("DB_TIMEOUT_SECONDS", "5"))
        self.MAX_MESSAGE_LENGTH: int = int(os.getenv("MAX_MESSAGE_LENGTH", "10000"))
        self.CORS_ORIGINS: list[str] = [
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", "*").split(",")
            if origin.strip()
        ]


settings = Settings()
