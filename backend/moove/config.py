import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./moove.db")
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:5173")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Apple Health export.xml is read in byte chunks of this size
    HEALTH_IMPORT_CHUNK_SIZE: int = int(
        os.getenv("HEALTH_IMPORT_CHUNK_SIZE", str(10 * 1024 * 1024))
    )
    # Abort when unprocessed carry-over exceeds this many chunks
    HEALTH_IMPORT_MAX_CARRYOVER_CHUNKS: int = int(
        os.getenv("HEALTH_IMPORT_MAX_CARRYOVER_CHUNKS", "4")
    )


settings = Settings()
