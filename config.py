"""
Application settings

Values come from the process environment; a local .env file is loaded first
(noop if not present).
"""

import os

from dotenv import load_dotenv

load_dotenv()


class Settings:
    # Database: leave MONGO_URI unset to run on the embedded Mongita engine
    MONGO_URI = os.getenv("MONGO_URI") or os.getenv("DATABASE_URL")
    DB_NAME: str = os.getenv("DB_NAME") or os.getenv("DATABASE_NAME") or "trailtalk"

    # Server
    PORT: int = int(os.getenv("PORT", 5002))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Local image uploads, served back under /uploads
    UPLOAD_DIR: str = os.getenv("UPLOAD_DIR", "uploads")


settings = Settings()
