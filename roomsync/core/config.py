# roomsync/core/config.py
import os
from typing import Literal
from dotenv import load_dotenv

class Settings:
    """
    Setup environment variables.
        - PUB_SUB_SERVICE the backing store / change feed to use: "memory" or "redis"
        - DEFAULT_ROOM_SLUG / DEFAULT_ROOM_NAME the room every client joins
        - ATTACHMENTS_DIR / ATTACHMENTS_BASE_URL where uploaded files live and how they are served
        - TRANSCRIPTION_MODEL the speech-to-text model used for voice composition
        - IDENTITY_FILE the local file remembering the chosen username
    """

    # Load environment variables from the .env file
    load_dotenv()

    PUB_SUB_SERVICE: Literal["memory", "redis"] = os.getenv("PUB_SUB_SERVICE", "memory")

    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_ACCESS_KEY: str = os.getenv("REDIS_ACCESS_KEY", "")
    REDIS_SSL: bool = os.getenv("REDIS_SSL", "false").lower() == "true"

    DEFAULT_ROOM_SLUG: str = os.getenv("DEFAULT_ROOM_SLUG", "public")
    DEFAULT_ROOM_NAME: str = os.getenv("DEFAULT_ROOM_NAME", "Public Chat Room")

    ATTACHMENTS_DIR: str = os.getenv("ATTACHMENTS_DIR", "chat_attachments")
    ATTACHMENTS_BASE_URL: str = os.getenv("ATTACHMENTS_BASE_URL", "/attachments")
    MAX_ATTACHMENT_BYTES: int = int(os.getenv("MAX_ATTACHMENT_BYTES", str(10 * 1024 * 1024)))

    TRANSCRIPTION_MODEL: str = os.getenv("TRANSCRIPTION_MODEL", "openai/whisper-tiny.en")
    # 30 seconds of 16 kHz, 16-bit mono audio
    MAX_AUDIO_BYTES: int = int(os.getenv("MAX_AUDIO_BYTES", str(30 * 16000 * 2)))

    IDENTITY_FILE: str = os.getenv("IDENTITY_FILE", os.path.expanduser("~/.roomsync/identity.json"))

settings = Settings()
