# roomsync/services/identity.py
from __future__ import annotations

import json
import os
from typing import Dict, Optional

from pydantic import ValidationError

from roomsync.core.logging import get_logger
from roomsync.core.config import settings
from roomsync.models.models import Identity

logger = get_logger(__name__)

USERNAME_KEY = "chatUsername"


class IdentityStore:
    """
    Small key-value file remembering the chosen display name across sessions.

    The identity is read once when a session starts (load_identity) and then
    passed around explicitly; nothing reads it from here mid-flow.

    Storage Format (identity.json):
        {"chatUsername": "alice"}
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path or settings.IDENTITY_FILE
        self.values: Dict[str, str] = {}
        self.load()

    def load(self):
        """Load values from the file. A missing or corrupt file starts empty."""
        try:
            if os.path.exists(self.path):
                with open(self.path, "r") as f:
                    data = json.load(f)
                self.values = {str(k): str(v) for k, v in data.items()} if isinstance(data, dict) else {}
        except (OSError, ValueError) as e:
            logger.error(f"Load error: {e}")
            self.values = {}

    def save(self):
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(self.values, f, indent=2)

    def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value
        self.save()

    def load_identity(self) -> Optional[Identity]:
        """Return the remembered identity, or None if none (or an invalid one) is stored."""
        username = self.get(USERNAME_KEY)
        if not username:
            return None
        try:
            return Identity(username=username)
        except ValidationError:
            logger.warning("Ignoring invalid stored username %r", username)
            return None

    def remember(self, username: str) -> Identity:
        """Validate and persist a username. Raises pydantic.ValidationError if invalid."""
        identity = Identity(username=username)
        self.set(USERNAME_KEY, identity.username)
        logger.info(f"✓ Remembered identity {identity.username}")
        return identity
