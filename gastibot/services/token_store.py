"""JSON-file storage for the rotating Supabase refresh token."""

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from gastibot.errors import TokenStoreError

logger = logging.getLogger(__name__)


class TokenStore:
    """Stores the single refresh token slot in a small JSON file."""

    KEY = "refreshToken"

    def __init__(self, path: Path, seed: str):
        self.path = Path(path)
        self.seed = seed

    def read(self) -> str:
        """Return the last written token, or the seed if nothing usable is stored."""
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return self.seed
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read token store at {self.path}, using seed token: {e}")
            return self.seed

        token = data.get(self.KEY) if isinstance(data, dict) else None
        if not isinstance(token, str) or not token:
            logger.warning(f"Token store at {self.path} has no usable token, using seed token")
            return self.seed
        return token

    def write(self, token: str) -> None:
        """Persist the token, replacing any previous value."""
        record = {
            self.KEY: token,
            "updatedAt": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".token-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(record, f, indent=2)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
        except OSError as e:
            raise TokenStoreError(f"Could not write token store at {self.path}: {e}") from e
        logger.info(f"Refresh token stored at {self.path}")
