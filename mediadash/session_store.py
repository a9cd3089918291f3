import json
import os
from pathlib import Path
from typing import Optional, Tuple

from .config import DEFAULT_SESSION_PATH
from .models import User
from .utils import get_logger


class TokenStore:
    def __init__(self, path: str = DEFAULT_SESSION_PATH) -> None:
        self.path = Path(path)
        self.logger = get_logger("mediadash.store")

    def load(self) -> Optional[Tuple[str, User]]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            self.logger.info("Ignoring unreadable session file %s: %s", self.path, exc)
            return None
        if not isinstance(data, dict):
            return None
        token = data.get("token")
        user = data.get("user")
        if not token or not isinstance(user, dict):
            return None
        return str(token), User.from_dict(user)

    def save(self, token: str, user: User) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"token": token, "user": user.to_dict()}
        tmp = self.path.with_name(f"{self.path.name}.tmp")
        try:
            tmp.write_text(json.dumps(payload, indent=2, ensure_ascii=True) + "\n", encoding="utf-8")
            os.chmod(tmp, 0o600)
            os.replace(tmp, self.path)
        except OSError:
            if tmp.exists():
                tmp.unlink()
            raise

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
