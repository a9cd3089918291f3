import mimetypes
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Set


class SessionStatus(str, Enum):
    ANONYMOUS = "anonymous"
    VERIFYING = "verifying"
    AUTHENTICATED = "authenticated"
    ERROR = "error"


class SortKey(str, Enum):
    CREATED_AT = "created_at"
    VIEW_COUNT = "viewCount"
    SIZE = "size"


class TypeFilter(str, Enum):
    ALL = ""
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    PDF = "pdf"
    SPREADSHEET = "spreadsheet"


class ShareTab(str, Enum):
    INVITE = "invite"
    LINK = "link"


class LinkState(str, Enum):
    NOT_REQUESTED = "not_requested"
    GENERATING = "generating"
    READY = "ready"
    FAILED = "failed"


class InviteState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"


@dataclass
class User:
    id: str
    name: str
    email: str

    @classmethod
    def from_dict(cls, data: Dict) -> "User":
        return cls(
            id=str(data.get("id") or ""),
            name=data.get("name") or "",
            email=data.get("email") or "",
        )

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "name": self.name, "email": self.email}


@dataclass
class Session:
    user: Optional[User] = None
    token: Optional[str] = None
    status: SessionStatus = SessionStatus.ANONYMOUS
    error: Optional[str] = None
    # False until the backend has confirmed the user in this process.
    verified: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.status is SessionStatus.AUTHENTICATED


@dataclass
class FileRecord:
    id: str
    name: str
    mime_type: str
    size_bytes: int
    url: str = ""
    tags: Set[str] = field(default_factory=set)
    view_count: int = 0
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class ListingQuery:
    search_text: str = ""
    sort_key: SortKey = SortKey.CREATED_AT
    type_filter: TypeFilter = TypeFilter.ALL

    def to_params(self) -> Dict[str, str]:
        return {
            "search": self.search_text,
            "sort": self.sort_key.value,
            "filter": self.type_filter.value,
        }


@dataclass
class ShareSession:
    active_tab: ShareTab = ShareTab.INVITE
    link_state: LinkState = LinkState.NOT_REQUESTED
    link_url: Optional[str] = None
    invite_state: InviteState = InviteState.IDLE


@dataclass
class UploadFile:
    name: str
    content: bytes
    mime_type: str = "application/octet-stream"

    @property
    def size_bytes(self) -> int:
        return len(self.content)

    @classmethod
    def from_path(cls, path: str) -> "UploadFile":
        name = os.path.basename(path)
        mime_type, _ = mimetypes.guess_type(name)
        with open(path, "rb") as handle:
            content = handle.read()
        return cls(name=name, content=content, mime_type=mime_type or "application/octet-stream")
