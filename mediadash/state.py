from dataclasses import dataclass, field
from typing import Dict, Optional

import httpx

from .client import ApiClient
from .config import Settings
from .listing import ListingController
from .models import Session, SessionStatus
from .session import GuardDecision, GuardOutcome, SessionController
from .session_store import TokenStore
from .share import ShareWorkflow
from .upload import UploadCoordinator

DASHBOARD_PATH = "/dashboard"


@dataclass
class AppState:
    settings: Settings
    client: ApiClient
    session: SessionController
    listing: ListingController
    uploads: UploadCoordinator
    share_dialogs: Dict[str, ShareWorkflow] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "AppState":
        settings = settings or Settings.from_env()
        client = ApiClient(
            base_url=settings.api_url,
            timeout=settings.timeout,
            transport=transport,
            http_log_path=settings.http_log_path,
        )
        session = SessionController(client, TokenStore(settings.session_path))
        listing = ListingController(client, debounce=settings.search_debounce)
        uploads = UploadCoordinator(client, listing, max_bytes=settings.max_upload_bytes)
        state = cls(settings=settings, client=client, session=session, listing=listing, uploads=uploads)
        session.subscribe(state._on_session_change)
        return state

    def _on_session_change(self, session: Session) -> None:
        if session.status in (SessionStatus.ANONYMOUS, SessionStatus.ERROR):
            for dialog in self.share_dialogs.values():
                dialog.close()
            self.share_dialogs.clear()
            if self.listing.records or self.listing.loading:
                self.listing.reset()

    async def mount_dashboard(self, path: str = DASHBOARD_PATH) -> GuardDecision:
        decision = await self.session.ensure_authenticated(path)
        if decision.outcome is GuardOutcome.RENDER:
            await self.listing.refresh()
        return decision

    async def view_record(self, file_id: str) -> Optional[str]:
        if not await self.listing.bump_view_count(file_id):
            return None
        record = self.listing.find(file_id)
        return record.url if record else None

    def open_share(self, file_id: str, file_name: str = "") -> ShareWorkflow:
        self.close_share(file_id)
        dialog = ShareWorkflow(self.client, file_id, file_name, copied_reset=self.settings.copied_reset)
        self.share_dialogs[file_id] = dialog
        return dialog

    def close_share(self, file_id: str) -> None:
        dialog = self.share_dialogs.pop(file_id, None)
        if dialog is not None:
            dialog.close()

    async def aclose(self) -> None:
        for file_id in list(self.share_dialogs):
            self.close_share(file_id)
        await self.client.aclose()
