from typing import Optional


class MediaDashError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthFailure(MediaDashError):
    pass


class NetworkFailure(MediaDashError):
    pass


class ValidationFailure(MediaDashError):
    pass


class NotFoundOrForbidden(MediaDashError):
    pass
