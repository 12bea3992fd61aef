"""Exceptions shared by the access gate, the session lifecycle and the routes."""


class AdvisoryHubError(Exception):
    """Base class for errors raised by this application."""


class TokenInvalid(AdvisoryHubError):
    """The session token is missing, malformed, expired or fails verification."""


class UserNotFound(AdvisoryHubError):
    def __init__(self, user_id: int):
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class PersistenceError(AdvisoryHubError):
    """A read or write against the database failed."""


class RateLimitExceeded(AdvisoryHubError):
    def __init__(self, key: str, retry_after_seconds: int):
        super().__init__(f"Rate limit exceeded for {key}")
        self.key = key
        self.retry_after_seconds = retry_after_seconds
