"""Errors raised while crawling. Everything derives from CrawlerError."""


class CrawlerError(Exception):
    """Base class for crawl failures."""


class NotFoundError(CrawlerError):
    """HTTP 404. Terminal, never retried."""

    def __init__(self, url: str) -> None:
        super().__init__(f'not found "{url}"')
        self.url = url


class UnreadableBodyError(CrawlerError):
    """Response arrived but its body could not be read."""

    def __init__(self, url: str) -> None:
        super().__init__(f'unable to read the response body of "{url}"')
        self.url = url


class RetryLimitExceeded(CrawlerError):
    """Transient failures (connection issues, 429) outlasted the retry budget."""

    def __init__(self, url: str, attempts: int) -> None:
        super().__init__(f'gave up on "{url}" after {attempts} attempts')
        self.url = url
        self.attempts = attempts


class PayloadError(CrawlerError):
    """The site's data no longer has the expected shape, or the account is inaccessible."""


class MissingPayloadError(PayloadError):
    def __init__(self) -> None:
        super().__init__("couldn't find window._sharedData")


class MissingQueryIdError(PayloadError):
    def __init__(self, reason: str = "") -> None:
        msg = "couldn't find queryId"
        super().__init__(f"{msg}: {reason}" if reason else msg)


class InvalidJsonError(PayloadError):
    def __init__(self, what: str, raw: str | bytes) -> None:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        # Payloads can be huge; keep the message readable
        snippet = raw if len(raw) <= 200 else raw[:200] + "..."
        super().__init__(f'invalid {what} json "{snippet}"')


class PrivateAccountError(PayloadError):
    def __init__(self, username: str) -> None:
        super().__init__(f'"{username}" is private account')
        self.username = username


class MissingUserIdError(PayloadError):
    def __init__(self) -> None:
        super().__init__("couldn't find userId")


class MissingSignatureSeedError(PayloadError):
    def __init__(self) -> None:
        super().__init__("couldn't find rhx-gis")


class ProfileImageMissingError(PayloadError):
    def __init__(self) -> None:
        super().__init__("profile image missing")
