from __future__ import annotations


class LuckyDrawError(Exception):
    """Base class for errors raised by the draw service."""


class ConfigError(LuckyDrawError):
    """Startup configuration is missing or unusable."""


class MissingField(LuckyDrawError):
    def __init__(self, field: str):
        super().__init__(f"missing field: {field}")
        self.field = field


class StoreUnavailable(LuckyDrawError):
    """The backing store timed out or failed."""


class SheetNotFound(StoreUnavailable):
    def __init__(self, title: str):
        super().__init__(f"worksheet not found: {title}")
        self.title = title


class NoPrizesConfigured(LuckyDrawError):
    def __init__(self):
        super().__init__("no prizes configured")
