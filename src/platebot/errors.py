from __future__ import annotations


class PlatebotError(Exception):
    pass


class ServiceError(PlatebotError):
    def __init__(self, service: str, message: str) -> None:
        super().__init__(f"{service}: {message}")
        self.service = service
        self.message = message
