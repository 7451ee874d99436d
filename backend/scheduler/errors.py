from __future__ import annotations

from config.domain_exceptions import DomainError, UnauthorizedError


class TargetResolutionError(DomainError):
    """A trigger's target no longer resolves to any runnable test."""

    def __init__(self, message: str, *, code: str = "") -> None:
        super().__init__(message)
        self.code = code


class InvalidExecutionTransition(DomainError):
    pass


class WebhookSecretMismatch(UnauthorizedError):
    pass
