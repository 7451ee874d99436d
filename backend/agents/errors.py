from __future__ import annotations

from config.domain_exceptions import ConflictError, ForbiddenError


class JobTransitionError(ConflictError):
    """The job is not in a status that allows the requested change."""


class JobClaimConflict(ConflictError):
    """Another agent claimed the job first."""


class JobOwnershipError(ForbiddenError):
    """The job is not held by the calling agent."""


class AgentCapacityExceeded(ConflictError):
    pass
