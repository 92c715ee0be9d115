"""Error taxonomy surfaced to the admin API.

``indeterminate`` is only ever true when a network failure happened while a
create/update call was in flight: the orchestrator may or may not have applied it.
"""
from __future__ import annotations


class TSRError(Exception):
    status_code = 500
    indeterminate = False

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)


class CorruptConfig(TSRError):
    """A configuration file exists but cannot be parsed."""

    status_code = 500


class PreconditionViolation(TSRError):
    """Operation invoked out of order (e.g. HTTP/3 toggle before bootstrap)."""

    status_code = 409


class OrchestratorUnavailable(TSRError):
    status_code = 503


class VersionConflict(TSRError):
    """The service changed since it was inspected."""

    status_code = 409


class OrchestratorRejected(TSRError):
    status_code = 422


class IndeterminateUpdate(TSRError):
    status_code = 502
    indeterminate = True


class ImagePullFailure(TSRError):
    status_code = 502
