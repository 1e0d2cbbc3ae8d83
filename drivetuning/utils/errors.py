# drivetuning/utils/errors.py
"""
Domain errors raised by services and mapped to HTTP status codes by routers.
The scoring/lookup core never raises these; only the persistence-backed
workflows (contributions, recompute) do.
"""


class DriveTuningError(Exception):
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(DriveTuningError):
    status_code = 400


class PermissionDeniedError(DriveTuningError):
    status_code = 403


class NotFoundError(DriveTuningError):
    status_code = 404


class ConflictError(DriveTuningError):
    status_code = 409
