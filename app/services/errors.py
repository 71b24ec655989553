"""Ошибки сервисного слоя и соответствующие им HTTP-статусы."""


class ServiceError(ValueError):
    status_code = 400


class AuthenticationRequiredError(ServiceError):
    status_code = 401


class PermissionDeniedError(ServiceError):
    status_code = 403


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    status_code = 409
