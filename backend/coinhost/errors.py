"""Domain error taxonomy.

Every error carries the HTTP status the API layer answers with, so the
blueprints never need per-route mapping tables.
"""


class CoinhostError(Exception):
    status_code = 400

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    def to_dict(self):
        return {'error': self.message}


class ValidationError(CoinhostError):
    def __init__(self, message, field=None):
        super().__init__(message)
        self.field = field

    def to_dict(self):
        payload = super().to_dict()
        if self.field:
            payload['field'] = self.field
        return payload


class InsufficientFunds(CoinhostError):
    pass


class AccountNotFound(CoinhostError):
    status_code = 404


class DuplicateAccount(CoinhostError):
    status_code = 409


class ResourceNotFound(CoinhostError):
    status_code = 404


class ResourceExpired(CoinhostError):
    pass


class ResourceNotActive(CoinhostError):
    status_code = 409


PASSTHROUGH_UPSTREAM_STATUSES = (400, 404, 429)


class ExternalServiceError(CoinhostError):
    status_code = 502

    def __init__(self, message, upstream_status=None):
        super().__init__(message)
        self.upstream_status = upstream_status
        # Anything else from upstream surfaces as 502
        if upstream_status in PASSTHROUGH_UPSTREAM_STATUSES:
            self.status_code = upstream_status


class StorageError(CoinhostError):
    status_code = 500

    def to_dict(self):
        return {'error': 'Storage failure'}


class Unauthenticated(CoinhostError):
    status_code = 401


class Forbidden(CoinhostError):
    status_code = 403
