"""
Error taxonomy shared by the store, the aggregator and the HTTP layer.

Every error carries the HTTP status it maps to, so the API exception handler
can render any of them without knowing the concrete class.
"""


class EquipmentServiceError(Exception):
    status_code = 500
    kind = "ServerError"

    def __init__(self, message, rule=None, details=None):
        super().__init__(message)
        self.message = message
        self.rule = rule
        self.details = details

    def to_dict(self):
        body = {"error": self.kind, "message": self.message}
        if self.rule:
            body["rule"] = self.rule
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(EquipmentServiceError):
    """Client-fixable input; `rule` names the check that failed."""
    status_code = 400
    kind = "ValidationError"

    def __init__(self, rule, message, details=None):
        super().__init__(message, rule=rule, details=details)


class NotFoundError(EquipmentServiceError):
    status_code = 404
    kind = "NotFound"


class ConflictError(EquipmentServiceError):
    """A status patch kept losing the compare-and-set race."""
    status_code = 409
    kind = "Conflict"


class ServerError(EquipmentServiceError):
    """Persistence-layer failure."""
    status_code = 500
    kind = "ServerError"
