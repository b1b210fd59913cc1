"""Error taxonomy for workflow operations.

Services raise these; the app-level handler registered in ``create_app``
turns them into ``{"error": ..., "code": ...}`` JSON responses.
"""


class WorkflowError(Exception):
    status_code = 400
    code = 'workflow_error'

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        body = {'error': self.message, 'code': self.code}
        if self.details:
            body.update(self.details)
        return body


class ValidationError(WorkflowError):
    status_code = 400
    code = 'validation_error'


class InvalidStateError(WorkflowError):
    status_code = 409
    code = 'invalid_state'


class NotFoundError(WorkflowError):
    status_code = 404
    code = 'not_found'


class PermissionDeniedError(WorkflowError):
    status_code = 403
    code = 'forbidden'
