"""
Terminology Errors

Error taxonomy shared by the stores, the engine and the API layer.
Each error carries the HTTP status and FHIR OperationOutcome issue code
the API reports it with.
"""


class TerminologyError(Exception):
    """Base terminology engine error."""

    status_code: int = 500
    issue_code: str = "exception"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidArgument(TerminologyError):
    """A required argument is missing or malformed."""

    status_code = 400
    issue_code = "invalid"


class NotFound(TerminologyError):
    """A CodeSystem or ConceptMap addressed by id/url does not exist."""

    status_code = 404
    issue_code = "not-found"

    def __init__(self, resource_type: str, identifier: str):
        super().__init__(f"{resource_type}/{identifier} not found")
        self.resource_type = resource_type
        self.identifier = identifier


class DuplicateResource(TerminologyError):
    """A resource with the same canonical url already exists."""

    status_code = 409
    issue_code = "duplicate"


class StoreUnavailable(TerminologyError):
    """The concept/mapping store could not be reached."""

    status_code = 503
    issue_code = "transient"
