"""Exception taxonomy shared by the converters, the sync engine and the client.

Recovery happens at different layers:

- ``InputValidationError`` and its subclasses abort an operation before any
  network call and are shown to the user. Inside a work-log batch they fail
  only the offending entry.
- ``TranslationFailure`` never leaves the converters; they fall back to the
  untransformed input.
- ``CompileError`` never leaves the expression compiler; the affected
  mapping is dropped.
- ``RemoteRequestError`` aborts the operation and carries the response body.

Partial batch failures are not exceptions; they are collected into
``BatchReport.failures`` (see ``jira_note_sync.sync.models``).
"""


class JiraSyncError(Exception):
    """Base class for all errors raised by jira_note_sync."""


class InputValidationError(JiraSyncError, ValueError):
    """Local input is invalid; raised before anything is sent to Jira."""


class MissingRequiredFieldError(InputValidationError):
    """A create request lacks one or more mandatory fields."""

    def __init__(self, fields: list[str]):
        self.fields = list(fields)
        super().__init__(
            f"Missing required fields for issue creation: {', '.join(self.fields)}"
        )


class MissingIssueKeyError(InputValidationError):
    """The document has no ``key`` in its frontmatter."""

    def __init__(self, document: str = ""):
        self.document = document
        where = f" in {document}" if document else ""
        super().__init__(f"No issue key found{where}")


class InvalidDurationError(InputValidationError):
    """A work-log duration does not match the duration grammar."""


class InvalidTimestampError(InputValidationError):
    """A work-log start time could not be parsed."""


class InvalidWorkLogEntryError(InputValidationError):
    """A work-log batch item is not a mapping or holds unusable values.

    The message is the grouping reason; ``detail`` says which entry and why.
    """

    def __init__(self, reason: str, detail: str = ""):
        self.detail = detail
        super().__init__(reason)


class TranslationFailure(JiraSyncError):
    """A markup rewrite rule failed internally."""

    def __init__(self, rule: str, cause: Exception | None = None):
        self.rule = rule
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Markup rule '{rule}' failed{detail}")


class CompileError(JiraSyncError):
    """A custom mapping expression was rejected."""

    def __init__(self, reason: str, source: str = ""):
        self.reason = reason
        self.source = source
        super().__init__(reason)


class RemoteRequestError(JiraSyncError):
    """Jira answered with a non-2xx status."""

    def __init__(
        self,
        status_code: int,
        body: str = "",
        method: str = "",
        path: str = "",
    ):
        self.status_code = status_code
        self.body = body
        self.method = method
        self.path = path
        request = f" {method} {path}".rstrip() if method else ""
        super().__init__(
            f"Jira request failed{request}: HTTP {status_code} {body}".rstrip()
        )
