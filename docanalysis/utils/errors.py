from typing import Optional


class DocumentAnalysisError(Exception):
    """Base class for every failure raised by the analysis client."""


class CredentialError(DocumentAnalysisError):
    pass


class MissingCredential(CredentialError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"No {name} supplied. Pass it explicitly or run `docanalysis init` "
            f"(or set DOCUMENT_INTELLIGENCE_{name.upper()})"
        )


class InvalidEndpoint(CredentialError):
    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Endpoint must be an absolute http(s) URL, got {value!r}")


class InvalidInput(DocumentAnalysisError):
    """Rejected locally, before any request was sent."""


class TransportError(DocumentAnalysisError):
    """The service could not be reached or the connection broke mid-request."""


class RequestRejected(DocumentAnalysisError):
    def __init__(self, status_code: int, body: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        detail = f": {body[:500]}" if body else ""
        super().__init__(f"Service responded with HTTP {status_code}{detail}")


class InvalidResponse(DocumentAnalysisError):
    """A successful response whose body could not be understood."""


class WaitBudgetExhausted(DocumentAnalysisError):
    def __init__(self, result):
        self.result = result
        super().__init__(
            f"Analysis {result.result_id} still '{result.status.value}' "
            f"when the wait budget ran out"
        )
