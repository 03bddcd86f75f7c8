class CommitAnalysisError(Exception):
    """Base exception for commit analysis errors"""


class InvalidAnalysisRequestError(CommitAnalysisError):
    """Raised when owner, repo or commit sha is missing or blank"""


class CommitSourceError(CommitAnalysisError):
    """Raised when the commit diff or metadata cannot be fetched"""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code
