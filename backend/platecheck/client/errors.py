from typing import Optional


class AnalysisClientError(Exception):
    """Error envelope returned by the API, or a failure to reach it"""
    def __init__(self, message: str, code: str = "CLIENT_ERROR", status_code: Optional[int] = None):
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(self.message)


class TransientClientError(AnalysisClientError):
    """Worth retrying: network trouble or a 5xx answer"""


class QuotaExceededClientError(AnalysisClientError):
    """The free plan limit has been reached"""


class JobNotFoundClientError(AnalysisClientError):
    """Unknown job, or a job that belongs to someone else"""
