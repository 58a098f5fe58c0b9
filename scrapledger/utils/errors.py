"""Custom exceptions for the reporting engine"""


class ReportingError(Exception):
    """Base exception for reporting engine errors"""
    pass


class SourceUnavailableError(ReportingError):
    """Initial fetch or subscription against a data source failed"""

    def __init__(self, message: str, source: str = None):
        super().__init__(message)
        self.source = source


class MalformedRecordError(ReportingError):
    """Raw record is missing a required identity field"""

    def __init__(self, message: str, record_id=None):
        super().__init__(message)
        self.record_id = record_id


class StaleComputationError(ReportingError):
    """Aggregation result superseded by a newer request"""

    def __init__(self, request_id: int, latest_id: int):
        super().__init__(f"Computation {request_id} superseded by {latest_id}")
        self.request_id = request_id
        self.latest_id = latest_id


class InvalidFilterError(ReportingError):
    """Caller-supplied filter criteria rejected before aggregation"""
    pass


class ConfigurationError(ReportingError):
    """Configuration loading errors"""
    pass
