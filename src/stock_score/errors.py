"""Error taxonomy for stock analysis."""


class AnalysisError(Exception):
    """Base class for failures reported by an analysis run."""

    pass


class AnalysisUsageError(AnalysisError, ValueError):
    """Raised before any I/O when the analysis is misconfigured (e.g. no stock code)."""

    pass


class RequiredDataError(AnalysisError):
    """Raised when price history, the one required dependency, cannot be fetched."""

    def __init__(self, stock_code: str, message: str):
        super().__init__(f"{stock_code}: {message}")
        self.stock_code = stock_code


class AnalysisCancelledError(AnalysisError):
    """Raised when the caller's cancellation signal fires during an analysis."""

    def __init__(self, stock_code: str):
        super().__init__(f"Analysis of {stock_code} was cancelled")
        self.stock_code = stock_code


class ProviderError(Exception):
    """Raised by a data provider on network or parse failure."""

    def __init__(self, message: str, last_error: Exception | None = None):
        super().__init__(message)
        self.last_error = last_error
