from __future__ import annotations


class TradeAnalysisError(ValueError):
    """Terminal, user-facing failure of a trade-history analysis."""


class EmptyInputError(TradeAnalysisError):
    pass


class InputTooLargeError(TradeAnalysisError):
    pass


class UnsupportedFormatError(TradeAnalysisError):
    def __init__(self, message: str, headers: list[str]) -> None:
        super().__init__(message)
        self.headers = headers


class NoTradesError(TradeAnalysisError):
    pass
