class PortfolioEngineError(Exception):
    pass


class InvalidInputError(PortfolioEngineError, ValueError):
    pass


class InvalidTargetsError(InvalidInputError):
    def __init__(self, total: float) -> None:
        self.total = total
        super().__init__(f"Target allocations sum to {total:.1f}% instead of 100%")


class MarketDataError(PortfolioEngineError):
    pass


class AnalysisUnavailableError(PortfolioEngineError):
    pass
