class TradeBrainError(Exception):
    """Base class for every error raised inside the learning core."""
    code = "internal"


class InvalidInputError(TradeBrainError):
    """Malformed caller input: missing trade fields, empty context, bad values."""
    code = "invalid_input"


class TradeNotFoundError(TradeBrainError):
    """Outcome/progress call against an id that is not an Active trade."""
    code = "trade_not_found"

    def __init__(self, trade_id: str):
        super().__init__(f"Trade {trade_id} not found in active trades")
        self.trade_id = trade_id


class PersistenceError(TradeBrainError):
    code = "persistence"
