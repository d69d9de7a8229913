"""
Game error taxonomy.

Each error carries the HTTP status the routers answer with. Precondition and
not-found errors are raised synchronously at the call site and never mutate
state; conflict and sync errors come out of the document store.
"""


class GameError(Exception):
    status_code: int = 400


class GameNotFoundError(GameError):
    status_code = 404

    def __init__(self, game_id: str):
        super().__init__(f"Game {game_id} not found")
        self.game_id = game_id


class PreconditionFailedError(GameError):
    status_code = 409


class GameNotJoinableError(PreconditionFailedError):
    def __init__(self, message: str = "Game already in progress or finished"):
        super().__init__(message)


class GameFullError(PreconditionFailedError):
    def __init__(self, message: str = "Game already full"):
        super().__init__(message)


class GameNotInProgressError(PreconditionFailedError):
    pass


class GameFinishedError(PreconditionFailedError):
    def __init__(self, message: str = "Game has already finished"):
        super().__init__(message)


class RoundAlreadyCompletedError(PreconditionFailedError):
    pass


class NotYourTurnError(PreconditionFailedError):
    def __init__(self, message: str = "Not your turn"):
        super().__init__(message)


class UnknownLetterSlotError(PreconditionFailedError):
    pass


class TeamNotFoundError(PreconditionFailedError):
    pass


class NotAuthorizedError(GameError):
    status_code = 403

    def __init__(self, message: str = "Only the game creator can do that"):
        super().__init__(message)


class InsufficientQuestionPoolError(GameError):
    status_code = 422


class TransactionConflictError(GameError):
    status_code = 503


class GameCodeExhaustedError(GameError):
    status_code = 503


class SyncError(GameError):
    """A background commit behind an optimistic update failed."""
    status_code = 503
