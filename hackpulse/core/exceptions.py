class HackPulseError(Exception):
    """Base error for rejected operations. ``reason`` is safe to show to users."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class NotFoundError(HackPulseError):
    pass


class StateTransitionError(HackPulseError):
    """An event lifecycle move that the current status does not allow."""


class JoinRejectedError(HackPulseError):
    pass


class ScoreLockedError(HackPulseError):
    pass
