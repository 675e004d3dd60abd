"""
core/exceptions.py
------------------
Errores tipados del tracker de señales.

Ninguno de estos errores es fatal salvo StoreUnavailable durante el arranque;
el resto se registra en logs y se reintenta en el siguiente ciclo.
"""


class TrackerError(Exception):
    """Base de todos los errores del tracker."""


class SignalNotFound(TrackerError):
    def __init__(self, signal_id: str):
        super().__init__(f"Signal not found: {signal_id}")
        self.signal_id = signal_id


class SignalAlreadyClosed(TrackerError):
    """
    Se intentó forzar una transición sobre una señal que ya está en un
    estado terminal (COMPLETED / STOPPED).
    """

    def __init__(self, signal_id: str, status: str):
        super().__init__(f"Signal {signal_id} is already {status}")
        self.signal_id = signal_id
        self.status = status


class StoreUnavailable(TrackerError):
    """El backend de persistencia no responde (SQLite bloqueado, disco, etc)."""


class PriceUnavailable(TrackerError):
    def __init__(self, pair: str, reason: str = ""):
        msg = f"Price unavailable for {pair}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
        self.pair = pair
        self.reason = reason


class UnknownSourceChannel(TrackerError):
    def __init__(self, channel_id: str):
        super().__init__(f"No destination channel configured for source {channel_id}")
        self.channel_id = channel_id
