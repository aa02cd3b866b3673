"""Error taxonomy for the metrics tool."""


class CmtError(Exception):
    """Base class for all errors raised by cmt."""


class TransportError(CmtError):
    """The admin socket could not be reached or returned a bad frame."""


class DecodeError(CmtError):
    """A metrics dump could not be turned into observations."""


class MalformedMetrics(DecodeError):
    """The dump does not have the expected document shape."""


class UnexpectedValueType(DecodeError):
    """A metric value is neither a number nor a histogram."""


class InvalidKeyEncoding(CmtError):
    """A unified key token cannot be split back into name and labels."""


class SchemaDrift(CmtError):
    """A pushed sample disagrees with the schema locked by the first sample."""

    def __init__(self, target: str, message: str):
        super().__init__(f"schema drift on '{target}': {message}")
        self.target = target


class NoMatch(CmtError):
    """A selection pattern matched no column."""


class InvalidPattern(CmtError):
    """A selection pattern is not a valid regular expression."""


class PersistenceError(CmtError):
    """A snapshot could not be written or read back."""
