"""Exception taxonomy.

None of these escape a public engine operation; they travel between the
storage / effect layers and the code that recovers from them.
"""


class StoppclockError(Exception):
    """Base class for all Stoppclock errors."""


class StorageUnavailable(StoppclockError):
    """The key-value store could not be read or written."""


class MalformedRecord(StoppclockError):
    """Stored JSON could not be parsed or has the wrong shape."""


class EffectUnavailable(StoppclockError):
    """An audio or flash backend is missing or blocked."""
