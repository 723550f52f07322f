"""
Exception hierarchy shared by the routing, session and persistence layers.
"""


class ParleyError(Exception):
    """Base class for all application errors"""


class ValidationError(ParleyError):
    """Inbound request failed boundary validation (e.g. empty message)"""


class ProviderError(ParleyError):
    """The generation provider failed, timed out or returned nothing usable"""


class PersistenceError(ParleyError):
    """The exchange store could not complete an operation"""


class TitleSynthesisError(ParleyError):
    """A conversation title could not be derived from its first message"""
