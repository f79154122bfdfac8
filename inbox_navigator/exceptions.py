"""Exception hierarchy for the inbox navigator."""


class InboxNavigatorError(Exception):
    """Base class for all application errors."""


class IngestionError(InboxNavigatorError):
    """A single email could not be ingested."""

    def __init__(self, message: str, email_id: str = None):
        super().__init__(message)
        self.email_id = email_id


class EmbeddingUnavailableError(IngestionError):
    """No vector could be produced for an email, so it was not stored."""


class MailConnectorError(InboxNavigatorError):
    """The mail connector failed (auth, quota or transport)."""


class CalendarConnectorError(InboxNavigatorError):
    """The calendar connector failed to create an event."""


class SearchUnavailableError(InboxNavigatorError):
    """The query embedding could not be generated."""


class ChatUnavailableError(InboxNavigatorError):
    """The chat answer could not be generated."""


class NotFoundError(InboxNavigatorError):
    """A requested record does not exist for this user."""


class AgentError(InboxNavigatorError):
    """An extraction agent could not produce a result."""

    def __init__(self, agent: str, message: str):
        super().__init__(f"{agent}: {message}")
