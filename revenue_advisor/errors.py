class AdvisorError(Exception):
    """Base class for failures surfaced to the dashboard as a single message."""


class RequestError(AdvisorError):
    """The Gemini call failed: transport, auth, timeout or missing API key."""


class ParseError(AdvisorError):
    """The Gemini reply was empty, not JSON, or broke the declared schema."""
