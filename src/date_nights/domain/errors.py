"""Error taxonomy for the date night flows.

Every error carries a short human-readable ``message`` that the flow
boundaries show to the visitor as a notice.
"""


class DateNightsError(Exception):
    """Base class for all application errors."""

    default_message = "Something went wrong."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthError(DateNightsError):
    """Identity provider failure."""

    default_message = "Sign-in failed."


class AuthExchangeError(AuthError):
    """The authorization code could not be exchanged for a session."""

    default_message = "Could not complete sign-in."


class NoSessionError(AuthError):
    """No session became visible within the poll budget."""

    default_message = (
        "Signed in, but no session found. "
        "Open the link in the same browser you used to request it."
    )


class SessionReadError(AuthError):
    """Reading the current session failed."""

    default_message = "Could not read the current session."


class MagicLinkError(AuthError):
    """Sending the magic link failed."""

    default_message = "Could not send the sign-in link."


class InvalidEmailError(AuthError):
    """The email address is blank."""

    default_message = "Enter an email address."


class SignOutError(AuthError):
    """Ending the session failed."""

    default_message = "Could not sign out."


class StoreError(DateNightsError):
    """A relational store request was rejected.

    ``code`` is the structured error code when the store reports one
    (for Postgres, the SQLSTATE); ``message`` is the raw text.
    """

    default_message = "The request was rejected."

    def __init__(self, message: str | None = None, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class MembershipFullError(DateNightsError):
    """The couple already has two members."""

    default_message = "This timeline already has two members."


class MembershipOtherError(DateNightsError):
    """Joining failed for a reason other than a duplicate or a full couple."""

    default_message = "Failed to join timeline."


class CoupleCreateError(DateNightsError):
    """Creating a couple or its founding membership failed."""

    default_message = "Failed to create timeline."


class FeedLoadError(DateNightsError):
    """Entries could not be fetched."""

    default_message = "Failed to load entries."


class InvalidEntryError(DateNightsError):
    """A new entry is missing required fields."""

    default_message = "Add a short description."


class EntryPersistError(DateNightsError):
    """Writing an entry row failed."""

    default_message = "Failed to save entry."


class UploadError(DateNightsError):
    """Uploading a photo failed."""

    default_message = "Failed to upload photo."


class SignedUrlError(DateNightsError):
    """A signed download URL could not be minted."""

    default_message = "Failed to sign photo URL."
