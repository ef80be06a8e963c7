import enum


class ErrorKind(enum.Enum):
    COOKIES_REJECTED = 'cookies_rejected'
    CONFIGURATION = 'configuration'
    SECURITY = 'security'
    STATE_VALIDATION = 'state_validation'
    TOKEN_EXCHANGE = 'token_exchange'
    USER_DATA = 'user_data'
    USER_CREATION = 'user_creation'
    LOGIN = 'login'
    UNEXPECTED = 'unexpected'

    @property
    def is_security(self):
        return self in (ErrorKind.SECURITY, ErrorKind.STATE_VALIDATION)


# Raised by every stage of the login flow. The kind decides how the failure
# is reported, the message is what gets logged (and, for some kinds, shown).
class SsoError(Exception):
    def __init__(self, kind, message):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __repr__(self):
        return f'SsoError({self.kind.name}, {self.message!r})'


# Raised by the OAuth2 client when the identity provider rejects a request or
# cannot be reached.
class IdentityProviderError(Exception):
    def __init__(self, message, error=None):
        super().__init__(message)
        self.error = error
