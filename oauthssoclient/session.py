STATE_KEY = 'oauth2state'
PKCE_KEY = 'oauth2pkceCode'
INITIATING_USER_KEY = 'sso_initiating_user'
LOGIN_FAILED_KEY = 'sso_login_failed'
# Query marker on the home redirect for browsers that never send a session back.
LOGIN_FAILED_PARAM = 'sso_failed'

# Stored as the initiating user when the flow starts without a logged in user.
ANONYMOUS = 'anonymous'


def identity_of(user):
    if user is None or not user.is_authenticated:
        return ANONYMOUS
    return str(user.pk)


# Transient per-browser state of one login attempt, kept in the Django session.
class SsoSession:
    ATTEMPT_KEYS = (STATE_KEY, PKCE_KEY, INITIATING_USER_KEY)

    def __init__(self, session):
        self.session = session

    def get(self, key, default=None):
        return self.session.get(key, default)

    def put(self, key, value):
        self.session[key] = value

    def has(self, key):
        return key in self.session

    def forget(self, key):
        self.session.pop(key, None)

    # Removes everything a login attempt stored. Safe to call repeatedly.
    def clear_attempt(self):
        for key in self.ATTEMPT_KEYS:
            self.forget(key)
