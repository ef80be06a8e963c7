from django.conf import settings

from oauthssoclient.exceptions import ErrorKind, SsoError
from oauthssoclient.models import SsoSetting

# Configuration key -> Django setting it falls back to.
SETTING_NAMES = {
    'clientId': 'SSO_CLIENT_ID',
    'clientSecret': 'SSO_CLIENT_SECRET',
    'urlAuthorize': 'SSO_URL_AUTHORIZE',
    'urlAccessToken': 'SSO_URL_ACCESS_TOKEN',
    'urlResourceOwner': 'SSO_URL_RESOURCE_OWNER',
    'urlLogout': 'SSO_URL_LOGOUT',
    'urlHome': 'SSO_URL_HOME',
    'redirectUri': 'SSO_REDIRECT_URI',
    'scope': 'SSO_SCOPE',
    'pkceMethod': 'SSO_PKCE_METHOD',
    'allowCreation': 'SSO_ALLOW_CREATION',
    'syncEmail': 'SSO_SYNC_EMAIL',
    'debugEnabled': 'SSO_DEBUG',
    'enabled': 'SSO_ENABLED',
    'homeUrl': 'SSO_CLIENT_BASE_URL',
}

DEFAULTS = {
    'pkceMethod': 'none',
    'allowCreation': '0',
    'syncEmail': '0',
    'debugEnabled': '0',
    'enabled': '0',
    'homeUrl': '/',
}

REQUIRED = [
    ('clientId', 'Client ID'),
    ('clientSecret', 'Client Secret'),
    ('urlAuthorize', 'Authorization URL'),
    ('urlAccessToken', 'Access Token URL'),
    ('urlResourceOwner', 'Resource Owner URL'),
]

PKCE_METHODS = ('S256', 'plain')

# Where the resource owner profile keeps each claim. The defaults match the
# WordPress OAuth server.
DEFAULT_CLAIM_KEYS = {
    'external_id': 'ID',
    'email': 'user_email',
    'username': 'user_login',
}

DEFAULT_LOGIN_PATH = '/sso/callback'
DEFAULT_LOGOUT_PATH = '/sso/logout'
DEFAULT_LOGOUT_BRIDGE_PATH = '/sso/logout/bridge'
DEFAULT_HTTP_TIMEOUT = 15
DEFAULT_AUTH_BACKEND = 'django.contrib.auth.backends.ModelBackend'
DEFAULT_IDP_ENVIRONMENT = 'oauthssoclient.logout.ConfiguredIdpEnvironment'


def normalize(value):
    if value is None:
        return ''
    if isinstance(value, bool):
        return '1' if value else '0'
    return str(value)


class SsoConfig:
    """Resolved single sign-on configuration.

    Values come from ``SsoSetting`` rows first (when non-empty), then from the
    Django setting named in ``SETTING_NAMES``, then from ``DEFAULTS``. All
    values are strings; flags are on when they equal ``'1'``.
    """

    def __init__(self, stored=None):
        if stored is None:
            stored = dict(SsoSetting.objects.filter(name__in=SETTING_NAMES)
                          .values_list('name', 'value'))
        self.stored = stored

    def get(self, key, default=None):
        value = normalize(self.stored.get(key))
        if value != '':
            return value
        value = normalize(getattr(settings, SETTING_NAMES[key], None))
        if value != '':
            return value
        if default is not None:
            return default
        return DEFAULTS.get(key, '')

    def flag(self, key):
        return self.get(key) == '1'

    def validate(self):
        for key, name in REQUIRED:
            if self.get(key) == '':
                raise SsoError(ErrorKind.CONFIGURATION, f'Missing configuration: {name}')
        if self.pkce_method is not None and self.pkce_method not in PKCE_METHODS:
            raise SsoError(ErrorKind.CONFIGURATION,
                           f'Unsupported PKCE method: {self.pkce_method}')

    @property
    def pkce_method(self):
        method = self.get('pkceMethod')
        return None if method in ('', 'none') else method

    @property
    def home_url(self):
        return self.get('homeUrl')

    @property
    def claim_keys(self):
        return {**DEFAULT_CLAIM_KEYS, **getattr(settings, 'SSO_CLAIM_KEYS', {})}

    @property
    def http_timeout(self):
        return getattr(settings, 'SSO_HTTP_TIMEOUT', DEFAULT_HTTP_TIMEOUT)

    @property
    def auth_backend(self):
        return getattr(settings, 'SSO_AUTH_BACKEND', DEFAULT_AUTH_BACKEND)

    @property
    def idp_environment(self):
        return getattr(settings, 'SSO_IDP_ENVIRONMENT', DEFAULT_IDP_ENVIRONMENT)


def login_path():
    return getattr(settings, 'SSO_LOGIN_PATH', DEFAULT_LOGIN_PATH)


def logout_path():
    return getattr(settings, 'SSO_LOGOUT_PATH', DEFAULT_LOGOUT_PATH)


def logout_bridge_path():
    return getattr(settings, 'SSO_LOGOUT_BRIDGE_PATH', DEFAULT_LOGOUT_BRIDGE_PATH)
