import hmac
import html
import logging
import secrets
import time
from urllib.parse import urlencode, urlsplit

from django.contrib import auth
from django.core.cache import cache
from django.core.exceptions import ImproperlyConfigured
from django.core.validators import URLValidator
from django.http import HttpResponseRedirect
from django.utils.module_loading import import_string

from oauthssoclient.conf import SsoConfig, logout_bridge_path
from oauthssoclient.debug import DebugLogger

logger = logging.getLogger(__name__)
audit = logging.getLogger('oauthssoclient.audit')

TOKEN_LIFETIME = 60
CACHE_PREFIX = 'sso_logout:'
SAFE_DEFAULT = '/'


class LogoutTokenStore:
    """One-time logout tokens kept in the Django cache.

    The host session is flushed by the logout itself, so the token lives in
    the cache under a separate random id (``sid``) that travels with it in the
    bridge URL. A token verifies once, within ``lifetime`` seconds; every
    verification attempt removes the stored entry, matched or not.
    """

    def __init__(self, backend=None, lifetime=TOKEN_LIFETIME, clock=time.time):
        self.cache = backend or cache
        self.lifetime = lifetime
        self.clock = clock

    def key(self, sid):
        return f'{CACHE_PREFIX}{sid}'

    def mint(self):
        token = secrets.token_hex(32)
        sid = secrets.token_urlsafe(16)
        self.cache.set(self.key(sid), {'token': token, 'time': self.clock()}, timeout=self.lifetime)
        return token, sid

    def verify(self, token, sid):
        if not sid:
            return False
        key = self.key(sid)
        stored = self.cache.get(key)
        # Whoever deletes the entry owns it; a concurrent request for the same
        # sid sees False here.
        if stored is None or not self.cache.delete(key):
            return False
        if not token:
            return False
        if not hmac.compare_digest(stored['token'].encode(), token.encode()):
            return False
        return self.clock() - stored['time'] < self.lifetime


class IdpEnvironment:
    """What the logout bridge needs from the identity provider."""

    def logout_url(self, redirect_to):
        raise NotImplementedError

    def home_url(self):
        raise NotImplementedError


# Builds the provider's logout URL from configuration: ``urlLogout`` plus the
# post-logout target and a freshly minted nonce.
class ConfiguredIdpEnvironment(IdpEnvironment):
    redirect_param = 'redirect_to'
    nonce_param = '_wpnonce'

    def __init__(self, config):
        self.url_logout = config.get('urlLogout')
        self.url_home = config.get('urlHome')
        if not self.url_logout:
            raise ImproperlyConfigured('urlLogout is not configured')

    def make_nonce(self):
        return secrets.token_hex(16)

    def logout_url(self, redirect_to):
        query = urlencode({self.redirect_param: redirect_to, self.nonce_param: self.make_nonce()})
        separator = '&' if '?' in self.url_logout else '?'
        return f'{self.url_logout}{separator}{query}'

    def home_url(self):
        if self.url_home:
            return self.url_home
        parts = urlsplit(self.url_logout)
        return f'{parts.scheme}://{parts.netloc}/'


# First leg: runs inside the host app while the user is still logged in.
class LogoutAction:
    def __init__(self, store=None, config=None):
        self.store = store or LogoutTokenStore()
        self.config = config

    def handle(self, request):
        config = self.config or SsoConfig()
        debug = DebugLogger(config.flag('debugEnabled'))
        username = request.user.get_username() if request.user.is_authenticated else None

        # Mint before logging out: auth.logout() flushes the session.
        token, sid = self.store.mint()
        auth.logout(request)
        if username:
            audit.info('SSO logout: %s', username)

        bridge_url = request.build_absolute_uri(logout_bridge_path())
        debug.log('Logout initiated', {'token': token, 'sid': sid, 'url': bridge_url})
        return HttpResponseRedirect(f'{bridge_url}?{urlencode({"token": token, "sid": sid})}')


# Second leg: a standalone endpoint, reached after the host session is gone.
class LogoutBridge:
    def __init__(self, store=None, config=None):
        self.store = store or LogoutTokenStore()
        self.config = config
        self.validate_url = URLValidator()

    def handle(self, request):
        token = request.GET.get('token', '')
        sid = request.GET.get('sid', '')
        if not self.store.verify(token, sid):
            logger.warning('Logout bridge rejected a token from %s', request.META.get('REMOTE_ADDR'))
            return HttpResponseRedirect(SAFE_DEFAULT)

        try:
            config = self.config or SsoConfig()
            environment = self.load_environment(config)
            logout_url = html.unescape(environment.logout_url(environment.home_url()))
            self.validate_url(logout_url)
        except Exception as e:
            logger.error('Could not build the identity provider logout URL: %s', e)
            return HttpResponseRedirect(SAFE_DEFAULT)

        DebugLogger(config.flag('debugEnabled')).log('Redirecting to identity provider logout',
                                                     {'url': logout_url})
        return HttpResponseRedirect(logout_url)

    def load_environment(self, config):
        return import_string(config.idp_environment)(config)
