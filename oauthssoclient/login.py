import logging
import time
from urllib.parse import urlencode

from django.contrib import auth, messages
from django.http import HttpResponseRedirect

from oauthssoclient.accounts import AccountResolver, is_approved, is_email_verified
from oauthssoclient.conf import SsoConfig, login_path
from oauthssoclient.debug import DebugLogger, mask
from oauthssoclient.exceptions import ErrorKind, IdentityProviderError, SsoError
from oauthssoclient.models import UserSetting
from oauthssoclient.notifications import AdminNotifier
from oauthssoclient.provider import OAuth2Provider
from oauthssoclient.session import (
    INITIATING_USER_KEY, LOGIN_FAILED_KEY, LOGIN_FAILED_PARAM, PKCE_KEY, STATE_KEY, SsoSession,
    identity_of,
)

logger = logging.getLogger(__name__)
audit = logging.getLogger('oauthssoclient.audit')
security = logging.getLogger('oauthssoclient.security')

COOKIES_MESSAGE = 'You cannot sign in because your browser does not accept cookies.'
START_FAILED_MESSAGE = 'Failed to start single sign-on. Please try again.'
NOT_VERIFIED_MESSAGE = ('This account has not been verified. '
                        'Please check your email for a verification message.')
PENDING_APPROVAL_MESSAGE = ('Your account is pending administrator approval. You have limited '
                            'access until approved. You will be notified via email once approved.')

# How each kind of failure is reported: log prefix and the message shown to
# the user. A message of None shows the exception's own message.
FAILURES = {
    ErrorKind.COOKIES_REJECTED: ('SSO login failed', COOKIES_MESSAGE),
    ErrorKind.CONFIGURATION: (
        'Configuration error',
        'Single sign-on is not configured correctly. Please contact the administrator.'),
    ErrorKind.SECURITY: (
        'Security violation',
        'Security violation: the login was initiated by a different user. Please try again.'),
    ErrorKind.STATE_VALIDATION: (
        'State validation failed',
        'Security validation failed. This may be a CSRF attack. Please try again.'),
    ErrorKind.TOKEN_EXCHANGE: (
        'Token exchange failed',
        'Failed to communicate with the identity provider. Please try again.'),
    ErrorKind.USER_DATA: (
        'Invalid user data',
        'The identity provider did not provide valid user information. '
        'Please contact the administrator.'),
    ErrorKind.USER_CREATION: ('User creation failed', None),
    ErrorKind.LOGIN: ('Login failed', None),
    ErrorKind.UNEXPECTED: (
        'Unexpected error',
        'An unexpected error occurred. Please contact the administrator.'),
}


class LoginAction:
    """Authorization code login, both legs on one path.

    Without a ``code`` parameter the request starts the flow: the CSRF state,
    the PKCE verifier and the identity of whoever started it go into the
    session and the browser is sent to the identity provider. With a ``code``
    the request is the provider's callback and runs the checks in order (user
    switch, state, then token exchange, profile, account) before logging the
    user in. Every outcome is a redirect; failures redirect home with a flash
    message and the session entries of the attempt are always removed.

    Not thread safe; the middleware creates one per request.
    """

    provider_class = OAuth2Provider

    def __init__(self, config=None, notifier=None):
        self.config = config
        self.notifier = notifier

    def handle(self, request):
        if self.config is None:
            self.config = SsoConfig()
        self.debug = DebugLogger(self.config.flag('debugEnabled'))
        if self.notifier is None:
            self.notifier = AdminNotifier(debug=self.debug)
        self.sso = SsoSession(request.session)

        self.debug.log_request('SSO Request Start', {
            'method': request.method,
            'path': request.path,
            'authenticated': self.describe_user(request.user),
        })

        if not request.COOKIES:
            self.debug.log('Cookie validation failed - no cookies present')
            return self.fail(request, SsoError(ErrorKind.COOKIES_REJECTED, 'no session cookies'))

        try:
            self.config.validate()
            provider = self.create_provider(request)
        except SsoError as e:
            if 'code' in request.GET:
                self.sso.clear_attempt()
            return self.fail(request, e)

        if 'code' not in request.GET:
            return self.authorize(request, provider)
        return self.callback(request, provider)

    def authorize(self, request, provider):
        try:
            initiator = identity_of(request.user)
            self.sso.put(INITIATING_USER_KEY, initiator)
            self.debug.log('Saved initiating user to session', {'user_id': initiator})

            url = provider.get_authorization_url()
            self.sso.put(STATE_KEY, provider.get_state())
            pkce_code = provider.get_pkce_code()
            if pkce_code is not None:
                self.sso.put(PKCE_KEY, pkce_code)
                self.debug.log('PKCE enabled - code saved to session')
            else:
                self.sso.forget(PKCE_KEY)

            self.debug.log('Redirecting to authorization URL', {'url': url})
            return HttpResponseRedirect(url)
        except Exception as e:
            logger.error('Authorization initiation failed: %s', e, exc_info=True)
            self.sso.put(LOGIN_FAILED_KEY, True)
            messages.error(request, START_FAILED_MESSAGE, fail_silently=True)
            return self.redirect_home()

    def callback(self, request, provider):
        code = request.GET['code']
        try:
            if request.user.is_authenticated:
                self.debug.log('User already logged in - skipping OAuth processing',
                               {'user': request.user.get_username()})
                return self.redirect_home()

            self.detect_user_switch(request)
            self.validate_state(request)

            pkce_code = self.sso.get(PKCE_KEY, '')
            if pkce_code:
                provider.set_pkce_code(pkce_code)
                self.debug.log('PKCE code loaded from session')

            token = self.exchange_code_for_token(provider, code)
            owner = self.get_user_data(provider, token)
            self.validate_user_data(owner)

            resolver = AccountResolver(notifier=self.notifier, request=request, debug=self.debug)
            user = resolver.resolve(owner.external_id, owner.email, owner.username,
                                    self.config.flag('allowCreation'))
            if self.config.flag('syncEmail'):
                self.sync_email(request, resolver, user, owner.email)

            self.login(request, user)
            self.report_account_status(request, user)
            self.debug.log('Login successful', {'user': user.get_username(), 'timestamp': time.time()})
            return self.redirect_home()
        except SsoError as e:
            return self.fail(request, e, code=code)
        except Exception as e:
            return self.fail(request, SsoError(ErrorKind.UNEXPECTED, str(e)), exc_info=True)
        finally:
            self.sso.clear_attempt()

    def create_provider(self, request):
        redirect_uri = self.config.get('redirectUri') or request.build_absolute_uri(login_path())
        self.debug.log('OAuth provider configuration', {
            'redirectUri': redirect_uri,
            'client_id': mask(self.config.get('clientId')),
            'urlAuthorize': self.config.get('urlAuthorize'),
            'pkceMethod': self.config.pkce_method,
        })
        return self.provider_class.from_config(self.config, redirect_uri)

    def detect_user_switch(self, request):
        initiator = self.sso.get(INITIATING_USER_KEY)
        current = identity_of(request.user)
        if initiator is not None and initiator != current:
            self.debug.log('User switch detected - security violation',
                           {'initiating_user_id': initiator, 'current_user_id': current})
            raise SsoError(ErrorKind.SECURITY,
                           f'Login initiated by {initiator} completed by {current}')

    def validate_state(self, request):
        state = request.GET.get('state')
        if not state:
            raise SsoError(ErrorKind.STATE_VALIDATION, 'State parameter is missing')
        if not self.sso.has(STATE_KEY):
            raise SsoError(ErrorKind.STATE_VALIDATION, 'No state found in session')
        if state != self.sso.get(STATE_KEY):
            raise SsoError(ErrorKind.STATE_VALIDATION, 'State mismatch - possible CSRF attack')

    def exchange_code_for_token(self, provider, code):
        try:
            token = provider.get_access_token('authorization_code', code=code)
        except IdentityProviderError as e:
            self.debug.log('Token exchange failed', {'error': str(e), 'code_length': len(code)})
            if 'redirect_uri_mismatch' in str(e):
                logger.error('Redirect URI mismatch. Sent %r; configure the OAuth client on the '
                             'identity provider with exactly this value.', provider.redirect_uri)
            raise SsoError(ErrorKind.TOKEN_EXCHANGE, str(e)) from e
        self.debug.log('Access token received')
        return token

    def get_user_data(self, provider, token):
        try:
            owner = provider.get_resource_owner(token)
        except Exception as e:
            raise SsoError(ErrorKind.USER_DATA, f'Failed to retrieve user data: {e}') from e
        self.debug.log('User data retrieved', {
            'external_id': owner.external_id or 'missing',
            'username': owner.username or 'missing',
            'email': owner.email or 'missing',
        })
        return owner

    def validate_user_data(self, owner):
        if not owner.external_id:
            raise SsoError(ErrorKind.USER_DATA, 'External user ID is missing')
        if not owner.email:
            raise SsoError(ErrorKind.USER_DATA, 'User email is missing')
        if not owner.username:
            raise SsoError(ErrorKind.USER_DATA, 'Username is missing')

    def sync_email(self, request, resolver, user, email):
        old_email = user.email
        if not resolver.sync_email(user, email):
            return
        audit.info('SSO: email synchronized for user %s from %s to %s',
                   user.get_username(), old_email, email)
        messages.info(request, f'Your email address has been synchronized with the identity '
                               f'provider: {email}', fail_silently=True)
        self.debug.log('Email synchronized', {'user': user.get_username(),
                                              'old_email': old_email, 'new_email': email})

    def login(self, request, user):
        # Approval and verification only restrict access after login; an
        # account deactivated by the host is the one thing that blocks it.
        if not user.is_active:
            raise SsoError(ErrorKind.LOGIN,
                           'This account has been disabled. Please contact the administrator.')
        auth.login(request, user, backend=self.config.auth_backend)
        audit.info('SSO login: %s', user.get_username())
        UserSetting.set_value(user, UserSetting.TIMESTAMP_ACTIVE, str(int(time.time())))

    def report_account_status(self, request, user):
        if not is_email_verified(user):
            messages.warning(request, NOT_VERIFIED_MESSAGE, fail_silently=True)
            self.debug.log('User logged in but email not verified', {'user': user.get_username()})
        elif not is_approved(user):
            messages.warning(request, PENDING_APPROVAL_MESSAGE, fail_silently=True)
            self.debug.log('User logged in but not approved - restricted access',
                           {'user': user.get_username()})
            self.notifier.notify_pending(user, request)

    def fail(self, request, error, code=None, exc_info=False):
        label, message = FAILURES[error.kind]
        if error.kind is ErrorKind.COOKIES_REJECTED:
            audit.info('%s (%s)', label, error.message)
        else:
            logger.error('%s: %s', label, error.message, exc_info=exc_info)
        if error.kind.is_security:
            security.warning('%s from %s: %s', label, request.META.get('REMOTE_ADDR'), error.message)
        if error.kind is ErrorKind.TOKEN_EXCHANGE and code:
            logger.error('Token exchange failed for code %s', mask(code))
        self.debug.log(label, {'error': error.message, 'code': code})

        self.sso.put(LOGIN_FAILED_KEY, True)
        messages.error(request, message or error.message, fail_silently=True)
        # The session flag never comes back from a browser that drops cookies.
        return self.redirect_home(marked=error.kind is ErrorKind.COOKIES_REJECTED)

    def redirect_home(self, marked=False):
        url = self.config.home_url
        if marked:
            separator = '&' if '?' in url else '?'
            url = f'{url}{separator}{urlencode({LOGIN_FAILED_PARAM: 1})}'
        return HttpResponseRedirect(url)

    def describe_user(self, user):
        if user.is_authenticated:
            return f'Yes (User: {user.get_username()})'
        return 'No'
