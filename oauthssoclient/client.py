from django.conf import settings
from django.http import HttpResponseRedirect

from oauthssoclient.conf import SsoConfig, login_path, logout_bridge_path, logout_path
from oauthssoclient.login import LoginAction
from oauthssoclient.logout import LogoutAction, LogoutBridge
from oauthssoclient.session import LOGIN_FAILED_KEY, LOGIN_FAILED_PARAM


# Goes after the session, authentication and message middleware.
class OAuthSsoClientMiddleware:
    login_action_class = LoginAction
    logout_action_class = LogoutAction
    logout_bridge_class = LogoutBridge

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        if request.path == login_path():
            return self.sso_login(request)
        elif request.path == logout_path():
            return self.sso_logout(request)
        elif request.path == logout_bridge_path():
            return self.sso_logout_bridge(request)
        else:
            return self.sso_passthru(request)

    def sso_login(self, request):
        return self.login_action_class().handle(request)

    def sso_logout(self, request):
        return self.logout_action_class().handle(request)

    def sso_logout_bridge(self, request):
        return self.logout_bridge_class().handle(request)

    # Sends anonymous visitors into the login flow when seamless login is
    # enabled. After a failed attempt the next request is let through once so
    # the failure can be shown instead of looping back to the provider.
    def sso_passthru(self, request):
        if not request.user.is_authenticated and not self.is_exempt(request.path) \
                and SsoConfig().flag('enabled'):
            if LOGIN_FAILED_KEY in request.session:
                del request.session[LOGIN_FAILED_KEY]
            elif LOGIN_FAILED_PARAM not in request.GET:
                # The login path turns away requests without cookies, so the
                # session cookie has to be set on this response.
                request.session.set_test_cookie()
                return HttpResponseRedirect(login_path())
        return self.get_response(request)

    def is_exempt(self, path):
        return any(path.startswith(prefix) for prefix in getattr(settings, 'SSO_EXEMPT_PATHS', ()))
