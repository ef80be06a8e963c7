from importlib import import_module

from django.conf import settings
from django.contrib.auth.models import AnonymousUser, User
from django.contrib.messages import get_messages
from django.contrib.messages.storage.fallback import FallbackStorage
from django.test import RequestFactory

from oauthssoclient.models import SsoRecord, UserSetting
from oauthssoclient.provider import ResourceOwner
from oauthssoclient.session import INITIATING_USER_KEY, PKCE_KEY, STATE_KEY


class SsoRequestMixin:
    def make_request(self, path='/sso/callback', qs=None, session=None, user=None, cookies=True):
        request = RequestFactory().get(path, qs or {})
        if cookies:
            request.COOKIES['sessionid'] = 'x'
        request.session = import_module(settings.SESSION_ENGINE).SessionStore()
        for key, value in (session or {}).items():
            request.session[key] = value
        request.user = user or AnonymousUser()
        request._messages = FallbackStorage(request)
        return request

    def messages(self, request):
        return [m.message for m in get_messages(request)]

    def owner(self, external_id='77', email='a@x.com', username='alice'):
        return ResourceOwner({'ID': external_id, 'user_email': email, 'user_login': username}, None)

    def linked_user(self, external_id='77', username='alice', email='a@x.com', approved='1'):
        user = User.objects.create_user(username=username, email=email)
        SsoRecord.objects.create(user=user, external_id=external_id)
        UserSetting.set_value(user, UserSetting.ACCOUNT_APPROVED, approved)
        return user

    def assertAttemptCleared(self, request):
        for key in (STATE_KEY, PKCE_KEY, INITIATING_USER_KEY):
            self.assertNotIn(key, request.session)
