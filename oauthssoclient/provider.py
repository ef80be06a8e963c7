import requests
from authlib.common.errors import AuthlibBaseError
from authlib.common.security import generate_token
from authlib.integrations.requests_client import OAuth2Session

from oauthssoclient.conf import DEFAULT_CLAIM_KEYS
from oauthssoclient.exceptions import IdentityProviderError


# Profile of the authenticated user as returned by the resource owner endpoint.
class ResourceOwner:
    def __init__(self, data, claim_keys):
        self.data = data
        self.claim_keys = claim_keys or DEFAULT_CLAIM_KEYS

    def claim(self, name):
        value = self.data.get(self.claim_keys[name])
        if value is None:
            return ''
        return str(value).strip()

    @property
    def external_id(self):
        return self.claim('external_id')

    @property
    def email(self):
        return self.claim('email')

    @property
    def username(self):
        return self.claim('username')


class OAuth2Provider:
    """Authorization code client for a single identity provider.

    ``get_authorization_url`` mints the CSRF state and, when a PKCE method is
    configured, the code verifier. Both are exposed so they can be stored in
    the session, and ``set_pkce_code`` hands a stored verifier back before
    the code is exchanged on the callback request.
    """

    def __init__(self, client_id, client_secret, redirect_uri, url_authorize,
                 url_access_token, url_resource_owner, pkce_method=None, scope=None,
                 timeout=15, claim_keys=None):
        self.redirect_uri = redirect_uri
        self.url_authorize = url_authorize
        self.url_access_token = url_access_token
        self.url_resource_owner = url_resource_owner
        self.pkce_method = pkce_method
        self.timeout = timeout
        self.claim_keys = claim_keys or DEFAULT_CLAIM_KEYS
        self.state = None
        self.pkce_code = None
        self.session = OAuth2Session(client_id, client_secret,
                                     scope=scope or None,
                                     redirect_uri=redirect_uri,
                                     code_challenge_method=pkce_method)

    @classmethod
    def from_config(cls, config, redirect_uri):
        return cls(client_id=config.get('clientId'),
                   client_secret=config.get('clientSecret'),
                   redirect_uri=redirect_uri,
                   url_authorize=config.get('urlAuthorize'),
                   url_access_token=config.get('urlAccessToken'),
                   url_resource_owner=config.get('urlResourceOwner'),
                   pkce_method=config.pkce_method,
                   scope=config.get('scope'),
                   timeout=config.http_timeout,
                   claim_keys=config.claim_keys)

    def get_authorization_url(self):
        self.state = generate_token(32)
        kwargs = {}
        if self.pkce_method:
            # RFC 7636 wants 43 to 128 characters.
            self.pkce_code = generate_token(64)
            if self.pkce_method == 'S256':
                kwargs['code_verifier'] = self.pkce_code
            else:
                # Authlib only derives S256 challenges; plain sends the verifier itself.
                kwargs['code_challenge'] = self.pkce_code
                kwargs['code_challenge_method'] = self.pkce_method
        url, _ = self.session.create_authorization_url(self.url_authorize,
                                                       state=self.state, **kwargs)
        return url

    def get_state(self):
        return self.state

    def get_pkce_code(self):
        return self.pkce_code

    def set_pkce_code(self, code):
        self.pkce_code = code

    def get_access_token(self, grant_type, code):
        kwargs = {'code': code, 'timeout': self.timeout}
        if self.pkce_code:
            kwargs['code_verifier'] = self.pkce_code
        try:
            return self.session.fetch_token(self.url_access_token, grant_type=grant_type, **kwargs)
        except AuthlibBaseError as e:
            raise IdentityProviderError(str(e), error=e.error) from e
        except (requests.RequestException, ValueError) as e:
            raise IdentityProviderError(str(e)) from e

    def get_resource_owner(self, token):
        self.session.token = token
        try:
            response = self.session.get(self.url_resource_owner, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except AuthlibBaseError as e:
            raise IdentityProviderError(str(e), error=e.error) from e
        except (requests.RequestException, ValueError) as e:
            raise IdentityProviderError(str(e)) from e
        if not isinstance(data, dict):
            raise IdentityProviderError('resource owner response is not an object')
        return ResourceOwner(data, self.claim_keys)
