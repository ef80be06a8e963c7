from django.apps import AppConfig


class OAuthSsoClientConfig(AppConfig):
    name = 'oauthssoclient'
    verbose_name = 'OAuth2 single sign-on client'
    default_auto_field = 'django.db.models.AutoField'
