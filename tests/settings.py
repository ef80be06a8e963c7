SECRET_KEY = 'oauthssoclient-tests'
DEBUG = False
ALLOWED_HOSTS = ['testserver']
USE_TZ = True
SITE_ID = 1
ROOT_URLCONF = 'tests.urls'
DEFAULT_AUTO_FIELD = 'django.db.models.AutoField'

INSTALLED_APPS = [
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.sites',
    'allauth',
    'allauth.account',
    'oauthssoclient',
]

MIDDLEWARE = [
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'allauth.account.middleware.AccountMiddleware',
    'oauthssoclient.client.OAuthSsoClientMiddleware',
]

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    },
}

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
    },
}

EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'

SSO_CLIENT_ID = 'webtrees-client'
SSO_CLIENT_SECRET = 'b54cc7b3e42b215d1792c300487f1cb1'
SSO_URL_AUTHORIZE = 'https://idp.example.com/oauth/authorize'
SSO_URL_ACCESS_TOKEN = 'https://idp.example.com/oauth/token'
SSO_URL_RESOURCE_OWNER = 'https://idp.example.com/oauth/me'
SSO_URL_LOGOUT = 'https://idp.example.com/wp-login.php?action=logout'
SSO_PKCE_METHOD = 'S256'
SSO_ALLOW_CREATION = True
SSO_SYNC_EMAIL = False
SSO_ENABLED = False
SSO_CLIENT_BASE_URL = '/'
