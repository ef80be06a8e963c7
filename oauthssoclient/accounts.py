import logging

from allauth.account.models import EmailAddress
from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction

from oauthssoclient.exceptions import ErrorKind, SsoError
from oauthssoclient.models import SsoRecord, UserSetting

logger = logging.getLogger(__name__)


class AccountResolver:
    """Maps an identity provider account onto a local user.

    Lookup order: the linked external ID, then the email address (which links
    the existing account), then a new account when creation is allowed. The
    link and create steps run in one transaction; the external ID is the
    ``SsoRecord`` primary key, so if a concurrent callback links the same ID
    first our insert fails and the lookup is retried instead of creating a
    second account.
    """

    def __init__(self, notifier=None, request=None, debug=None):
        self.notifier = notifier
        self.request = request
        self.debug = debug

    def resolve(self, external_id, email, username, allow_creation):
        user = self.find_by_external_id(external_id)
        if user is not None:
            self.log('Found existing user by external ID', {'user': user.get_username()})
            return user

        try:
            with transaction.atomic():
                user, created = self.link_or_create(external_id, email, username, allow_creation)
        except IntegrityError as e:
            user = self.find_by_external_id(external_id)
            if user is None:
                logger.error('Could not link or create an account for external ID %s: %s',
                             external_id, e)
                raise SsoError(ErrorKind.USER_CREATION,
                               f'Could not create an account for {username}. '
                               'Please contact the administrator.') from e
            self.log('External ID linked by a concurrent request', {'user': user.get_username()})
            return user

        if created and self.notifier is not None:
            self.notifier.notify_pending(user, self.request)
        return user

    def find_by_external_id(self, external_id):
        sso = SsoRecord.objects.select_related('user').filter(external_id=external_id).first()
        return sso.user if sso else None

    def find_by_email(self, email):
        users = list(get_user_model().objects.filter(email__iexact=email)[:2])
        if len(users) > 1:
            raise SsoError(ErrorKind.USER_CREATION,
                           f'Several accounts use the email address {email}. '
                           'Please contact the administrator.')
        return users[0] if users else None

    def link_or_create(self, external_id, email, username, allow_creation):
        user = self.find_by_email(email)
        if user is not None:
            # An account linked to another ID already owns this email. Linking
            # would take the account over, so fail loudly and let admins look.
            if SsoRecord.objects.filter(user=user).exists():
                raise SsoError(ErrorKind.USER_CREATION,
                               f'email_collision_detected (ID: {external_id})')
            SsoRecord.objects.create(user=user, external_id=external_id)
            self.log('Linked existing user by email', {'user': user.get_username()})
            return user, False

        if not allow_creation:
            raise SsoError(ErrorKind.USER_CREATION,
                           'User not found and automatic account creation is disabled.')

        user = self.create_user(external_id, email, username)
        self.log('Created new user', {'user': user.get_username()})
        return user, True

    def create_user(self, external_id, email, username):
        # No password is ever used locally; create_user stores an unusable
        # random one.
        user = get_user_model().objects.create_user(username=username, email=email,
                                                    first_name=username)
        SsoRecord.objects.create(user=user, external_id=external_id)
        UserSetting.set_value(user, UserSetting.ACCOUNT_APPROVED, '0')
        EmailAddress.objects.create(user=user, email=email, verified=True, primary=True)
        return user

    def sync_email(self, user, email):
        if user.email == email:
            return False
        user.email = email
        user.save(update_fields=['email'])

        address = (EmailAddress.objects.filter(user=user, primary=True).first()
                   or EmailAddress.objects.filter(user=user).first())
        if address is None:
            EmailAddress.objects.create(user=user, email=email, verified=True, primary=True)
        else:
            address.email = email
            address.verified = True
            address.save()
        return True

    def log(self, message, context=None):
        if self.debug is not None:
            self.debug.log(message, context)


def is_email_verified(user):
    return EmailAddress.objects.filter(user=user, email__iexact=user.email, verified=True).exists()


def is_approved(user):
    return UserSetting.get_value(user, UserSetting.ACCOUNT_APPROVED) == '1'
