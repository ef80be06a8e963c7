from django.conf import settings
from django.db import models


# Links a local account to the ID of the user on the identity provider.
class SsoRecord(models.Model):
    # The ID of the user on the identity provider. Being the primary key, two
    # callbacks for the same ID can never both create a link.
    external_id = models.TextField(primary_key=True)

    # A local account holds at most one link.
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE,
                                related_name='sso_record')
    created_on = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f'{self.external_id} -> {self.user_id}'


# Per-user string preferences ('1'/'0' flags, timestamps).
class UserSetting(models.Model):
    ACCOUNT_APPROVED = 'account_approved'
    ADMIN_NOTIFIED = 'sso_admin_notified'
    TIMESTAMP_ACTIVE = 'timestamp_active'

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE,
                             related_name='sso_settings')
    setting_name = models.CharField(max_length=64)
    setting_value = models.TextField(blank=True, default='')

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['user', 'setting_name'],
                                    name='oauthssoclient_unique_user_setting'),
        ]

    @classmethod
    def get_value(cls, user, name, default=''):
        setting = cls.objects.filter(user=user, setting_name=name).first()
        return default if setting is None else setting.setting_value

    @classmethod
    def set_value(cls, user, name, value):
        cls.objects.update_or_create(user=user, setting_name=name,
                                     defaults={'setting_value': value})

    def __str__(self):
        return f'{self.user_id}.{self.setting_name}={self.setting_value}'


# Configuration stored in the database. A non-empty value here takes
# precedence over the matching Django setting.
class SsoSetting(models.Model):
    name = models.CharField(max_length=64, unique=True)
    value = models.TextField(blank=True, default='')

    def __str__(self):
        return self.name


# Internal message delivered to a user's inbox on the site.
class InboxMessage(models.Model):
    sender = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
                               null=True, related_name='+')
    recipient = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE,
                                  related_name='sso_inbox_messages')
    subject = models.CharField(max_length=255)
    body = models.TextField()
    created_on = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_on']

    def __str__(self):
        return self.subject
