import logging

from django.contrib.auth import get_user_model
from django.core.mail import EmailMultiAlternatives
from django.db import transaction
from django.utils import timezone
from django.utils.html import format_html, format_html_join

from oauthssoclient.models import InboxMessage, SsoRecord, UserSetting

logger = logging.getLogger(__name__)
audit = logging.getLogger('oauthssoclient.audit')

SUBJECT = 'New user registration - approval needed'
INTRO = 'A new user has registered via single sign-on and requires approval.'
STEPS = [
    'Go to the admin site and open Users',
    'Find user: {username}',
    'Click the user to edit',
    'Record the approval and save',
]
OUTRO = 'Once approved, the user will have full access on their next sign-on.'


class AdminNotifier:
    """Tells administrators about an account waiting for approval.

    Fires at most once per account: the ``sso_admin_notified`` setting is
    claimed with a single conditional write before anything is sent, so two
    requests for the same account cannot both notify. Each administrator gets
    an inbox message and an email; a failure for one administrator is logged
    and the others are still notified.
    """

    def __init__(self, debug=None):
        self.debug = debug

    def administrators(self):
        return get_user_model().objects.filter(is_superuser=True, is_active=True).order_by('pk')

    def claim(self, user):
        name = UserSetting.ADMIN_NOTIFIED
        if UserSetting.objects.filter(user=user, setting_name=name) \
                              .exclude(setting_value='1').update(setting_value='1'):
            return True
        _, created = UserSetting.objects.get_or_create(user=user, setting_name=name,
                                                       defaults={'setting_value': '1'})
        return created

    def notify_pending(self, user, request=None):
        if not self.claim(user):
            self.log('Admin notification already sent for this user, skipping',
                     {'user': user.get_username()})
            return None

        details = self.details(user, request)
        text = self.render_text(details)
        html = self.render_html(details)
        administrators = list(self.administrators())
        self.log('Sending pending approval notifications to administrators',
                 {**details, 'admin_count': len(administrators)})

        sent = failed = 0
        for admin in administrators:
            try:
                self.deliver(user, admin, text, html)
                sent += 1
            except Exception as e:
                failed += 1
                logger.warning('Failed to notify administrator %s about %s: %s',
                               admin.get_username(), user.get_username(), e)

        self.log('Admin notification process completed',
                 {'total_admins': len(administrators), 'successful': sent, 'failed': failed})
        audit.info('SSO: pending approval notification sent to %d administrator(s) for user: %s',
                   sent, user.get_username())
        return sent, failed

    def deliver(self, user, admin, text, html):
        with transaction.atomic():
            InboxMessage.objects.create(sender=user, recipient=admin, subject=SUBJECT, body=text)
        if admin.email:
            message = EmailMultiAlternatives(SUBJECT, text, to=[admin.email],
                                             reply_to=[user.email] if user.email else None)
            message.attach_alternative(html, 'text/html')
            message.send()

    def details(self, user, request):
        record = SsoRecord.objects.filter(user=user).first()
        meta = request.META if request is not None else {}
        return {
            'username': user.get_username(),
            'email': user.email,
            'real_name': user.get_full_name(),
            'external_id': record.external_id if record else 'Unknown',
            'time': timezone.now().strftime('%Y-%m-%d %H:%M:%S'),
            'ip_address': meta.get('REMOTE_ADDR') or 'Unknown',
        }

    def render_text(self, details):
        steps = '\n'.join(f'{n}. {step.format(**details)}' for n, step in enumerate(STEPS, 1))
        return (f'{INTRO}\n\n'
                'User Details:\n'
                f'- Username: {details["username"]}\n'
                f'- Email: {details["email"]}\n'
                f'- Real name: {details["real_name"]}\n'
                f'- External user ID: {details["external_id"]}\n'
                f'- Login attempt time: {details["time"]}\n'
                f'- IP address: {details["ip_address"]}\n\n'
                'To approve this user:\n'
                f'{steps}\n\n'
                f'{OUTRO}')

    def render_html(self, details):
        rows = format_html_join('', '<li><strong>{}:</strong> {}</li>', [
            ('Username', details['username']),
            ('Email', details['email']),
            ('Real name', details['real_name']),
            ('External user ID', details['external_id']),
            ('Login attempt time', details['time']),
            ('IP address', details['ip_address']),
        ])
        steps = format_html_join('', '<li>{}</li>', ((step.format(**details),) for step in STEPS))
        return format_html('<p><strong>{}</strong></p><h3>User Details:</h3><ul>{}</ul>'
                           '<h3>To approve this user:</h3><ol>{}</ol><p>{}</p>',
                           INTRO, rows, steps, OUTRO)

    def log(self, message, context=None):
        if self.debug is not None:
            self.debug.log(message, context)
