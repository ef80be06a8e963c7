import json
import logging

logger = logging.getLogger('oauthssoclient.debug')

MASKED_KEYS = ('code', 'token', 'secret', 'password', 'client_secret', 'access_token')


def mask(value, length=8):
    return str(value)[:length] + '...[MASKED]'


def mask_context(context):
    return {key: mask(value) if key in MASKED_KEYS and value is not None else value
            for key, value in context.items()}


# Opt-in trace of the single sign-on flow. Does nothing unless enabled, and
# never changes what the flow does.
class DebugLogger:
    def __init__(self, enabled):
        self.enabled = enabled

    def log(self, message, context=None):
        if not self.enabled:
            return
        if context:
            message = f'{message} | Context: {json.dumps(mask_context(context), default=str)}'
        logger.debug(message)

    def log_request(self, phase, data):
        if not self.enabled:
            return
        self.log(f'=== {phase} ===')
        for key, value in mask_context(data).items():
            if isinstance(value, (dict, list)):
                value = json.dumps(value, default=str)
            self.log(f'{key}: {value}')
        self.log(f'=== End {phase} ===')
