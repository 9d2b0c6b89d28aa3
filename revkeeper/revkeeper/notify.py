
from requests import post as http_post
from json import dumps as json_dumps
from .model import SupervisorConfig
from .logger import Logger


class Notify:
    """
    Slack/Mattermost compatible webhook
    """

    @staticmethod
    def notify(config: SupervisorConfig, msg: str):
        if not config.notify_url:
            return

        try:
            response = http_post(
                url=config.notify_url,
                data=json_dumps({
                    'text': msg
                }),
                headers={'Content-Type': 'application/json'},
                timeout=10
            )

            assert response.status_code == 200
        except Exception as e:
            Logger.warning('Webhook error, cannot post to "%s". Details: %s' % (config.notify_url, str(e)))

    @staticmethod
    def notify_connection_lost(config: SupervisorConfig):
        Notify.notify(config, ':warning: SSH connection to "%s" was lost, reconnecting' % config.ident)

    @staticmethod
    def notify_connection_restored(config: SupervisorConfig, failed_attempts: int):
        if failed_attempts == 0:
            return

        Notify.notify(config, ':white_check_mark: SSH connection to "%s" was restored after %i failed attempts' % (
            config.ident, failed_attempts
        ))
