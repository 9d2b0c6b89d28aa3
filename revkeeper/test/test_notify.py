
import json
import unittest
from unittest.mock import Mock, patch

from ..revkeeper import notify as notify_module
from ..revkeeper.notify import Notify
from ..revkeeper.model import SupervisorConfig
from ..revkeeper.logger import setup_dummy_logger


def create_config(notify_url: str = 'http://mattermost.local/hooks/xyz') -> SupervisorConfig:
    return SupervisorConfig(host='tunnel.riotkit.org', username='riotkit', key_reference='~/.ssh/id_rsa',
                            notify_url=notify_url)


class NotifyTest(unittest.TestCase):
    def setUp(self) -> None:
        setup_dummy_logger()

    def test_posts_text_to_webhook(self):
        with patch.object(notify_module, 'http_post') as post_mock:
            post_mock.return_value = Mock(status_code=200)
            Notify.notify_connection_lost(create_config())

        kwargs = post_mock.call_args[1]

        self.assertEqual('http://mattermost.local/hooks/xyz', kwargs['url'])
        self.assertIn('riotkit@tunnel.riotkit.org:3422', json.loads(kwargs['data'])['text'])

    def test_nothing_is_sent_without_url(self):
        with patch.object(notify_module, 'http_post') as post_mock:
            Notify.notify_connection_lost(create_config(notify_url=''))

        post_mock.assert_not_called()

    def test_restore_is_not_reported_on_first_connection(self):
        with patch.object(notify_module, 'http_post') as post_mock:
            post_mock.return_value = Mock(status_code=200)

            Notify.notify_connection_restored(create_config(), 0)
            post_mock.assert_not_called()

            Notify.notify_connection_restored(create_config(), 3)
            self.assertIn('3 failed attempts', json.loads(post_mock.call_args[1]['data'])['text'])

    def test_webhook_errors_are_not_raised(self):
        with patch.object(notify_module, 'http_post') as post_mock:
            post_mock.side_effect = ConnectionError('Name or service not known')
            Notify.notify_connection_lost(create_config())

        with patch.object(notify_module, 'http_post') as post_mock:
            post_mock.return_value = Mock(status_code=500)
            Notify.notify_connection_lost(create_config())
