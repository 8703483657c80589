import io
import unittest
from unittest.mock import MagicMock, patch

import paramiko

from resilient_sftp.providers.paramiko_provider import (
    ParamikoSession,
    ParamikoSessionProvider,
    ParamikoSftpChannel,
    load_private_key,
)


def _rsa_key_bytes(password=None):
    key = paramiko.RSAKey.generate(bits=2048)
    buf = io.StringIO()
    key.write_private_key(buf, password=password)
    return key, buf.getvalue().encode('utf-8')


class TestLoadPrivateKey(unittest.TestCase):

    def test_loads_rsa_key_from_bytes(self):
        key, material = _rsa_key_bytes()

        loaded = load_private_key(material)

        self.assertIsInstance(loaded, paramiko.RSAKey)
        self.assertEqual(loaded.get_fingerprint(), key.get_fingerprint())

    def test_loads_encrypted_key_with_passphrase(self):
        key, material = _rsa_key_bytes(password='s3cret')

        loaded = load_private_key(material, passphrase='s3cret')

        self.assertEqual(loaded.get_fingerprint(), key.get_fingerprint())

    def test_encrypted_key_without_passphrase(self):
        _, material = _rsa_key_bytes(password='s3cret')

        with self.assertRaises(paramiko.PasswordRequiredException):
            load_private_key(material)

    def test_garbage_is_rejected(self):
        with self.assertRaises(paramiko.SSHException):
            load_private_key(b"definitely not a key")


class TestParamikoSession(unittest.TestCase):

    def setUp(self):
        self.pkey = MagicMock(spec=paramiko.PKey)

    @patch('resilient_sftp.providers.paramiko_provider.paramiko.SSHClient')
    def test_connect_uses_key_and_sets_keepalive(self, mock_ssh_client):
        mock_ssh_instance = MagicMock()
        mock_ssh_instance.get_transport.return_value.is_active.return_value = True
        mock_ssh_client.return_value = mock_ssh_instance

        session = ParamikoSession('localhost', 2000, 'testuser', self.pkey,
                                  connect_timeout=5, keepalive_interval=15)
        self.assertFalse(session.is_connected())
        session.connect()

        mock_ssh_instance.connect.assert_called_once_with(
            hostname='localhost', port=2000, username='testuser', pkey=self.pkey,
            timeout=5, allow_agent=False, look_for_keys=False,
        )
        mock_ssh_instance.get_transport.return_value.set_keepalive.assert_called_once_with(15)
        self.assertTrue(session.is_connected())

        session.disconnect()
        mock_ssh_instance.close.assert_called_once()
        self.assertFalse(session.is_connected())

    @patch('resilient_sftp.providers.paramiko_provider.paramiko.SSHClient')
    def test_failed_connect_closes_client(self, mock_ssh_client):
        mock_ssh_instance = MagicMock()
        mock_ssh_instance.connect.side_effect = paramiko.AuthenticationException("denied")
        mock_ssh_client.return_value = mock_ssh_instance

        session = ParamikoSession('localhost', 22, 'testuser', self.pkey)
        with self.assertRaises(paramiko.AuthenticationException):
            session.connect()

        mock_ssh_instance.close.assert_called_once()
        self.assertFalse(session.is_connected())

    @patch('resilient_sftp.providers.paramiko_provider.paramiko.SSHClient')
    def test_dead_transport_is_not_connected(self, mock_ssh_client):
        mock_ssh_instance = MagicMock()
        mock_ssh_instance.get_transport.return_value.is_active.return_value = False
        mock_ssh_client.return_value = mock_ssh_instance

        session = ParamikoSession('localhost', 22, 'testuser', self.pkey)
        session.connect()

        self.assertFalse(session.is_connected())
        with self.assertRaises(paramiko.SSHException):
            session.open_channel('sftp')

    @patch('resilient_sftp.providers.paramiko_provider.paramiko.SSHClient')
    def test_open_channel_only_supports_sftp(self, mock_ssh_client):
        mock_ssh_instance = MagicMock()
        mock_ssh_instance.get_transport.return_value.is_active.return_value = True
        mock_ssh_client.return_value = mock_ssh_instance
        session = ParamikoSession('localhost', 22, 'testuser', self.pkey)
        session.connect()

        self.assertIsInstance(session.open_channel('sftp'), ParamikoSftpChannel)
        with self.assertRaises(ValueError):
            session.open_channel('exec')


class TestParamikoSftpChannel(unittest.TestCase):

    def setUp(self):
        self.ssh = MagicMock()
        self.sftp = self.ssh.open_sftp.return_value
        self.channel = ParamikoSftpChannel(self.ssh)

    def test_operations_before_connect_fail(self):
        with self.assertRaises(paramiko.SSHException):
            self.channel.ls('.')

    def test_operations_map_to_sftp_client(self):
        self.channel.connect()

        self.channel.put('/tmp/a', 'dir/a')
        self.channel.ls('dir')
        self.channel.rename('dir/a', 'dir/b')
        self.channel.rm('dir/b')
        remote_file = self.channel.get('dir/c')

        self.sftp.put.assert_called_once_with('/tmp/a', 'dir/a')
        self.sftp.listdir_attr.assert_called_once_with('dir')
        self.sftp.rename.assert_called_once_with('dir/a', 'dir/b')
        self.sftp.remove.assert_called_once_with('dir/b')
        self.sftp.open.assert_called_once_with('dir/c', 'rb')
        remote_file.prefetch.assert_called_once()

    def test_disconnect_closes_sftp_once(self):
        self.channel.connect()
        self.channel.disconnect()
        self.channel.disconnect()

        self.sftp.close.assert_called_once()


class TestParamikoSessionProvider(unittest.TestCase):

    @patch('resilient_sftp.providers.paramiko_provider.load_private_key')
    def test_key_is_parsed_once_and_shared(self, mock_load):
        provider = ParamikoSessionProvider(b'key', passphrase='pw', connect_timeout=3, keepalive_interval=0)

        first = provider.get_session('u', 'h', 22)
        second = provider.get_session('u', 'h', 22)

        mock_load.assert_called_once_with(b'key', 'pw')
        self.assertIsNot(first, second)
        self.assertEqual((first.host, first.port, first.username), ('h', 22, 'u'))
        self.assertEqual(first.connect_timeout, 3)
        self.assertEqual(first.keepalive_interval, 0)

    def test_malformed_key_fails_when_session_is_requested(self):
        provider = ParamikoSessionProvider(b'garbage')

        with self.assertRaises(paramiko.SSHException):
            provider.get_session('u', 'h', 22)


if __name__ == '__main__':
    unittest.main()
