"""Tests for cloudstash/storage/urls.py: URL resolution order and key encoding."""

import unittest
from unittest.mock import Mock


class TestEncodeKey(unittest.TestCase):

    def test_keeps_slashes_and_encodes_the_rest(self):
        from cloudstash.storage.urls import encode_key, join_url

        self.assertEqual(encode_key('photos/2024 trip/a+b#1.jpg'), 'photos/2024%20trip/a%2Bb%231.jpg')
        self.assertEqual(join_url('https://cdn.example.com/', '/a b.txt'), 'https://cdn.example.com/a%20b.txt')


class TestUrlResolver(unittest.TestCase):
    """Tests for UrlResolver priority."""

    def test_custom_domain_wins_for_public_bucket(self):
        from cloudstash.storage.urls import UrlResolver

        signer = Mock(return_value='https://signed')
        resolver = UrlResolver(public_domain='https://cdn.example.com',
                               default_base='https://b.s3.us-east-1.amazonaws.com', signer=signer)

        self.assertEqual(resolver.resolve('a/b.png'), 'https://cdn.example.com/a/b.png')
        signer.assert_not_called()

    def test_custom_domain_wins_for_private_bucket(self):
        from cloudstash.storage.urls import UrlResolver

        signer = Mock(return_value='https://signed')
        resolver = UrlResolver(public_domain='https://cdn.example.com',
                               default_base='https://b.s3.us-east-1.amazonaws.com',
                               is_private=True, signer=signer)

        self.assertEqual(resolver.resolve('a/b.png'), 'https://cdn.example.com/a/b.png')
        self.assertEqual(resolver.signed('a/b.png'), 'https://cdn.example.com/a/b.png')
        signer.assert_not_called()

    def test_default_endpoint_when_public(self):
        from cloudstash.storage.urls import UrlResolver

        resolver = UrlResolver(default_base='https://b.oss-cn-hangzhou.aliyuncs.com',
                               signer=Mock(return_value='https://signed'))

        self.assertEqual(resolver.resolve('x.txt'), 'https://b.oss-cn-hangzhou.aliyuncs.com/x.txt')
        self.assertEqual(resolver.public_address('x.txt'), 'https://b.oss-cn-hangzhou.aliyuncs.com/x.txt')

    def test_private_without_domain_signs(self):
        from cloudstash.storage.urls import UrlResolver

        signer = Mock(return_value='https://signed?X-Amz-Signature=1')
        resolver = UrlResolver(default_base='https://b.example.com', is_private=True, signer=signer)

        self.assertEqual(resolver.resolve('x.txt', 60), 'https://signed?X-Amz-Signature=1')
        signer.assert_called_once_with('x.txt', 60)
        self.assertIsNone(resolver.public_address('x.txt'))

    def test_private_domain_signed_by_domain_signer(self):
        from cloudstash.storage.urls import UrlResolver

        domain_signer = Mock(side_effect=lambda url, exp: f"{url}?e={exp}&token=t")
        resolver = UrlResolver(public_domain='https://qiniu.example.com', is_private=True,
                               domain_signer=domain_signer)

        self.assertEqual(resolver.resolve('k.png', 300), 'https://qiniu.example.com/k.png?e=300&token=t')
        self.assertIsNone(resolver.public_address('k.png'))

    def test_domain_signer_without_domain_is_config_error(self):
        from cloudstash.storage.errors import ErrorKind, StorageError
        from cloudstash.storage.urls import UrlResolver

        resolver = UrlResolver(is_private=True, domain_signer=Mock())

        with self.assertRaises(StorageError) as ctx:
            resolver.resolve('k.png')
        self.assertEqual(ctx.exception.kind, ErrorKind.INVALID_CONFIG)

    def test_nothing_to_sign_with(self):
        from cloudstash.storage.errors import ErrorKind, StorageError
        from cloudstash.storage.urls import UrlResolver

        with self.assertRaises(StorageError) as ctx:
            UrlResolver().signed('k')
        self.assertEqual(ctx.exception.kind, ErrorKind.UNSUPPORTED)

    def test_rejects_non_positive_expiry(self):
        from cloudstash.storage.urls import UrlResolver

        with self.assertRaises(ValueError):
            UrlResolver(signer=Mock()).signed('k', 0)


if __name__ == '__main__':
    unittest.main()
