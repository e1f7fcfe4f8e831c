"""Tests for the boto3-backed providers: Amazon S3, Cloudflare R2 and JD Cloud."""

import datetime
import os
import tempfile
import unittest
from unittest.mock import MagicMock, patch

from cloudstash.storage.base import ProviderConfig, ProviderType


def _s3_config(**overrides):
    values = dict(provider=ProviderType.S3, access_key_id='AKIA', secret_access_key='secret',
                  bucket='photos', region='eu-west-1')
    values.update(overrides)
    return ProviderConfig(**values)


class TestS3Requests(unittest.TestCase):
    """Request shaping against an injected boto3 client."""

    def setUp(self):
        from cloudstash.storage.s3_provider import S3StorageProvider

        self.client = MagicMock()
        self.provider = S3StorageProvider(_s3_config(storage_class='standard_ia'), client=self.client)

    def test_probe_is_head_bucket(self):
        self.assertTrue(self.provider.test_connection().success)
        self.client.head_bucket.assert_called_once_with(Bucket='photos')

    def test_upload_passes_content_type_storage_class_and_callback(self):
        tmpdir = tempfile.mkdtemp()
        local = os.path.join(tmpdir, 'cat.png')
        with open(local, 'wb') as f:
            f.write(b'\x89PNG....')

        with patch.object(type(self.provider), 'transfer_config', new='transfer-config'):
            self.provider.upload_file(local, 'img/cat.png')

        args, kwargs = self.client.upload_file.call_args
        self.assertEqual(args, (local, 'photos', 'img/cat.png'))
        self.assertEqual(kwargs['ExtraArgs'], {'ContentType': 'image/png', 'StorageClass': 'STANDARD_IA'})
        self.assertEqual(kwargs['Callback'].__name__, 'boto3_callback')
        self.assertEqual(kwargs['Config'], 'transfer-config')

    def test_list_maps_objects_folders_and_token(self):
        self.client.list_objects_v2.return_value = {
            'Contents': [
                {'Key': 'docs/', 'Size': 0},
                {'Key': 'docs/a.txt', 'Size': 12, 'ETag': '"abc"',
                 'LastModified': datetime.datetime(2024, 5, 1, tzinfo=datetime.timezone.utc)},
            ],
            'CommonPrefixes': [{'Prefix': 'docs/img/'}],
            'IsTruncated': True,
            'NextContinuationToken': 'tok-2',
        }

        page = self.provider.list_files('docs/', '/', None, 2).data

        self.client.list_objects_v2.assert_called_once_with(
            Bucket='photos', Prefix='docs/', MaxKeys=2, Delimiter='/',
        )
        self.assertEqual([f.key for f in page.files], ['docs/a.txt'])
        self.assertEqual(page.files[0].etag, 'abc')
        self.assertEqual(page.files[0].last_modified, '2024-05-01T00:00:00+00:00')
        self.assertEqual([f.key for f in page.folders], ['docs/img/'])
        self.assertEqual(page.next_continuation_token, 'tok-2')

    def test_list_last_page(self):
        self.client.list_objects_v2.return_value = {'Contents': [], 'IsTruncated': False}

        page = self.provider.list_files(continuation_token='tok-2').data

        self.assertEqual(self.client.list_objects_v2.call_args.kwargs['ContinuationToken'], 'tok-2')
        self.assertFalse(page.is_truncated)

    def test_batch_delete_chunks_at_1000(self):
        def delete_objects(Bucket, Delete):
            keys = [o['Key'] for o in Delete['Objects']]
            if keys[0] == 'k01000':
                return {'Deleted': [{'Key': k} for k in keys[1:]],
                        'Errors': [{'Key': keys[0], 'Code': 'AccessDenied', 'Message': 'Access Denied'}]}
            return {'Deleted': [{'Key': k} for k in keys]}

        self.client.delete_objects.side_effect = delete_objects
        keys = [f"k{i:05d}" for i in range(2500)]

        result = self.provider.delete_files(keys)

        sizes = [len(c.kwargs['Delete']['Objects']) for c in self.client.delete_objects.call_args_list]
        self.assertEqual(sizes, [1000, 1000, 500])
        self.assertEqual(len(result.deleted), 2499)
        self.assertEqual(result.failed, {'k01000': 'AccessDenied: Access Denied'})

    def test_head_maps_metadata(self):
        self.client.head_object.return_value = {
            'ContentLength': 42, 'ETag': '"e"', 'ContentType': 'text/plain',
        }

        info = self.provider.get_file_info('a.txt').data

        self.assertEqual((info.size, info.etag, info.content_type, info.storage_class),
                         (42, 'e', 'text/plain', 'STANDARD'))

    def test_file_exists_false_on_404(self):
        from botocore.exceptions import ClientError

        self.client.head_object.side_effect = ClientError(
            {'Error': {'Code': '404', 'Message': 'Not Found'},
             'ResponseMetadata': {'HTTPStatusCode': 404}}, 'HeadObject')

        self.assertFalse(self.provider.file_exists('gone.txt'))

    def test_download_streams_body(self):
        body = MagicMock()
        body.iter_chunks.return_value = iter([b'ab', b'cd'])
        self.client.get_object.return_value = {'Body': body, 'ContentLength': 4}
        target = os.path.join(tempfile.mkdtemp(), 'x.bin')

        self.provider.download_file('x.bin', target)

        with open(target, 'rb') as f:
            self.assertEqual(f.read(), b'abcd')

    def test_presigned_url(self):
        self.client.generate_presigned_url.return_value = 'https://signed'

        self.assertEqual(self.provider.get_presigned_url('a.txt', 120), 'https://signed')
        self.client.generate_presigned_url.assert_called_once_with(
            'get_object', Params={'Bucket': 'photos', 'Key': 'a.txt'}, ExpiresIn=120,
        )

    def test_default_public_url(self):
        self.assertEqual(self.provider.get_public_url('a b.txt'),
                         'https://photos.s3.eu-west-1.amazonaws.com/a%20b.txt')

    def test_create_folder_puts_empty_marker(self):
        self.provider.create_folder('albums')
        self.client.put_object.assert_called_once_with(Bucket='photos', Key='albums/', Body=b'')

    def test_list_buckets(self):
        self.client.list_buckets.return_value = {'Buckets': [{'Name': 'photos'}, {'Name': 'logs'}]}

        names = [b.name for b in self.provider.list_buckets().data]

        self.assertEqual(names, ['photos', 'logs'])


class TestS3Config(unittest.TestCase):

    def test_invalid_storage_class(self):
        from cloudstash.config_validator import ConfigValidationError
        from cloudstash.storage.s3_provider import S3StorageProvider

        with self.assertRaises(ConfigValidationError):
            S3StorageProvider(_s3_config(storage_class='COLD'), client=MagicMock())

    def test_custom_endpoint_base_url(self):
        from cloudstash.storage.s3_provider import S3StorageProvider

        provider = S3StorageProvider(_s3_config(endpoint='https://minio.local:9000/'), client=MagicMock())
        self.assertEqual(provider.get_public_url('k'), 'https://minio.local:9000/photos/k')

    @patch('cloudstash.storage.s3_provider._boto3')
    @patch('cloudstash.storage.s3_provider._botocore_config')
    def test_client_built_without_retries_and_with_proxy(self, mock_config, mock_boto3):
        from cloudstash.proxy_config import ProxyConfig
        from cloudstash.storage.s3_provider import S3StorageProvider

        S3StorageProvider(_s3_config(proxy=ProxyConfig(url='http://127.0.0.1:7890'), force_path_style=True))

        kwargs = mock_config.Config.call_args.kwargs
        self.assertEqual(kwargs['retries'], {'mode': 'standard', 'max_attempts': 1})
        self.assertEqual(kwargs['proxies'], {'http': 'http://127.0.0.1:7890', 'https': 'http://127.0.0.1:7890'})
        self.assertEqual(kwargs['s3'], {'addressing_style': 'path'})
        mock_boto3.session.Session.assert_called_once_with(
            aws_access_key_id='AKIA', aws_secret_access_key='secret', region_name='eu-west-1',
        )


class TestR2AndJDCloud(unittest.TestCase):

    @patch('cloudstash.storage.s3_provider._boto3')
    @patch('cloudstash.storage.s3_provider._botocore_config')
    def test_r2_endpoint_from_account(self, mock_config, mock_boto3):
        from cloudstash.storage.s3_provider import R2StorageProvider

        provider = R2StorageProvider(ProviderConfig(
            provider=ProviderType.R2, account_id='acc', access_key_id='a',
            secret_access_key='s', bucket='media',
        ))

        session = mock_boto3.session.Session.return_value
        self.assertEqual(session.client.call_args.kwargs['endpoint_url'], 'https://acc.r2.cloudflarestorage.com')
        self.assertEqual(mock_boto3.session.Session.call_args.kwargs['region_name'], 'auto')
        self.assertEqual(provider.get_public_url('x.jpg'), 'https://acc.r2.cloudflarestorage.com/media/x.jpg')

    def test_jdcloud_default_region_endpoint(self):
        from cloudstash.storage.s3_provider import JDCloudStorageProvider

        provider = JDCloudStorageProvider(ProviderConfig(
            provider=ProviderType.JDCLOUD, access_key_id='a', secret_access_key='s', bucket='b',
        ), client=MagicMock())

        self.assertEqual(provider.get_public_url('x'), 'https://s3.cn-north-1.jdcloud-oss.com/b/x')
        self.assertEqual(provider.get_provider_name(), 'JD Cloud OSS')


if __name__ == '__main__':
    unittest.main()
