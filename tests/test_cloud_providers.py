"""Tests for the SDK-backed providers: Aliyun OSS, Tencent COS, Huawei OBS, Qiniu Kodo and GCS."""

import os
import tempfile
import unittest
from types import SimpleNamespace
from unittest.mock import MagicMock, Mock, patch

from cloudstash.storage.base import ProviderConfig, ProviderType


def _local_file(name='photo.jpg', data=b'0123456789'):
    path = os.path.join(tempfile.mkdtemp(), name)
    with open(path, 'wb') as f:
        f.write(data)
    return path


class TestOSSProvider(unittest.TestCase):

    def setUp(self):
        from cloudstash.storage.oss_provider import OSSStorageProvider

        self.client = MagicMock()
        self.provider = OSSStorageProvider(ProviderConfig(
            provider=ProviderType.OSS, access_key_id='a', secret_access_key='s',
            bucket='assets', region='oss-cn-hangzhou',
        ), client=self.client)

    def test_list_maps_marker_and_prefixes(self):
        self.client.list_objects.return_value = SimpleNamespace(
            object_list=[
                SimpleNamespace(key='img/', size=0, last_modified=0, etag=None, storage_class=None),
                SimpleNamespace(key='img/a.png', size=5, last_modified=1700000000,
                                etag='"E1"', storage_class='IA'),
            ],
            prefix_list=['img/raw/'],
            is_truncated=True,
            next_marker='img/a.png',
        )

        page = self.provider.list_files('img/', '/', 'img/0', 2).data

        self.client.list_objects.assert_called_once_with(
            prefix='img/', delimiter='/', marker='img/0', max_keys=2,
        )
        self.assertEqual([f.key for f in page.files], ['img/a.png'])
        self.assertEqual(page.files[0].to_dict(), {
            'Key': 'img/a.png', 'Size': 5, 'LastModified': '2023-11-14T22:13:20+00:00',
            'ETag': 'E1', 'StorageClass': 'IA',
        })
        self.assertEqual([f.key for f in page.folders], ['img/raw/'])
        self.assertEqual(page.next_continuation_token, 'img/a.png')

    def test_batch_delete_unconfirmed_keys_fail(self):
        self.client.batch_delete_objects.return_value = SimpleNamespace(deleted_keys=['a'])

        result = self.provider.delete_files(['a', 'b'])

        self.client.batch_delete_objects.assert_called_once_with(['a', 'b'])
        self.assertEqual(result.deleted, ['a'])
        self.assertIn('b', result.failed)

    @patch('cloudstash.storage.oss_provider._oss2')
    def test_upload_uses_resumable_upload(self, mock_oss2):
        local = _local_file()

        self.provider.upload_file(local, 'photos/p.jpg')

        args, kwargs = mock_oss2.resumable_upload.call_args
        self.assertEqual(args, (self.client, 'photos/p.jpg', local))
        self.assertEqual(kwargs['progress_callback'].__name__, 'consumed_callback')

    def test_default_url_and_signing(self):
        self.client.sign_url.return_value = 'https://signed.example'

        self.assertEqual(self.provider.get_public_url('a.png'),
                         'https://assets.oss-cn-hangzhou.aliyuncs.com/a.png')
        self.assertEqual(self.provider.get_presigned_url('a.png', 60), 'https://signed.example')
        self.client.sign_url.assert_called_once_with('GET', 'a.png', 60)

    def test_server_error_is_classified(self):
        from cloudstash.storage.errors import ErrorKind, StorageError

        class ServerError(Exception):
            status = 403
            code = 'AccessDenied'
            message = 'denied'

        self.client.head_object.side_effect = ServerError()

        with self.assertRaises(StorageError) as ctx:
            self.provider.get_file_info('a.png')
        self.assertEqual(ctx.exception.kind, ErrorKind.AUTH)
        self.assertEqual(ctx.exception.provider, 'oss')


class TestCOSProvider(unittest.TestCase):

    def setUp(self):
        from cloudstash.storage.cos_provider import COSStorageProvider

        self.client = MagicMock()
        self.provider = COSStorageProvider(ProviderConfig(
            provider=ProviderType.COS, access_key_id='id', secret_access_key='key',
            bucket='media-1250000000', region='ap-guangzhou',
        ), client=self.client)

    def test_list_with_string_truncation_and_single_item(self):
        self.client.list_objects.return_value = {
            'Contents': {'Key': 'x/1.txt', 'Size': '7', 'ETag': '"e"'},
            'CommonPrefixes': [{'Prefix': 'x/sub/'}],
            'IsTruncated': 'true',
        }

        page = self.provider.list_files('x/', '/', None, 2).data

        self.assertEqual(page.files[0].size, 7)
        self.assertEqual([f.key for f in page.folders], ['x/sub/'])
        # No NextMarker: the largest key of the page resumes the listing
        self.assertEqual(page.next_continuation_token, 'x/sub/')

    def test_list_not_truncated(self):
        self.client.list_objects.return_value = {'IsTruncated': 'false'}

        page = self.provider.list_files().data

        self.assertEqual(page.files, [])
        self.assertFalse(page.is_truncated)

    def test_batch_delete_reports_errors(self):
        self.client.delete_objects.return_value = {
            'Deleted': [{'Key': 'a'}],
            'Error': {'Key': 'b', 'Code': 'AccessDenied', 'Message': 'no'},
        }

        result = self.provider.delete_files(['a', 'b'])

        self.assertEqual(result.deleted, ['a'])
        self.assertEqual(result.failed, {'b': 'AccessDenied: no'})
        request = self.client.delete_objects.call_args.kwargs['Delete']
        self.assertEqual(request['Object'], [{'Key': 'a'}, {'Key': 'b'}])

    def test_head_reads_headers_case_insensitively(self):
        self.client.head_object.return_value = {
            'content-length': '10',
            'Last-Modified': 'Wed, 01 May 2024 08:30:00 GMT',
            'ETag': '"tag"',
            'Content-Type': 'text/plain',
        }

        info = self.provider.get_file_info('n.txt').data

        self.assertEqual(info.size, 10)
        self.assertEqual(info.last_modified, '2024-05-01T08:30:00+00:00')
        self.assertEqual(info.etag, 'tag')

    def test_service_error_not_found(self):
        class CosServiceError(Exception):
            def get_status_code(self):
                return 404

            def get_error_code(self):
                return 'NoSuchKey'

            def get_error_msg(self):
                return 'The specified key does not exist.'

        self.client.head_object.side_effect = CosServiceError()

        self.assertFalse(self.provider.file_exists('missing'))

    def test_default_url_and_missing_credential_label(self):
        from cloudstash.config_validator import ConfigValidationError
        from cloudstash.storage.cos_provider import COSStorageProvider

        self.assertEqual(self.provider.get_public_url('a.png'),
                         'https://media-1250000000.cos.ap-guangzhou.myqcloud.com/a.png')
        with self.assertRaises(ConfigValidationError) as ctx:
            COSStorageProvider(ProviderConfig(provider=ProviderType.COS, bucket='b', region='r'),
                               client=MagicMock())
        self.assertIn('SecretId', ctx.exception.message)


class TestOBSProvider(unittest.TestCase):

    def setUp(self):
        from cloudstash.storage.obs_provider import OBSStorageProvider

        self.client = MagicMock()
        self.provider = OBSStorageProvider(ProviderConfig(
            provider=ProviderType.OBS, access_key_id='a', secret_access_key='s',
            bucket='docs', endpoint='obs.cn-north-4.myhuaweicloud.com',
        ), client=self.client)

    def test_non_2xx_status_object_is_raised(self):
        from cloudstash.storage.errors import ErrorKind, StorageError

        self.client.getObjectMetadata.return_value = SimpleNamespace(
            status=403, errorCode='AccessDenied', errorMessage='denied', body=None,
        )

        with self.assertRaises(StorageError) as ctx:
            self.provider.get_file_info('a')
        self.assertEqual(ctx.exception.kind, ErrorKind.AUTH)

    def test_file_exists_false_on_404(self):
        self.client.getObjectMetadata.return_value = SimpleNamespace(
            status=404, errorCode='NoSuchKey', errorMessage=None, body=None,
        )
        self.assertFalse(self.provider.file_exists('a'))

    def test_small_upload_uses_put_file(self):
        self.client.putFile.return_value = SimpleNamespace(status=200)
        local = _local_file()

        self.provider.upload_file(local, 'a.jpg')

        self.client.putFile.assert_called_once()
        self.client.uploadFile.assert_not_called()

    @patch('cloudstash.storage.obs_provider.OBS_MULTIPART_THRESHOLD', 4)
    def test_large_upload_uses_multipart(self):
        self.client.uploadFile.return_value = SimpleNamespace(status=200)
        local = _local_file()

        self.provider.upload_file(local, 'a.jpg')

        args, kwargs = self.client.uploadFile.call_args
        self.assertEqual(args, ('docs', 'a.jpg', local))
        self.assertFalse(kwargs['enableCheckpoint'])

    def test_list(self):
        body = SimpleNamespace(
            contents=[SimpleNamespace(key='r/a', size=3, lastModified='2024/05/01 08:30:00',
                                      etag='"x"', storageClass=None)],
            commonPrefixs=[SimpleNamespace(prefix='r/b/')],
            is_truncated=False,
            next_marker=None,
        )
        self.client.listObjects.return_value = SimpleNamespace(status=200, body=body)

        page = self.provider.list_files('r/', '/').data

        self.assertEqual([f.key for f in page.files], ['r/a'])
        self.assertEqual([f.key for f in page.folders], ['r/b/'])
        self.assertFalse(page.is_truncated)

    def test_default_url(self):
        self.assertEqual(self.provider.get_public_url('f.txt'),
                         'https://docs.obs.cn-north-4.myhuaweicloud.com/f.txt')


def _info(status=200, error=None):
    return SimpleNamespace(status_code=status, exception=None, error=error)


class TestQiniuProvider(unittest.TestCase):

    def setUp(self):
        from cloudstash.storage.qiniu_provider import QiniuClient

        self.auth = Mock()
        self.bm = Mock()
        self.http = Mock()
        self.client = QiniuClient(self.auth, self.bm, self.http)

    def _provider(self, **overrides):
        from cloudstash.storage.qiniu_provider import QiniuStorageProvider

        values = dict(provider=ProviderType.QINIU, access_key_id='ak', secret_access_key='sk',
                      bucket='kodo', public_domain='cdn.example.com')
        values.update(overrides)
        return QiniuStorageProvider(ProviderConfig(**values), client=self.client)

    def test_delete_of_missing_file_succeeds(self):
        self.bm.delete.return_value = (None, _info(612))

        self.assertTrue(self._provider().delete_file('gone').success)

    def test_stat_612_means_not_found(self):
        self.bm.stat.return_value = (None, _info(612, 'no such file or directory'))

        self.assertFalse(self._provider().file_exists('gone'))

    @patch('cloudstash.storage.qiniu_provider._qiniu')
    def test_batch_delete_per_item_codes(self, mock_qiniu):
        self.bm.batch.return_value = (
            [{'code': 200}, {'code': 612}, {'code': 599, 'data': {'error': 'server busy'}}],
            _info(298),
        )

        result = self._provider().delete_files(['a', 'b', 'c'])

        mock_qiniu.build_batch_delete.assert_called_once_with('kodo', ['a', 'b', 'c'])
        self.assertEqual(result.deleted, ['a', 'b'])
        self.assertEqual(result.failed, {'c': 'code 599: server busy'})

    def test_list_maps_items(self):
        self.bm.list.return_value = (
            {'items': [{'key': 'p/a.jpg', 'fsize': 9, 'putTime': 17000000000000000,
                        'hash': 'Fh', 'type': 1}],
             'commonPrefixes': ['p/sub/'],
             'marker': 'next-marker'},
            False,
            _info(),
        )

        page = self._provider().list_files('p/', '/', None, 1).data

        self.bm.list.assert_called_once_with('kodo', prefix='p/', marker=None, limit=1, delimiter='/')
        entry = page.files[0]
        self.assertEqual((entry.size, entry.etag, entry.storage_class), (9, 'Fh', 'INFREQUENT'))
        self.assertEqual(entry.last_modified, '2023-11-14T22:13:20+00:00')
        self.assertEqual(page.next_continuation_token, 'next-marker')

    def test_empty_marker_ends_listing(self):
        self.bm.list.return_value = ({'items': [], 'marker': ''}, True, _info())

        self.assertFalse(self._provider().list_files().data.is_truncated)

    def test_private_bucket_signs_domain_url(self):
        self.auth.private_download_url.return_value = 'https://cdn.example.com/a.png?token=t'

        url = self._provider(is_private=True).get_public_url('a.png')

        self.assertEqual(url, 'https://cdn.example.com/a.png?token=t')
        self.auth.private_download_url.assert_called_once_with('https://cdn.example.com/a.png', expires=900)

    def test_public_bucket_uses_domain(self):
        self.assertEqual(self._provider().get_public_url('a b.png'), 'https://cdn.example.com/a%20b.png')

    def test_presign_without_domain_is_config_error(self):
        from cloudstash.storage.errors import ErrorKind, StorageError

        provider = self._provider(public_domain=None)

        with self.assertRaises(StorageError) as ctx:
            provider.get_presigned_url('a.png', 60)
        self.assertEqual(ctx.exception.kind, ErrorKind.INVALID_CONFIG)

    @patch('cloudstash.storage.qiniu_provider._qiniu')
    def test_upload_targets_zone_host(self, mock_qiniu):
        mock_qiniu.put_file.return_value = ({'key': 'up.jpg'}, _info())
        self.auth.upload_token.return_value = 'token'
        local = _local_file()

        result = self._provider(zone='z2').upload_file(local, 'up.jpg')

        mock_qiniu.Region.assert_called_once_with(up_host='https://up-z2.qiniup.com')
        args = mock_qiniu.put_file.call_args.args
        self.assertEqual(args, ('token', 'up.jpg', local))
        self.assertEqual(result.data.url, 'https://cdn.example.com/up.jpg')

    def test_download_streams_resolved_url(self):
        self.http.stream.return_value = (iter([b'abc']), 3)
        target = os.path.join(tempfile.mkdtemp(), 'a.png')

        self._provider().download_file('a.png', target)

        self.http.stream.assert_called_once_with('https://cdn.example.com/a.png')
        with open(target, 'rb') as f:
            self.assertEqual(f.read(), b'abc')

    def test_invalid_zone(self):
        from cloudstash.config_validator import ConfigValidationError

        with self.assertRaises(ConfigValidationError):
            self._provider(zone='mars')


class _Page(list):
    """A page from google.api_core's HTTPIterator: iterable items plus prefixes."""

    def __init__(self, items, prefixes=()):
        super().__init__(items)
        self.prefixes = set(prefixes)


class TestGCSProvider(unittest.TestCase):

    def setUp(self):
        from cloudstash.storage.gcs_provider import GCSStorageProvider

        self.client = MagicMock()
        self.bucket = self.client.bucket.return_value
        self.provider = GCSStorageProvider(ProviderConfig(
            provider=ProviderType.GCS, bucket='gbucket', key_filename='/keys/sa.json',
        ), client=self.client)

    def test_missing_bucket_fails_connection(self):
        self.bucket.exists.return_value = False

        result = self.provider.test_connection()

        self.assertFalse(result.success)
        self.assertEqual(result.error_kind, 'not_found')

    def test_list_one_page(self):
        blob = SimpleNamespace(name='d/a.txt', size=4, updated=None, etag='CJ', storage_class='NEARLINE')
        iterator = SimpleNamespace(pages=iter([_Page([blob], ['d/x/', 'd/b/'])]), next_page_token='tok')
        self.client.list_blobs.return_value = iterator

        page = self.provider.list_files('d/', '/', None, 5).data

        self.client.list_blobs.assert_called_once_with(
            'gbucket', prefix='d/', delimiter='/', max_results=5, page_token=None,
        )
        self.assertEqual([f.key for f in page.files], ['d/a.txt'])
        self.assertEqual(page.files[0].storage_class, 'NEARLINE')
        self.assertEqual([f.key for f in page.folders], ['d/b/', 'd/x/'])
        self.assertEqual(page.next_continuation_token, 'tok')

    def test_head_missing_blob(self):
        self.bucket.get_blob.return_value = None

        self.assertFalse(self.provider.file_exists('nope'))

    def test_delete_files_is_sequential(self):
        class NotFound(Exception):
            code = 404

        blobs = {'a': Mock(), 'gone': Mock()}
        blobs['gone'].delete.side_effect = NotFound('missing')
        self.bucket.blob.side_effect = lambda key: blobs[key]

        result = self.provider.delete_files(['a', 'gone'])

        self.assertEqual(result.deleted, ['a', 'gone'])
        blobs['a'].delete.assert_called_once_with()

    def test_upload_streams_through_progress_reader(self):
        blob = self.bucket.blob.return_value
        local = _local_file('notes.txt')

        self.provider.upload_file(local, 'notes.txt')

        self.bucket.blob.assert_called_with('notes.txt', chunk_size=5 * 1024 * 1024)
        kwargs = blob.upload_from_file.call_args.kwargs
        self.assertEqual(kwargs['size'], 10)
        self.assertEqual(kwargs['content_type'], 'text/plain')
        self.assertIsNone(kwargs['retry'])

    def test_default_public_url(self):
        self.assertEqual(self.provider.get_public_url('a.txt'),
                         'https://storage.googleapis.com/gbucket/a.txt')

    @patch('cloudstash.storage.gcs_provider._storage', new=Mock())
    def test_invalid_credentials_json(self):
        from cloudstash.config_validator import ConfigValidationError
        from cloudstash.storage.gcs_provider import GCSStorageProvider

        with self.assertRaises(ConfigValidationError):
            GCSStorageProvider(ProviderConfig(
                provider=ProviderType.GCS, bucket='b', credentials_json='{not json',
            ))


if __name__ == '__main__':
    unittest.main()
