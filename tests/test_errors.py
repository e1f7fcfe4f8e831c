"""Tests for cloudstash/storage/errors.py: classification of backend failures."""

import json
import unittest

import requests


class EndpointConnectionError(Exception):
    """Stand-in named like botocore's transport error."""


class _CosStyleError(Exception):
    """Exposes status and code through getters, like CosServiceError."""

    def __init__(self, status, code, msg):
        super().__init__(msg)
        self._status = status
        self._code = code
        self._msg = msg

    def get_status_code(self):
        return self._status

    def get_error_code(self):
        return self._code

    def get_error_msg(self):
        return self._msg


class _OssStyleError(Exception):
    """Carries status/code/message attributes, like oss2.exceptions.ServerError."""

    def __init__(self, status, code, message):
        super().__init__(message)
        self.status = status
        self.code = code
        self.message = message


class TestClassifyError(unittest.TestCase):
    """Tests for classify_error()."""

    def test_botocore_no_such_key_is_not_found(self):
        from botocore.exceptions import ClientError
        from cloudstash.storage.errors import ErrorKind, classify_error

        exc = ClientError(
            {'Error': {'Code': 'NoSuchKey', 'Message': 'The specified key does not exist.'},
             'ResponseMetadata': {'HTTPStatusCode': 404}},
            'GetObject',
        )
        error = classify_error(exc, 's3')

        self.assertEqual(error.kind, ErrorKind.NOT_FOUND)
        self.assertEqual(error.status, 404)
        self.assertEqual(error.provider, 's3')
        self.assertIn('does not exist', error.detail)

    def test_botocore_access_denied_is_auth(self):
        from botocore.exceptions import ClientError
        from cloudstash.storage.errors import ErrorKind, classify_error

        exc = ClientError(
            {'Error': {'Code': 'AccessDenied', 'Message': 'Access Denied'},
             'ResponseMetadata': {'HTTPStatusCode': 403}},
            'HeadBucket',
        )
        self.assertEqual(classify_error(exc, 'r2').kind, ErrorKind.AUTH)

    def test_cos_getters_are_read(self):
        from cloudstash.storage.errors import ErrorKind, classify_error

        error = classify_error(_CosStyleError(403, 'SignatureDoesNotMatch', 'bad signature'), 'cos')

        self.assertEqual(error.kind, ErrorKind.AUTH)
        self.assertEqual(error.detail, 'bad signature')

    def test_oss_attributes_are_read(self):
        from cloudstash.storage.errors import ErrorKind, classify_error

        error = classify_error(_OssStyleError(404, 'NoSuchBucket', 'bucket missing'), 'oss')
        self.assertEqual(error.kind, ErrorKind.NOT_FOUND)

    def test_requests_connection_error_is_network(self):
        from cloudstash.storage.errors import ErrorKind, classify_error

        error = classify_error(requests.exceptions.ConnectionError("refused"), 'gitee')
        self.assertEqual(error.kind, ErrorKind.NETWORK)

    def test_proxy_error_mentions_proxy(self):
        from cloudstash.storage.errors import ErrorKind, classify_error

        error = classify_error(requests.exceptions.ProxyError("tunnel failed"), 'smms')

        self.assertEqual(error.kind, ErrorKind.NETWORK)
        self.assertIn('proxy', error.message)

    def test_sdk_transport_error_matched_by_name(self):
        from cloudstash.storage.errors import ErrorKind, classify_error

        error = classify_error(EndpointConnectionError("could not connect"), 's3')
        self.assertEqual(error.kind, ErrorKind.NETWORK)

    def test_too_large(self):
        from cloudstash.storage.errors import BackendResponseError, ErrorKind, classify_error

        error = classify_error(BackendResponseError(413, message="too big"), 'lsky')
        self.assertEqual(error.kind, ErrorKind.TOO_LARGE)

    def test_qiniu_612_is_not_found_only_for_qiniu(self):
        from cloudstash.storage.errors import BackendResponseError, ErrorKind, classify_error

        self.assertEqual(classify_error(BackendResponseError(612), 'qiniu').kind, ErrorKind.NOT_FOUND)
        self.assertEqual(classify_error(BackendResponseError(612), 's3').kind, ErrorKind.UNKNOWN)

    def test_json_decode_error_is_malformed(self):
        from cloudstash.storage.errors import ErrorKind, MalformedResponseError, classify_error

        try:
            json.loads("<html>")
        except json.JSONDecodeError as exc:
            error = classify_error(exc, 'gitee')

        self.assertIsInstance(error, MalformedResponseError)
        self.assertEqual(error.kind, ErrorKind.MALFORMED_RESPONSE)

    def test_config_error_is_invalid_config(self):
        from cloudstash.config_validator import ConfigValidationError
        from cloudstash.storage.errors import ErrorKind, classify_error

        error = classify_error(ConfigValidationError("bucket missing"), 's3')

        self.assertEqual(error.kind, ErrorKind.INVALID_CONFIG)
        self.assertEqual(error.detail, "bucket missing")

    def test_storage_error_passes_through(self):
        from cloudstash.storage.errors import ErrorKind, StorageError, classify_error

        original = StorageError(ErrorKind.CANCELLED)
        error = classify_error(original, 'gcs')

        self.assertIs(error, original)
        self.assertEqual(error.provider, 'gcs')

    def test_local_file_missing_is_not_found(self):
        from cloudstash.storage.errors import ErrorKind, classify_error

        self.assertEqual(classify_error(FileNotFoundError("x"), 'oss').kind, ErrorKind.NOT_FOUND)

    def test_unrecognized_is_unknown(self):
        from cloudstash.storage.errors import ErrorKind, classify_error

        error = classify_error(RuntimeError("boom"), 'obs')

        self.assertEqual(error.kind, ErrorKind.UNKNOWN)
        self.assertEqual(error.detail, "boom")


class TestStorageError(unittest.TestCase):
    """Tests for StorageError rendering."""

    def test_default_message_and_detail(self):
        from cloudstash.storage.errors import ErrorKind, StorageError

        error = StorageError(ErrorKind.NOT_FOUND, detail="No such object: a.txt")

        self.assertIn("not found", error.message)
        self.assertTrue(str(error).endswith("(No such object: a.txt)"))

    def test_to_dict(self):
        from cloudstash.storage.errors import ErrorKind, StorageError

        data = StorageError(ErrorKind.AUTH, provider='oss', status=403).to_dict()

        self.assertEqual(data['kind'], 'auth')
        self.assertEqual(data['provider'], 'oss')
        self.assertEqual(data['status'], 403)

    def test_describe_for_user(self):
        from cloudstash.storage.errors import ErrorKind, StorageError, describe_for_user

        text = describe_for_user(StorageError(ErrorKind.AUTH, detail="InvalidAccessKeyId"))

        self.assertTrue(text.startswith("Access denied"))
        self.assertIn("InvalidAccessKeyId", text)

    def test_is_not_found(self):
        from cloudstash.storage.errors import BackendResponseError, is_not_found

        self.assertTrue(is_not_found(BackendResponseError(404)))
        self.assertFalse(is_not_found(BackendResponseError(500)))


if __name__ == '__main__':
    unittest.main()
