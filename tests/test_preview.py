"""Tests for cloudstash/storage/preview.py: the content preview gate."""

import unittest
from unittest.mock import Mock


class TestBuildPreview(unittest.TestCase):
    """Tests for build_preview()."""

    def test_over_limit_skips_body(self):
        from cloudstash.storage.preview import build_preview

        fetch = Mock()
        preview = build_preview('notes.txt', 1025, 'text/plain', fetch, max_size=1024)

        self.assertTrue(preview.too_large)
        self.assertEqual(preview.size, 1025)
        self.assertIsNone(preview.content)
        fetch.assert_not_called()

    def test_at_limit_returns_content(self):
        from cloudstash.storage.preview import build_preview

        body = b'x' * 1024
        preview = build_preview('notes.txt', 1024, 'text/plain', lambda: body, max_size=1024)

        self.assertFalse(preview.too_large)
        self.assertEqual(preview.content, 'x' * 1024)

    def test_binary_gets_placeholder(self):
        from cloudstash.storage.preview import build_preview

        fetch = Mock()
        preview = build_preview('photo.png', 2048, 'image/png', fetch)

        self.assertTrue(preview.is_binary)
        self.assertIn('image/png', preview.content)
        fetch.assert_not_called()

    def test_generic_type_guessed_from_extension(self):
        from cloudstash.storage.preview import build_preview

        preview = build_preview('data/config.json', 2, 'application/octet-stream', lambda: b'{}')

        self.assertEqual(preview.content_type, 'application/json')
        self.assertEqual(preview.content, '{}')

    def test_markdown_without_type_is_text(self):
        from cloudstash.storage.preview import effective_content_type, is_text_content_type

        content_type = effective_content_type(None, 'README.md')
        self.assertTrue(is_text_content_type(content_type))

    def test_invalid_utf8_is_replaced(self):
        from cloudstash.storage.preview import build_preview

        preview = build_preview('a.txt', 3, 'text/plain; charset=utf-8', lambda: b'a\xffb')
        self.assertEqual(preview.content, 'a\ufffdb')

    def test_structured_suffix_types_are_text(self):
        from cloudstash.storage.preview import is_text_content_type

        self.assertTrue(is_text_content_type('application/vnd.api+json'))
        self.assertTrue(is_text_content_type('application/javascript'))
        self.assertFalse(is_text_content_type('application/zip'))

    def test_rejects_non_positive_limit(self):
        from cloudstash.storage.preview import build_preview

        with self.assertRaises(ValueError):
            build_preview('a.txt', 1, 'text/plain', Mock(), max_size=0)


if __name__ == '__main__':
    unittest.main()
