"""
Tests for source PDF retrieval and the read-only PDF summary.
"""
import asyncio
import hashlib
import tempfile
import unittest
from pathlib import Path

import httpx

from inksign.adapters.source_pdf import SourcePdfAdapter, SourcePdfConfig, is_remote_source
from inksign.render.inspect import summarize_pdf

from pdf_helpers import make_pdf


def _adapter(handler=None, max_bytes=10 * 1024 * 1024):
    transport = httpx.MockTransport(handler) if handler else None
    return SourcePdfAdapter(SourcePdfConfig(timeout_seconds=5, max_bytes=max_bytes, transport=transport))


class TestSourcePdfAdapter(unittest.TestCase):

    def setUp(self):
        self.pdf = make_pdf()

    def test_remote_source(self):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, content=self.pdf)

        content = asyncio.run(_adapter(handler).fetch('https://cdn.example.com/docs/contract.pdf'))
        self.assertEqual(content, self.pdf)
        self.assertEqual(seen, ['https://cdn.example.com/docs/contract.pdf'])

    def test_remote_error_status(self):
        with self.assertRaisesRegex(RuntimeError, 'download failed'):
            asyncio.run(_adapter(lambda request: httpx.Response(403)).fetch('https://cdn.example.com/x.pdf'))

    def test_local_source(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / 'contract.pdf'
            path.write_bytes(self.pdf)
            self.assertEqual(asyncio.run(_adapter().fetch(path)), self.pdf)

    def test_rejected_sources(self):
        with tempfile.TemporaryDirectory() as tmp:
            empty = Path(tmp) / 'empty.pdf'
            empty.write_bytes(b'')
            big = Path(tmp) / 'big.pdf'
            big.write_bytes(self.pdf)
            cases = [
                (_adapter(), '', 'no source'),
                (_adapter(), str(Path(tmp) / 'missing.pdf'), 'not found'),
                (_adapter(), str(empty), 'empty'),
                (_adapter(max_bytes=10), str(big), 'exceeds'),
            ]
            for adapter, source, message in cases:
                with self.subTest(source=source):
                    with self.assertRaisesRegex(RuntimeError, message):
                        asyncio.run(adapter.fetch(source))

    def test_is_remote_source(self):
        self.assertTrue(is_remote_source('HTTPS://cdn.example.com/a.pdf'))
        self.assertTrue(is_remote_source('http://cdn.example.com/a.pdf'))
        self.assertFalse(is_remote_source('/var/data/a.pdf'))


class TestSummarizePdf(unittest.TestCase):

    def test_summary(self):
        pdf = make_pdf(pages=2, size=(595, 842))
        summary = summarize_pdf(pdf)
        self.assertEqual(summary['page_count'], 2)
        self.assertEqual(summary['pages'][1], {'width': 595.0, 'height': 842.0})
        self.assertFalse(summary['encrypted'])
        self.assertEqual(summary['bytes'], len(pdf))
        self.assertEqual(summary['sha256'], hashlib.sha256(pdf).hexdigest())


if __name__ == '__main__':
    unittest.main()
