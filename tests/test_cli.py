"""
Tests for the JSON command line: output shape and exit codes.
"""
import contextlib
import io
import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

import main
from inksign.config import Settings
from inksign.state import save_document
from inksign.storage import activities_path, append_activity
from inksign.types import ActivityAction

from pdf_helpers import make_document, make_pdf, page_count, page_text


class CliTestCase(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.settings = Settings(data_dir=self.root / 'data', enable_remote_fonts=False)
        self._patches = [
            patch('main.get_settings', return_value=self.settings),
            patch('inksign.storage.get_settings', return_value=self.settings),
            patch('main._configure_logging'),
        ]
        for item in self._patches:
            item.start()

        self.pdf_path = self.root / 'contract.pdf'
        self.pdf_path.write_bytes(make_pdf())
        self.document = make_document()
        self.document_json = json.dumps(self.document.model_dump(mode='json'))

    def tearDown(self):
        for item in reversed(self._patches):
            item.stop()
        self._tmp.cleanup()

    def _main(self, *argv):
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            code = main.main(list(argv))
        return code, json.loads(out.getvalue())


class TestInspectCommand(CliTestCase):

    def test_summary(self):
        code, payload = self._main('inspect', '--pdf', str(self.pdf_path))
        self.assertEqual(code, 0)
        self.assertEqual(payload['page_count'], 1)
        self.assertEqual(payload['pdf'], str(self.pdf_path))

    def test_missing_pdf(self):
        code, payload = self._main('inspect', '--pdf', str(self.root / 'missing.pdf'))
        self.assertEqual(code, 2)
        self.assertEqual(payload['status'], 'error')

    def test_unreadable_pdf(self):
        broken = self.root / 'broken.pdf'
        broken.write_bytes(b'not a pdf')
        code, payload = self._main('inspect', '--pdf', str(broken))
        self.assertEqual(code, 2)
        self.assertIn('Unreadable PDF', payload['message'])


class TestAuditCommand(CliTestCase):

    def _audit(self, *extra):
        out_path = self.root / 'audited.pdf'
        result = self._main(
            'audit',
            '--pdf', str(self.pdf_path),
            '--document', self.document_json,
            '--out', str(out_path),
            *extra,
        )
        return result, out_path

    def test_appends_page_from_stored_history(self):
        save_document(self.document)
        append_activity(self.document.id, ActivityAction.created, fileName='contract.pdf')

        (code, payload), out_path = self._audit()

        self.assertEqual(code, 0)
        self.assertTrue(payload['audit_page_added'])
        self.assertEqual(payload['activities'], 1)
        self.assertEqual(payload['page_count'], 2)
        self.assertEqual(page_count(out_path.read_bytes()), 2)
        self.assertIn('Document created', page_text(out_path.read_bytes(), 1))

    def test_synthetic_history(self):
        (code, payload), out_path = self._audit('--synthetic-history')
        self.assertEqual(code, 0)
        self.assertEqual(payload['activities'], 6)
        self.assertIn('reconstructed', page_text(out_path.read_bytes(), 1))

    def test_corrupt_history_is_reported(self):
        save_document(self.document)
        activities_path(self.document.id).write_text('not json\n', encoding='utf-8')

        (code, payload), out_path = self._audit()

        self.assertEqual(code, 2)
        self.assertEqual(payload['status'], 'error')
        self.assertIn('corrupt activity record', payload['message'])
        self.assertFalse(out_path.exists())

    def test_invalid_document_json(self):
        out_path = self.root / 'audited.pdf'
        code, payload = self._main(
            'audit', '--pdf', str(self.pdf_path), '--document', '{"name": 1', '--out', str(out_path)
        )
        self.assertEqual(code, 2)
        self.assertIn('Invalid input', payload['message'])


if __name__ == '__main__':
    unittest.main()
