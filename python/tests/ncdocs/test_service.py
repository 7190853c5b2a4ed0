import io, os
import unittest as test
from unittest.mock import patch
from datetime import datetime, timezone
from collections.abc import Mapping

from ncdocs import service as svc
from ncdocs.clients.protocol import DAVProtocolClient
from ncdocs.exceptions import *
from ncdocs.sim import SimNextcloudSession

stamp = datetime(2024, 3, 1, 9, 15, 42, 118000, tzinfo=timezone.utc)
docpath = "/documents/receipt/2024/2024-03-01T09-15-42-118Z_invoice.pdf"

def make_config(**kw):
    out = {"nextcloud": {"url": "https://cloud.example.com", "username": "alice",
                         "password": "s3cret"}}
    out.update(kw)
    return out

class TestUploadRequest(test.TestCase):

    def test_size(self):
        self.assertEqual(svc.UploadRequest(b"0123456789", "a.pdf").size, 10)

        data = io.BytesIO(b"0123456789")
        data.seek(4)
        req = svc.UploadRequest(data, "a.pdf")
        self.assertEqual(req.size, 6)
        self.assertEqual(data.tell(), 4)

        self.assertIsNone(svc.UploadRequest(iter([b"a"]), "a.pdf").size)

    def test_blank_fields(self):
        req = svc.UploadRequest(b"", "a.pdf", "", title="", document_type="")
        self.assertIsNone(req.mime_type)
        self.assertIsNone(req.title)
        self.assertIsNone(req.document_type)

class TestUploadResult(test.TestCase):

    def test_success_json(self):
        res = svc.UploadResult(True, docpath, None, None, None, {"title": "x"}, svc.DONE, None)
        self.assertEqual(res.to_json(), {"success": True, "document": {"title": "x"},
                                         "nextcloudPath": docpath})

        res = res._replace(share_url="https://cloud.example.com/s/abc")
        self.assertEqual(res.to_json()['shareUrl'], "https://cloud.example.com/s/abc")

    def test_failure_json(self):
        res = svc.UploadResult(False, None, None, "UploadError", "no room", None, svc.FAILED,
                               svc.FOLDER_ENSURED)
        self.assertEqual(res.to_json(), {"success": False, "error": "no room", "errorKind": "UploadError"})

    def test_error_message(self):
        self.assertTrue(svc.error_message(NetworkError("timed out")).startswith("File server unreachable: "))
        self.assertTrue(svc.error_message(UploadError("/a", 507)).startswith("File server rejected"))
        self.assertEqual(svc.error_message(InvalidNameError("???", "bad name")), "bad name")

class TestDocumentStoreService(test.TestCase):

    def setUp(self):
        self.sim = SimNextcloudSession()
        self.config = make_config()
        self.svc = self.create_service(self.config)

    def create_service(self, config):
        cli = DAVProtocolClient.from_config(config, self.sim, environ={})
        return svc.DocumentStoreService(config, cli)

    def test_ctor(self):
        self.assertIsNotNone(self.svc.sharer)
        self.assertEqual(self.svc.sharer.timeout, 10.0)
        self.assertEqual(self.svc.orchestrator.root_folder, "documents")
        self.assertFalse(self.svc.orchestrator.require_share)

        nosvc = self.create_service(make_config(share={"enabled": False}, root_folder="archive"))
        self.assertIsNone(nosvc.sharer)
        self.assertEqual(nosvc.orchestrator.root_folder, "archive")

    @patch.dict(os.environ, {}, clear=True)
    def test_missing_credentials(self):
        with self.assertRaises(ConfigurationError):
            svc.DocumentStoreService({"nextcloud": {"url": "https://cloud.example.com"}})

    def test_upload(self):
        req = svc.UploadRequest(b"%PDF-1.4\n%", "invoice.pdf", "application/pdf",
                                document_type="receipt", year=2024, client_ref="c-42")
        res = self.svc.orchestrator.upload(req, stamp)

        self.assertTrue(res.success)
        self.assertEqual(res.state, svc.DONE)
        self.assertEqual(res.remote_path, docpath)
        self.assertEqual(res.share_url, "https://cloud.example.com/s/Tok0001")
        self.assertIsNone(res.error_kind)

        doc = res.document
        self.assertEqual(doc['file_path'], docpath)
        self.assertEqual(doc['file_size'], 10)
        self.assertEqual(doc['file_name'], "invoice.pdf")
        self.assertEqual(doc['title'], "invoice.pdf")
        self.assertEqual(doc['document_type'], "receipt")
        self.assertEqual(doc['client_id'], "c-42")
        self.assertIsNone(doc['obligation_id'])
        self.assertEqual(doc['mime_type'], "application/pdf")
        self.assertEqual(doc['uploaded_at'], "2024-03-01T09:15:42.118000+00:00")

        self.assertIn("/documents/receipt/2024", self.sim.folders)
        self.assertEqual(self.sim.files[docpath][0], b"%PDF-1.4\n%")
        self.assertEqual(self.svc.download(docpath).content, b"%PDF-1.4\n%")

        # the share request gets its own timeout
        timeouts = {r[0]: r[3] for r in self.sim.requests}
        self.assertEqual(timeouts['PUT'], 30.0)
        self.assertEqual(timeouts['POST'], 10.0)

        data = res.to_json()
        self.assertEqual(data['nextcloudPath'], docpath)
        self.assertEqual(data['shareUrl'], "https://cloud.example.com/s/Tok0001")

    def test_upload_defaults(self):
        res = self.svc.upload_file(b"abc", "scan 1.png")
        self.assertTrue(res.success)
        year = datetime.now(timezone.utc).year
        self.assertTrue(res.remote_path.startswith(f"/documents/other/{year}/"))
        self.assertTrue(res.remote_path.endswith("_scan_1.png"))
        self.assertEqual(res.document['mime_type'], "application/octet-stream")
        self.assertEqual(res.document['title'], "scan 1.png")
        self.assertEqual(self.sim.files[res.remote_path][1], "application/octet-stream")

    def test_existing_folder(self):
        self.sim.add_folder("/documents/receipt/2024")
        req = svc.UploadRequest(b"x", "invoice.pdf", document_type="receipt", year=2024)
        res = self.svc.orchestrator.upload(req, stamp)
        self.assertTrue(res.success)
        self.assertEqual(self.sim.methods(), ["MKCOL", "PUT", "POST"])

    def test_repeat_upload(self):
        req = svc.UploadRequest(b"one", "invoice.pdf", document_type="receipt", year=2024)
        res1 = self.svc.orchestrator.upload(req, stamp)
        req = svc.UploadRequest(b"two", "invoice.pdf", document_type="receipt", year=2024)
        res2 = self.svc.orchestrator.upload(req, datetime(2024, 3, 1, 9, 15, 43, tzinfo=timezone.utc))
        self.assertTrue(res1.success and res2.success)
        self.assertNotEqual(res1.remote_path, res2.remote_path)
        self.assertEqual(len(self.sim.files), 2)

    def test_bad_name(self):
        res = self.svc.upload_file(b"x", "???")
        self.assertFalse(res.success)
        self.assertEqual(res.error_kind, "InvalidNameError")
        self.assertEqual(res.failed_at, svc.RECEIVED)
        self.assertEqual(self.sim.requests, [])

    def test_provision_failure(self):
        self.sim.statuses['MKCOL'] = 403
        res = self.svc.upload_file(b"x", "invoice.pdf", document_type="receipt")
        self.assertFalse(res.success)
        self.assertEqual(res.state, svc.FAILED)
        self.assertEqual(res.failed_at, svc.RECEIVED)
        self.assertEqual(res.error_kind, "ProvisionError")
        self.assertIn("rejected", res.message)
        self.assertNotIn("PUT", self.sim.methods())
        self.assertEqual(res.to_json()['errorKind'], "ProvisionError")

    def test_upload_failure(self):
        self.sim.statuses['PUT'] = 507
        res = self.svc.upload_file(b"x", "invoice.pdf")
        self.assertFalse(res.success)
        self.assertEqual(res.failed_at, svc.FOLDER_ENSURED)
        self.assertEqual(res.error_kind, "UploadError")
        self.assertNotIn("POST", self.sim.methods())
        self.assertEqual(self.sim.files, {})

    def test_unreachable(self):
        self.sim.unreachable.add("MKCOL")
        res = self.svc.upload_file(b"x", "invoice.pdf")
        self.assertFalse(res.success)
        self.assertEqual(res.error_kind, "NetworkError")
        self.assertTrue(res.message.startswith("File server unreachable"))
        self.assertNotIn("s3cret", res.message)

    def test_share_failure_is_tolerated(self):
        self.sim.unreachable.add("POST")
        req = svc.UploadRequest(b"0123456789", "invoice.pdf", document_type="receipt", year=2024)
        res = self.svc.orchestrator.upload(req, stamp)
        self.assertTrue(res.success)
        self.assertEqual(res.state, svc.DONE)
        self.assertIsNone(res.share_url)
        self.assertNotIn('shareUrl', res.to_json())
        self.assertIn(docpath, self.sim.files)

    def test_share_required(self):
        self.sim.unreachable.add("POST")
        req = svc.UploadRequest(b"0123456789", "invoice.pdf", document_type="receipt", year=2024,
                                require_share=True)
        res = self.svc.orchestrator.upload(req, stamp)
        self.assertFalse(res.success)
        self.assertEqual(res.error_kind, "ShareError")
        self.assertEqual(res.failed_at, svc.SHARE_ATTEMPTED)
        self.assertEqual(res.remote_path, docpath)

        self.sim.unreachable.clear()
        res = self.svc.orchestrator.upload(req, stamp)
        self.assertTrue(res.success)
        self.assertIsNotNone(res.share_url)

    def test_share_required_by_config(self):
        service = self.create_service(make_config(share={"require": True}))
        self.sim.statuses['POST'] = 500
        res = service.upload_file(b"x", "invoice.pdf")
        self.assertFalse(res.success)
        self.assertEqual(res.error_kind, "ShareError")

        res = service.upload_file(b"x", "invoice.pdf", require_share=False)
        self.assertTrue(res.success)

    def test_share_disabled(self):
        service = self.create_service(make_config(share={"enabled": False}))
        res = service.upload_file(b"x", "invoice.pdf")
        self.assertTrue(res.success)
        self.assertIsNone(res.share_url)
        self.assertNotIn("POST", self.sim.methods())
        self.assertIsNone(service.create_share(res.remote_path))

        res = service.upload_file(b"x", "invoice.pdf", require_share=True)
        self.assertFalse(res.success)
        self.assertEqual(res.error_kind, "ShareError")

    def test_download_missing(self):
        with self.assertRaises(NotFoundError):
            self.svc.download("/documents/receipt/2024/nope.pdf")

    def test_list_folder(self):
        self.sim.add_file("/documents/receipt/2024/a.pdf", b"0123456789", "application/pdf")
        self.sim.add_file("/documents/receipt/2024/b.pdf", b"01234", "application/pdf")
        self.sim.add_folder("/documents/receipt/2024/old")
        items = self.svc.list_folder("/documents/receipt/2024")
        self.assertEqual(len(items), 3)
        self.assertEqual(len([i for i in items if i.is_folder]), 1)
        self.assertTrue(all(isinstance(i.to_json(), Mapping) for i in items))

    def test_list_uploaded(self):
        req = svc.UploadRequest(b"0123456789", "invoice.pdf", "application/pdf",
                                document_type="receipt", year=2024)
        res = self.svc.orchestrator.upload(req, stamp)
        self.assertTrue(res.success)

        items = self.svc.list_folder("/documents/receipt/2024")
        self.assertEqual(len(items), 1)
        self.assertFalse(items[0].is_folder)
        self.assertEqual(items[0].path, res.remote_path)
        self.assertEqual(items[0].size, 10)
        self.assertEqual(items[0].content_type, "application/pdf")

    def test_malformed_share_reply(self):
        self.sim._ocs_reply = lambda code, msg, data, http=200: \
            SimNextcloudSession._ocs_reply(self.sim, 200, "OK", {"url": 42, "token": 7}, http)
        req = svc.UploadRequest(b"0123456789", "invoice.pdf", document_type="receipt", year=2024)
        res = self.svc.orchestrator.upload(req, stamp)
        self.assertTrue(res.success)
        self.assertEqual(res.state, svc.DONE)
        self.assertIsNone(res.share_url)
        self.assertIn(docpath, self.sim.files)

        # an upload that must be shared fails without raising
        req = svc.UploadRequest(b"0123456789", "invoice.pdf", document_type="receipt", year=2024,
                                require_share=True)
        res = self.svc.orchestrator.upload(req, stamp)
        self.assertFalse(res.success)
        self.assertEqual(res.error_kind, "ShareError")

    def test_unexpected_share_failure(self):
        with patch.object(self.svc.sharer, 'create_share', side_effect=TypeError("bad reply")):
            res = self.svc.upload_file(b"x", "invoice.pdf")
        self.assertTrue(res.success)
        self.assertIsNone(res.share_url)

    def test_ensure_folder(self):
        self.svc.ensure_folder("/a/b")
        self.svc.ensure_folder("/a/b")
        self.assertIn("/a/b", self.sim.folders)

    def test_create_share(self):
        self.sim.add_file("/a.pdf", b"x")
        self.assertEqual(self.svc.create_share("/a.pdf"), "https://cloud.example.com/s/Tok0001")
        self.assertIsNone(self.svc.create_share("/nope.pdf"))

    def test_test_connection(self):
        self.assertTrue(self.svc.test_connection())
        self.sim.unreachable.add("PROPFIND")
        self.assertFalse(self.svc.test_connection())

        bad = make_config()
        bad['nextcloud']['password'] = "wrong"
        self.sim.unreachable.clear()
        self.assertFalse(self.create_service(bad).test_connection())


if __name__ == '__main__':
    test.main()
