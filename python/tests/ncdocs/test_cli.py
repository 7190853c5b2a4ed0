import os, io, json, tempfile
import unittest as test
from unittest.mock import patch

from ncdocs import cli
from ncdocs.sim import SimNextcloudSession

tmpdir = tempfile.TemporaryDirectory(prefix="_test_ncdocs_cli.")

def tearDownModule():
    tmpdir.cleanup()

cfgfile = os.path.join(tmpdir.name, "ncdocs.yml")
with open(cfgfile, 'w') as fd:
    fd.write("nextcloud:\n  url: https://cloud.example.com\n  username: alice\n  password: s3cret\n")

class TestCLI(test.TestCase):

    def setUp(self):
        self.sim = SimNextcloudSession()
        self.patcher = patch('requests.Session', return_value=self.sim)
        self.patcher.start()
        self.out = io.StringIO()

        self.infile = os.path.join(tmpdir.name, "invoice.pdf")
        with open(self.infile, 'wb') as fd:
            fd.write(b"%PDF-1.4\n%")

    def tearDown(self):
        self.patcher.stop()

    def run_cli(self, *args):
        return cli.main("ncdocs", ["-q", "-c", cfgfile] + list(args), self.out)

    def output(self):
        return json.loads(self.out.getvalue())

    def test_define_options(self):
        parser = cli.define_options("ncdocs")
        opts = parser.parse_args("-c conf.yml upload -t receipt -y 2024 -S invoice.pdf".split())
        self.assertEqual(opts.cfgfile, "conf.yml")
        self.assertEqual(opts.cmd, "upload")
        self.assertEqual(opts.file, "invoice.pdf")
        self.assertEqual(opts.doctype, "receipt")
        self.assertEqual(opts.year, 2024)
        self.assertIs(opts.reqshare, True)

        opts = parser.parse_args(["upload", "invoice.pdf"])
        self.assertIsNone(opts.reqshare)
        opts = parser.parse_args(["list"])
        self.assertEqual(opts.path, "/")

        with self.assertRaises(SystemExit):
            parser.parse_args(["upload", "-y", "soon", "invoice.pdf"])

    def test_no_command(self):
        with self.assertRaises(cli.Failure) as cm:
            cli.main("ncdocs", ["-q"], self.out)
        self.assertEqual(cm.exception.exitcode, 2)

    @patch.dict(os.environ, {}, clear=True)
    def test_no_credentials(self):
        with self.assertRaises(cli.Failure) as cm:
            cli.main("ncdocs", ["-q", "test"], self.out)
        self.assertEqual(cm.exception.exitcode, 6)
        self.assertIn("NEXTCLOUD_URL", str(cm.exception))

    @patch.dict(os.environ, {"NEXTCLOUD_URL": "https://cloud.example.com", "NEXTCLOUD_USERNAME": "alice",
                             "NEXTCLOUD_PASSWORD": "s3cret"})
    def test_env_credentials(self):
        self.assertEqual(cli.main("ncdocs", ["-q", "test"], self.out), 0)
        self.assertEqual(self.output(), {"success": True})

    def test_bad_config(self):
        badfile = os.path.join(tmpdir.name, "bad.yml")
        with open(badfile, 'w') as fd:
            fd.write("nextcloud: [\n")
        with self.assertRaises(cli.Failure) as cm:
            cli.main("ncdocs", ["-q", "-c", badfile, "test"], self.out)
        self.assertEqual(cm.exception.exitcode, 3)

        with self.assertRaises(cli.Failure) as cm:
            cli.main("ncdocs", ["-q", "-c", os.path.join(tmpdir.name, "missing.yml"), "test"], self.out)
        self.assertEqual(cm.exception.exitcode, 3)

    def test_upload(self):
        self.assertEqual(self.run_cli("upload", "-t", "receipt", "-y", "2024", "-T", "March",
                                      self.infile), 0)
        data = self.output()
        self.assertIs(data['success'], True)
        self.assertTrue(data['nextcloudPath'].startswith("/documents/receipt/2024/"))
        self.assertTrue(data['nextcloudPath'].endswith("_invoice.pdf"))
        self.assertEqual(data['document']['title'], "March")
        self.assertEqual(data['document']['file_size'], 10)
        self.assertEqual(data['document']['mime_type'], "application/pdf")
        self.assertEqual(data['shareUrl'], "https://cloud.example.com/s/Tok0001")
        self.assertEqual(self.sim.files[data['nextcloudPath']][0], b"%PDF-1.4\n%")

    def test_upload_failure(self):
        self.sim.statuses['PUT'] = 507
        with self.assertRaises(cli.Failure) as cm:
            self.run_cli("upload", self.infile)
        self.assertEqual(cm.exception.exitcode, 5)
        data = self.output()
        self.assertIs(data['success'], False)
        self.assertEqual(data['errorKind'], "UploadError")

    def test_upload_missing_file(self):
        with self.assertRaises(cli.Failure) as cm:
            self.run_cli("upload", os.path.join(tmpdir.name, "nope.pdf"))
        self.assertEqual(cm.exception.exitcode, 3)
        self.assertEqual(self.sim.requests, [])

    def test_download(self):
        self.sim.add_file("/documents/a.pdf", b"0123456789", "application/pdf")
        outfile = os.path.join(tmpdir.name, "a.pdf")
        self.assertEqual(self.run_cli("download", "-o", outfile, "/documents/a.pdf"), 0)
        with open(outfile, 'rb') as fd:
            self.assertEqual(fd.read(), b"0123456789")
        data = self.output()
        self.assertEqual(data['size'], 10)
        self.assertEqual(data['contentType'], "application/pdf")

        with self.assertRaises(cli.Failure) as cm:
            self.run_cli("download", "-o", outfile, "/documents/nope.pdf")
        self.assertEqual(cm.exception.exitcode, 5)

    def test_list(self):
        self.sim.add_file("/documents/receipt/2024/a.pdf", b"0123456789", "application/pdf")
        self.sim.add_file("/documents/receipt/2024/b.pdf", b"01234", "application/pdf")
        self.sim.add_folder("/documents/receipt/2024/old")
        self.assertEqual(self.run_cli("list", "/documents/receipt/2024"), 0)
        data = self.output()
        self.assertEqual(len(data), 3)
        self.assertEqual(len([f for f in data if f['isFolder']]), 1)

        with self.assertRaises(cli.Failure) as cm:
            self.run_cli("list", "/documents/../x")
        self.assertEqual(cm.exception.exitcode, 2)

    def test_share(self):
        self.sim.add_file("/a.pdf", b"x")
        self.assertEqual(self.run_cli("share", "/a.pdf"), 0)
        self.assertEqual(self.output()['shareUrl'], "https://cloud.example.com/s/Tok0001")

        self.out = io.StringIO()
        with self.assertRaises(cli.Failure) as cm:
            self.run_cli("share", "/nope.pdf")
        self.assertEqual(cm.exception.exitcode, 5)
        self.assertIsNone(self.output()['shareUrl'])

    def test_test(self):
        self.assertEqual(self.run_cli("test"), 0)
        self.sim.unreachable.add("PROPFIND")
        with self.assertRaises(cli.Failure) as cm:
            self.run_cli("test")
        self.assertEqual(cm.exception.exitcode, 5)


if __name__ == '__main__':
    test.main()
