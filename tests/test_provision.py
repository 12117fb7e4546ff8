from __future__ import annotations

import os
import stat
import tempfile
import threading
import unittest
from pathlib import Path

from _testutil import RecordingDecrypt, ensure_repo_on_path, write_assets


class TestProvision(unittest.TestCase):
    def setUp(self) -> None:
        ensure_repo_on_path()

    def test_completeness_and_untouched_files(self) -> None:
        from provisioner.provision import provision

        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            write_assets(root, {"a.bin": b"A", "sub/b.bin": b"B", "sub/deep/c.obj": b"C"})
            (root / "README.md").write_text("keep", encoding="utf-8")
            (root / "sub" / "notes.gpg.txt").write_text("not an asset", encoding="utf-8")

            report = provision(root, "secret", decrypt=RecordingDecrypt())

            self.assertEqual(len(report.assets), 3)
            self.assertEqual((root / "a.bin").read_bytes(), b"A")
            self.assertEqual((root / "sub" / "b.bin").read_bytes(), b"B")
            self.assertEqual((root / "sub" / "deep" / "c.obj").read_bytes(), b"C")
            self.assertEqual((root / "README.md").read_text(encoding="utf-8"), "keep")
            self.assertFalse((root / "sub" / "notes").exists())
            # Originals are kept.
            self.assertTrue((root / "a.bin.gpg").exists())

    def test_report_order_is_lexicographic(self) -> None:
        from provisioner.provision import provision

        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            write_assets(root, {"z.bin": b"z", "a/y.bin": b"y", "a.bin": b"x", "B.bin": b"w"})
            report = provision(root, "secret", decrypt=RecordingDecrypt())

            rel = [p.relative_to(root).as_posix() for p, _ in report.pairs()]
            self.assertEqual(rel, ["B.bin.gpg", "a.bin.gpg", "a/y.bin.gpg", "z.bin.gpg"])
            for enc, plain in report.pairs():
                self.assertEqual(plain.name + ".gpg", enc.name)
                self.assertEqual(plain.parent, enc.parent)

    def test_idempotent(self) -> None:
        from provisioner.provision import provision

        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            write_assets(root, {"m/a.bin": b"\x00\x01mesh", "m/b.bin": b"other"})

            r1 = provision(root, "secret", decrypt=RecordingDecrypt())
            first = (root / "m" / "a.bin").read_bytes()
            r2 = provision(root, "secret", decrypt=RecordingDecrypt())

            self.assertEqual(first, (root / "m" / "a.bin").read_bytes())
            self.assertEqual(r1.to_dict(), r2.to_dict())

    def test_overwrites_existing_plaintext(self) -> None:
        from provisioner.provision import provision

        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            write_assets(root, {"a.bin": b"fresh"})
            (root / "a.bin").write_bytes(b"stale")
            provision(root, "secret", decrypt=RecordingDecrypt())
            self.assertEqual((root / "a.bin").read_bytes(), b"fresh")

    def test_fail_fast_on_third_asset(self) -> None:
        from provisioner.errors import DecryptionFailed
        from provisioner.provision import provision

        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            write_assets(root, {"1.bin": b"one", "2.bin": b"two", "3.bin": b"BROKEN", "4.bin": b"four", "5.bin": b"five"})
            decrypt = RecordingDecrypt(fail_on=b"BROKEN")

            with self.assertRaises(DecryptionFailed) as ctx:
                provision(root, "secret", decrypt=decrypt)

            self.assertEqual(ctx.exception.path, root / "3.bin.gpg")
            self.assertIn("3.bin.gpg", str(ctx.exception))
            self.assertEqual(len(decrypt.calls), 3)
            self.assertTrue((root / "1.bin").exists())
            self.assertTrue((root / "2.bin").exists())
            self.assertFalse((root / "3.bin").exists())
            self.assertFalse((root / "4.bin").exists())
            self.assertFalse((root / "5.bin").exists())

    def test_wrong_passphrase_writes_nothing(self) -> None:
        from provisioner.errors import DecryptionFailed
        from provisioner.provision import provision

        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            write_assets(root, {"meshes/a.bin": b"payload"}, passphrase="secret")

            with self.assertRaises(DecryptionFailed) as ctx:
                provision(root, "wrong", decrypt=RecordingDecrypt())

            self.assertEqual(ctx.exception.path, root / "meshes" / "a.bin.gpg")
            self.assertIsNotNone(ctx.exception.digest)
            self.assertNotIn("wrong", str(ctx.exception))
            self.assertEqual(sorted(p.name for p in (root / "meshes").iterdir()), ["a.bin.gpg"])

    def test_missing_root(self) -> None:
        from provisioner.errors import RootNotFound
        from provisioner.provision import provision

        with tempfile.TemporaryDirectory() as td:
            missing = Path(td) / "nope"
            decrypt = RecordingDecrypt()
            with self.assertRaises(RootNotFound):
                provision(missing, "secret", decrypt=decrypt)
            self.assertEqual(decrypt.calls, [])
            self.assertEqual(list(Path(td).iterdir()), [])

    def test_root_is_a_file(self) -> None:
        from provisioner.errors import RootNotFound
        from provisioner.provision import provision

        with tempfile.TemporaryDirectory() as td:
            f = Path(td) / "file"
            f.write_bytes(b"")
            with self.assertRaises(RootNotFound):
                provision(f, "secret", decrypt=RecordingDecrypt())

    def test_empty_passphrase_rejected_before_decrypt(self) -> None:
        from provisioner.errors import PassphraseMissing
        from provisioner.provision import provision

        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            write_assets(root, {"a.bin": b"A"})
            decrypt = RecordingDecrypt()
            with self.assertRaises(PassphraseMissing):
                provision(root, "", decrypt=decrypt)
            self.assertEqual(decrypt.calls, [])
            self.assertFalse((root / "a.bin").exists())

    def test_write_failed_names_destination(self) -> None:
        from provisioner.errors import WriteFailed
        from provisioner.provision import provision

        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            write_assets(root, {"a.bin": b"A"})
            # A directory already occupies the plaintext path.
            (root / "a.bin").mkdir()
            (root / "a.bin" / "keep").write_bytes(b"")

            with self.assertRaises(WriteFailed) as ctx:
                provision(root, "secret", decrypt=RecordingDecrypt())

            self.assertEqual(ctx.exception.path, root / "a.bin")
            leftovers = [p.name for p in root.iterdir() if p.name.endswith(".tmp")]
            self.assertEqual(leftovers, [])

    def test_cancel_between_assets(self) -> None:
        from provisioner.errors import ProvisionCancelled
        from provisioner.provision import provision

        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            write_assets(root, {"1.bin": b"1", "2.bin": b"2", "3.bin": b"3"})
            cancel = threading.Event()
            decrypt = RecordingDecrypt()

            with self.assertRaises(ProvisionCancelled) as ctx:
                provision(root, "secret", decrypt=decrypt, cancel=cancel, on_asset=lambda a: cancel.set())

            self.assertEqual(len(ctx.exception.report.assets), 1)
            self.assertEqual(len(decrypt.calls), 1)
            self.assertFalse((root / "2.bin").exists())

    def test_report_to_dict(self) -> None:
        from provisioner.provision import provision
        from provisioner.utils.hashing import sha256_bytes

        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            write_assets(root, {"sub/a.bin": b"hello"})
            d = provision(root, "secret", decrypt=RecordingDecrypt()).to_dict()

            self.assertEqual(d["count"], 1)
            self.assertEqual(d["assets"][0]["encrypted"], "sub/a.bin.gpg")
            self.assertEqual(d["assets"][0]["plaintext"], "sub/a.bin")
            self.assertEqual(d["assets"][0]["sha256"], sha256_bytes(b"hello"))
            self.assertEqual(d["assets"][0]["bytes"], 5)


    def test_non_bytes_plaintext_is_decryption_failure(self) -> None:
        from provisioner.errors import DecryptionFailed
        from provisioner.provision import provision

        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            write_assets(root, {"a.bin": b"A", "b.bin": b"B"})

            with self.assertRaises(DecryptionFailed) as ctx:
                provision(root, "secret", decrypt=lambda c, p: "text")

            self.assertEqual(ctx.exception.path, root / "a.bin.gpg")
            self.assertIn("str", str(ctx.exception))
            self.assertFalse((root / "a.bin").exists())
            self.assertFalse((root / "b.bin").exists())

    def test_bytearray_plaintext_accepted(self) -> None:
        from provisioner.provision import provision

        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            write_assets(root, {"a.bin": b"A"})
            provision(root, "secret", decrypt=lambda c, p: bytearray(b"plain"))
            self.assertEqual((root / "a.bin").read_bytes(), b"plain")


@unittest.skipIf(os.name == "nt" or os.geteuid() == 0, "permission bits are not enforced for this user")
class TestProvisionPermissions(unittest.TestCase):
    def setUp(self) -> None:
        ensure_repo_on_path()

    def test_unreadable_root(self) -> None:
        from provisioner.errors import RootNotFound
        from provisioner.provision import provision

        with tempfile.TemporaryDirectory() as td:
            root = Path(td) / "locked"
            root.mkdir()
            write_assets(root, {"a.bin": b"A"})
            decrypt = RecordingDecrypt()
            os.chmod(root, 0)
            try:
                with self.assertRaises(RootNotFound) as ctx:
                    provision(root, "secret", decrypt=decrypt)
            finally:
                os.chmod(root, stat.S_IRWXU)

            self.assertEqual(ctx.exception.reason, "is not readable")
            self.assertEqual(decrypt.calls, [])
            self.assertFalse((root / "a.bin").exists())

    def test_unreadable_asset_stops_the_run(self) -> None:
        from provisioner.errors import DecryptionFailed
        from provisioner.provision import provision

        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            write_assets(root, {"1.bin": b"one", "2.bin": b"two", "3.bin": b"three"})
            locked = root / "2.bin.gpg"
            decrypt = RecordingDecrypt()
            os.chmod(locked, 0)
            try:
                with self.assertRaises(DecryptionFailed) as ctx:
                    provision(root, "secret", decrypt=decrypt)
            finally:
                os.chmod(locked, stat.S_IRUSR | stat.S_IWUSR)

            self.assertEqual(ctx.exception.kind, "decryption_failed")
            self.assertEqual(ctx.exception.path, locked)
            self.assertIsInstance(ctx.exception.cause, PermissionError)
            self.assertIsNone(ctx.exception.digest)
            self.assertEqual(len(decrypt.calls), 1)
            self.assertTrue((root / "1.bin").exists())
            self.assertFalse((root / "2.bin").exists())
            self.assertFalse((root / "3.bin").exists())


if __name__ == "__main__":
    unittest.main()
