from __future__ import annotations

import contextlib
import io
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path

from cryptarchive.cli import main


class CLIIntegrationTests(unittest.TestCase):
    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.workspace = Path(tmp.name)
        self.source = self.workspace / "notes.txt"
        self.source.write_bytes(b"hello world\n" * 500 + os.urandom(2048))

    def run_cli(self, args, *, expect: int | None = 0):
        cmd = [sys.executable, "-m", "cryptarchive.cli"] + list(args)
        env = os.environ.copy()
        repo_root = Path(__file__).resolve().parent
        existing = env.get("PYTHONPATH", "")
        env["PYTHONPATH"] = str(repo_root) if not existing else f"{repo_root}{os.pathsep}{existing}"
        proc = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            env=env,
        )
        if expect is not None and proc.returncode != expect:
            raise AssertionError(
                f"CLI exited {proc.returncode}, expected {expect}\nCommand: {' '.join(cmd)}\nSTDOUT:\n{proc.stdout}\nSTDERR:\n{proc.stderr}"
            )
        return proc

    def run_main(self, args) -> str:
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            main(list(args))
        return out.getvalue()

    def test_keygen_seal_info_unseal(self):
        key_file = self.workspace / "key.hex"
        archive = self.workspace / "notes.cra"
        restored = self.workspace / "restored.txt"

        self.run_main(["keygen", "--output", str(key_file)])
        self.assertEqual(64, len(key_file.read_text(encoding="ascii").strip()))

        self.run_main(["seal", str(self.source), str(archive), "--key-file", str(key_file), "--compression", "lzma"])
        self.assertTrue(archive.exists())

        info = self.run_main(["info", str(archive)])
        self.assertIn("HKDF_SHA256_AESCTR_HMAC__SYMMETRIC__NONE", info)
        self.assertIn("Compression: lzma", info)

        self.run_main(["unseal", str(archive), str(restored), "--key-file", str(key_file), "--quiet"])
        self.assertEqual(self.source.read_bytes(), restored.read_bytes())

    def test_signed_profile_workflow(self):
        key = self.run_main(["keygen"]).strip()
        private = self.workspace / "sign.pem"
        archive = self.workspace / "signed.cra"
        restored = self.workspace / "restored.txt"

        self.run_main(["signkey", str(private)])
        self.assertTrue(Path(str(private) + ".pub").exists())
        self.run_main(
            ["seal", str(self.source), str(archive), "--key", key, "--profile", "aes-hmac-ecdsa", "--signing-key", str(private)]
        )
        self.run_main(["unseal", str(archive), str(restored), "--key", key, "--signing-key", str(private) + ".pub"])
        self.assertEqual(self.source.read_bytes(), restored.read_bytes())

    def test_password_keygen_is_repeatable(self):
        args = ["keygen", "--password", "hunter2", "--salt", "00112233445566778899aabbccddeeff", "--bits", "128"]
        first = self.run_main(args).strip()
        second = self.run_main(args).strip()
        self.assertEqual(first, second)
        self.assertEqual(32, len(first))

    def test_wrong_key_exits_nonzero(self):
        good = self.run_cli(["keygen"]).stdout.strip()
        bad = self.run_cli(["keygen"]).stdout.strip()
        archive = self.workspace / "notes.cra"
        self.run_cli(["seal", str(self.source), str(archive), "--key", good, "--profile", "xchacha"])

        restored = self.workspace / "restored.txt"
        proc = self.run_cli(["unseal", str(archive), str(restored), "--key", bad], expect=2)
        self.assertIn("Failed to create decode stream", proc.stderr)
        self.assertFalse(restored.exists())

    def test_missing_key_and_missing_archive(self):
        with contextlib.redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit) as cm:
                main(["unseal", str(self.workspace / "absent.cra"), str(self.workspace / "out")])
            self.assertEqual(2, cm.exception.code)
            with self.assertRaises(SystemExit) as cm:
                main(["info", str(self.workspace / "absent.cra")])
            self.assertEqual(2, cm.exception.code)


if __name__ == "__main__":
    unittest.main()
