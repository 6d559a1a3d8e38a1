import os
import tempfile
import unittest
from pathlib import Path
from typing import Optional

from epubsnap.env import DEFAULT_MAX_ARCHIVE_BYTES, max_archive_bytes, read_env, read_env_int


def _restore_env(name: str, previous: Optional[str]) -> None:
    if previous is None:
        os.environ.pop(name, None)
    else:
        os.environ[name] = previous


class EnvFileTests(unittest.TestCase):
    def test_read_env_prefers_plain_value(self) -> None:
        prev_plain = os.environ.get("EPUBSNAP_SAMPLE")
        prev_file = os.environ.get("EPUBSNAP_SAMPLE_FILE")
        with tempfile.NamedTemporaryFile("w", encoding="utf-8", delete=False) as tmp:
            tmp.write("from-file")
            file_path = tmp.name
        try:
            os.environ["EPUBSNAP_SAMPLE"] = "from-env"
            os.environ["EPUBSNAP_SAMPLE_FILE"] = file_path
            self.assertEqual(read_env("EPUBSNAP_SAMPLE"), "from-env")
        finally:
            Path(file_path).unlink(missing_ok=True)
            _restore_env("EPUBSNAP_SAMPLE", prev_plain)
            _restore_env("EPUBSNAP_SAMPLE_FILE", prev_file)

    def test_read_env_supports_file_suffix(self) -> None:
        prev_plain = os.environ.get("EPUBSNAP_SAMPLE")
        prev_file = os.environ.get("EPUBSNAP_SAMPLE_FILE")
        with tempfile.NamedTemporaryFile("w", encoding="utf-8", delete=False) as tmp:
            tmp.write("from-file\n")
            file_path = tmp.name
        try:
            os.environ.pop("EPUBSNAP_SAMPLE", None)
            os.environ["EPUBSNAP_SAMPLE_FILE"] = file_path
            self.assertEqual(read_env("EPUBSNAP_SAMPLE"), "from-file")
        finally:
            Path(file_path).unlink(missing_ok=True)
            _restore_env("EPUBSNAP_SAMPLE", prev_plain)
            _restore_env("EPUBSNAP_SAMPLE_FILE", prev_file)

    def test_read_env_falls_back_when_file_missing(self) -> None:
        prev_plain = os.environ.get("EPUBSNAP_SAMPLE")
        prev_file = os.environ.get("EPUBSNAP_SAMPLE_FILE")
        with tempfile.TemporaryDirectory() as tmp:
            try:
                os.environ.pop("EPUBSNAP_SAMPLE", None)
                os.environ["EPUBSNAP_SAMPLE_FILE"] = str(Path(tmp) / "absent.txt")
                self.assertEqual(read_env("EPUBSNAP_SAMPLE", "fallback"), "fallback")
            finally:
                _restore_env("EPUBSNAP_SAMPLE", prev_plain)
                _restore_env("EPUBSNAP_SAMPLE_FILE", prev_file)

    def test_read_env_int_ignores_garbage(self) -> None:
        prev = os.environ.get("EPUBSNAP_SAMPLE")
        try:
            os.environ["EPUBSNAP_SAMPLE"] = " 42 "
            self.assertEqual(read_env_int("EPUBSNAP_SAMPLE", 7), 42)
            os.environ["EPUBSNAP_SAMPLE"] = "lots"
            self.assertEqual(read_env_int("EPUBSNAP_SAMPLE", 7), 7)
        finally:
            _restore_env("EPUBSNAP_SAMPLE", prev)

    def test_max_archive_bytes_can_read_from_file(self) -> None:
        prev_plain = os.environ.get("EPUBSNAP_MAX_ARCHIVE_BYTES")
        prev_file = os.environ.get("EPUBSNAP_MAX_ARCHIVE_BYTES_FILE")
        with tempfile.TemporaryDirectory() as tmp:
            limit_file = Path(tmp) / "limit.txt"
            limit_file.write_text("2048\n", encoding="utf-8")
            try:
                os.environ.pop("EPUBSNAP_MAX_ARCHIVE_BYTES", None)
                os.environ.pop("EPUBSNAP_MAX_ARCHIVE_BYTES_FILE", None)
                self.assertEqual(max_archive_bytes(), DEFAULT_MAX_ARCHIVE_BYTES)
                os.environ["EPUBSNAP_MAX_ARCHIVE_BYTES_FILE"] = str(limit_file)
                self.assertEqual(max_archive_bytes(), 2048)
                os.environ["EPUBSNAP_MAX_ARCHIVE_BYTES"] = "-5"
                self.assertEqual(max_archive_bytes(), 0)
            finally:
                _restore_env("EPUBSNAP_MAX_ARCHIVE_BYTES", prev_plain)
                _restore_env("EPUBSNAP_MAX_ARCHIVE_BYTES_FILE", prev_file)


if __name__ == "__main__":
    unittest.main()
