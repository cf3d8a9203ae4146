#!/usr/bin/env python3
"""Tests the unpack_vendor_boot command line."""

import contextlib
import io
import os
import tempfile
import unittest
from pathlib import Path

from unpack_vendor_boot import main
from vendor_boot import VENDOR_BOOT_MAGIC, VENDOR_DTB, VENDOR_HEADER_SIZE, VENDOR_RAMDISK, VendorBootHeader


def create_vendor_boot(pathname, ramdisk, dtb, magic=VENDOR_BOOT_MAGIC,
                       cmdline=b"androidboot.console=ttyS0", name=b"cuttlefish"):
    """Writes a 4096-byte page vendor boot image and returns its pathname."""
    header = VendorBootHeader(
        magic=magic,
        header_version=3,
        page_size=4096,
        kernel_addr=0x00008000,
        ramdisk_addr=0x01000000,
        vendor_ramdisk_size=len(ramdisk),
        cmdline=cmdline,
        tags_addr=0x00000100,
        name=name,
        header_size=VENDOR_HEADER_SIZE,
        dtb_size=len(dtb),
        dtb_addr=0x01f00000,
    )
    with open(pathname, "wb") as f:
        f.write(header.pack().ljust(4096, b"\x00"))
        f.write(ramdisk.ljust(4096, b"\x00"))
        f.write(dtb.ljust(4096, b"\x00"))
    return pathname


class UnpackVendorBootTest(unittest.TestCase):

    def setUp(self):
        self._temp_dir = tempfile.TemporaryDirectory()
        self.temp_dir = Path(self._temp_dir.name)
        self._old_cwd = os.getcwd()
        os.chdir(self.temp_dir)

    def tearDown(self):
        os.chdir(self._old_cwd)
        self._temp_dir.cleanup()

    def run_main(self, argv):
        stdout = io.StringIO()
        stderr = io.StringIO()
        with contextlib.redirect_stdout(stdout), contextlib.redirect_stderr(stderr):
            status = main(argv)
        return status, stdout.getvalue(), stderr.getvalue()

    def test_extracts_into_current_directory(self):
        image = create_vendor_boot("vendor_boot.img", b"R" * 10, b"D" * 5)
        status, stdout, stderr = self.run_main([image])

        self.assertEqual(status, 0)
        self.assertEqual(Path(VENDOR_RAMDISK).read_bytes(), b"R" * 10)
        self.assertEqual(Path(VENDOR_DTB).read_bytes(), b"D" * 5)
        self.assertEqual(
            stdout.splitlines(),
            ["cmdline:      'androidboot.console=ttyS0'", "product name: 'cuttlefish'"],
        )
        self.assertIn("--> Reading header...", stderr)
        self.assertIn("--> Reading dtb...", stderr)

    def test_control_characters_are_escaped(self):
        image = create_vendor_boot("vendor_boot.img", b"R", b"D",
                                   cmdline=b"quiet\n\x1b[2J", name=b"prod\tx")
        status, stdout, _ = self.run_main([image])
        self.assertEqual(status, 0)
        self.assertEqual(
            stdout.splitlines(),
            ["cmdline:      'quiet\\n\\x1b[2J'", "product name: 'prod\\tx'"],
        )
        self.assertNotIn("\x1b", stdout)

    def test_non_ascii_name_is_shown_as_bytes(self):
        image = create_vendor_boot("vendor_boot.img", b"R", b"D", name=b"\xffprod")
        status, stdout, _ = self.run_main([image])
        self.assertEqual(status, 0)
        self.assertIn(repr(b"\xffprod"), stdout)

    def test_wrong_operand_count(self):
        for argv in ([], ["a.img", "b.img"]):
            status, stdout, stderr = self.run_main(argv)
            self.assertEqual(status, 2)
            self.assertEqual(stdout, "")
            self.assertIn("usage:", stderr)

    def test_bad_magic(self):
        image = create_vendor_boot("vendor_boot.img", b"R", b"D", magic=b"ANDROID!")
        status, stdout, stderr = self.run_main([image])

        self.assertEqual(status, 1)
        self.assertEqual(stdout, "")
        self.assertIn("unpack_vendor_boot error: magic doesn't match!", stderr)
        self.assertIn("b'ANDROID!'", stderr)
        self.assertNotIn("Traceback", stderr)
        self.assertFalse(Path(VENDOR_RAMDISK).exists())
        self.assertFalse(Path(VENDOR_DTB).exists())

    def test_missing_input(self):
        status, _, stderr = self.run_main(["missing.img"])
        self.assertEqual(status, 1)
        self.assertIn("can't open missing.img", stderr)
        self.assertIn("No such file or directory", stderr)

    def test_truncated_input(self):
        image = create_vendor_boot("vendor_boot.img", b"R" * 10, b"D" * 5)
        with open(image, "r+b") as f:
            f.truncate(4096 + 4)
        status, _, stderr = self.run_main([image])

        self.assertEqual(status, 1)
        self.assertIn("end of file reached", stderr)
        self.assertFalse(Path(VENDOR_RAMDISK).exists())


if __name__ == "__main__":
    unittest.main()
