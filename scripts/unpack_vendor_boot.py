#!/usr/bin/env python3
"""
Unpack vendor_ramdisk.img and vendor_dtb.img from an Android vendor_boot.img
into the current directory, then print the embedded kernel command line and
product name.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import NoReturn, Sequence, Union

from vendor_boot import UsageError, VendorBootError, extract


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> NoReturn:
        raise UsageError(message)


def _show(value: Union[str, bytes]) -> str:
    if isinstance(value, str) and value.isprintable():
        return f"'{value}'"
    return repr(value)


def main(argv: Sequence[str]) -> int:
    parser = _ArgumentParser(
        description="Extract the vendor ramdisk and dtb from a vendor boot image.",
    )
    parser.add_argument("image", type=Path, help="path to vendor_boot.img")

    try:
        args = parser.parse_args(argv)
    except UsageError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return 2

    try:
        header = extract(args.image)
    except VendorBootError as exc:
        print(f"unpack_vendor_boot error: {exc}", file=sys.stderr)
        return 1

    print(f"cmdline:      {_show(header.cmdline_text)}")
    print(f"product name: {_show(header.name_text)}")
    return 0


def _entry() -> None:
    raise SystemExit(main(sys.argv[1:]))


if __name__ == "__main__":
    _entry()
