#!/usr/bin/env python3
"""
Reader for Android vendor boot images (header v3, magic ``VNDRBOOT``).

The image is a page-aligned sequence of regions:

    +---------------------+
    | vendor boot header  | o pages
    +---------------------+
    | vendor ramdisk      | p pages
    +---------------------+
    | dtb                 | q pages
    +---------------------+

    o = (2112 + page_size - 1) / page_size
    p = (vendor_ramdisk_size + page_size - 1) / page_size
    q = (dtb_size + page_size - 1) / page_size

Both the vendor ramdisk and the dtb are required (size != 0).
"""

from __future__ import annotations

import os
import struct
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, NamedTuple, Tuple, Union


VENDOR_BOOT_MAGIC = b"VNDRBOOT"
VENDOR_BOOT_MAGIC_SIZE = 8
VENDOR_BOOT_ARGS_SIZE = 2048
VENDOR_BOOT_NAME_SIZE = 16
VENDOR_HEADER_SIZE = 2112

VENDOR_RAMDISK = "vendor_ramdisk.img"
VENDOR_DTB = "vendor_dtb.img"

HEADER_STRUCT = struct.Struct(
    f"<{VENDOR_BOOT_MAGIC_SIZE}s5I{VENDOR_BOOT_ARGS_SIZE}sI{VENDOR_BOOT_NAME_SIZE}s2IQ"
)

class VendorBootError(Exception):
    """Base class for every failure while unpacking a vendor boot image."""


class UsageError(VendorBootError):
    pass


class OpenError(VendorBootError):
    pass


class FormatError(VendorBootError, ValueError):
    pass


class SeekError(VendorBootError):
    pass


class ReadError(VendorBootError):
    def __init__(self, message: str, eof: bool):
        super().__init__(message)
        self.eof = eof


class WriteError(VendorBootError):
    pass


def _reason(exc: OSError) -> str:
    return exc.strerror or str(exc)


def decode_cstring(raw: bytes) -> Union[str, bytes]:
    """Decode a fixed-size, possibly unterminated C string.

    Everything from the first NUL on is dropped. Returns ASCII text, or the
    bounded raw bytes when they are not valid ASCII.
    """
    value = raw.split(b"\x00", 1)[0]
    try:
        return value.decode("ascii")
    except UnicodeDecodeError:
        return value


def pages(size: int, page_size: int) -> int:
    if page_size == 0:
        raise FormatError("invalid page size 0")
    return (size + page_size - 1) // page_size


def align(size: int, page_size: int) -> int:
    return pages(size, page_size) * page_size


@dataclass(frozen=True)
class VendorBootHeader:
    magic: bytes
    header_version: int
    page_size: int
    kernel_addr: int
    ramdisk_addr: int
    vendor_ramdisk_size: int
    cmdline: bytes
    tags_addr: int
    name: bytes
    header_size: int
    dtb_size: int
    dtb_addr: int

    @classmethod
    def unpack(cls, data: bytes) -> "VendorBootHeader":
        (
            magic,
            header_version,
            page_size,
            kernel_addr,
            ramdisk_addr,
            vendor_ramdisk_size,
            cmdline,
            tags_addr,
            name,
            header_size,
            dtb_size,
            dtb_addr,
        ) = HEADER_STRUCT.unpack(data)
        return cls(
            magic=magic,
            header_version=header_version,
            page_size=page_size,
            kernel_addr=kernel_addr,
            ramdisk_addr=ramdisk_addr,
            vendor_ramdisk_size=vendor_ramdisk_size,
            cmdline=cmdline,
            tags_addr=tags_addr,
            name=name,
            header_size=header_size,
            dtb_size=dtb_size,
            dtb_addr=dtb_addr,
        )

    def pack(self) -> bytes:
        return HEADER_STRUCT.pack(
            self.magic,
            self.header_version,
            self.page_size,
            self.kernel_addr,
            self.ramdisk_addr,
            self.vendor_ramdisk_size,
            self.cmdline,
            self.tags_addr,
            self.name,
            self.header_size,
            self.dtb_size,
            self.dtb_addr,
        )

    @property
    def cmdline_text(self) -> Union[str, bytes]:
        return decode_cstring(self.cmdline)

    @property
    def name_text(self) -> Union[str, bytes]:
        return decode_cstring(self.name)


class Segment(NamedTuple):
    name: str
    offset: int
    size: int


def _read_exact(fp: BinaryIO, size: int, what: str) -> bytes:
    try:
        data = fp.read(size)
    except OSError as exc:
        raise ReadError(f"can't read {what}: I/O error occurred ({_reason(exc)})", eof=False) from exc
    if len(data) != size:
        raise ReadError(
            f"can't read {what}: end of file reached after {len(data)} of {size} bytes",
            eof=True,
        )
    return data


def read_header(fp: BinaryIO) -> VendorBootHeader:
    header = VendorBootHeader.unpack(_read_exact(fp, VENDOR_HEADER_SIZE, "header"))
    if header.magic != VENDOR_BOOT_MAGIC:
        raise FormatError(f"magic doesn't match! magic = {header.magic!r}")
    return header


def check_header(header: VendorBootHeader) -> None:
    if header.page_size == 0:
        raise FormatError("invalid page size 0")
    if header.vendor_ramdisk_size == 0:
        raise FormatError("vendor ramdisk is required but vendor_ramdisk_size is 0")
    if header.dtb_size == 0:
        raise FormatError("dtb is required but dtb_size is 0")


def segment_layout(header: VendorBootHeader) -> Tuple[Segment, Segment]:
    # The header_size field is not trusted for seeking.
    header_aligned = align(VENDOR_HEADER_SIZE, header.page_size)
    ramdisk_aligned = align(header.vendor_ramdisk_size, header.page_size)
    return (
        Segment("ramdisk", header_aligned, header.vendor_ramdisk_size),
        Segment("dtb", header_aligned + ramdisk_aligned, header.dtb_size),
    )


def read_segment(fp: BinaryIO, segment: Segment) -> bytes:
    try:
        fp.seek(segment.offset, os.SEEK_SET)
    except (OSError, OverflowError) as exc:
        reason = _reason(exc) if isinstance(exc, OSError) else str(exc)
        raise SeekError(f"can't seek to {segment.name} at offset {segment.offset}: {reason}") from exc
    return _read_exact(fp, segment.size, segment.name)


def write_artifact(path: Path, data: bytes) -> None:
    """Replace ``path`` with ``data``; a failed write leaves ``path`` untouched."""
    tmp_path = path.with_name(f".{path.name}.tmp")
    try:
        out = tmp_path.open("wb")
    except OSError as exc:
        raise OpenError(f"can't open {path}: {_reason(exc)}") from exc

    try:
        with out:
            try:
                written = out.write(data)
                out.flush()
            except OSError as exc:
                raise WriteError(f"can't write {path}: I/O error occurred ({_reason(exc)})") from exc
            if written != len(data):
                raise WriteError(f"can't write {path}: short write of {written} of {len(data)} bytes")
        try:
            os.replace(tmp_path, path)
        except OSError as exc:
            raise WriteError(f"can't rename {tmp_path} to {path}: {_reason(exc)}") from exc
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def _extract_segment(fp: BinaryIO, segment: Segment, path: Path) -> None:
    write_artifact(path, read_segment(fp, segment))


def _stderr(message: str) -> None:
    print(message, file=sys.stderr)


def extract(
    image_path: Path,
    output_dir: Path = Path("."),
    log: Callable[[str], None] = _stderr,
) -> VendorBootHeader:
    """Unpack the vendor ramdisk and dtb of ``image_path`` into ``output_dir``."""
    try:
        fp = open(image_path, "rb")
    except OSError as exc:
        raise OpenError(f"can't open {image_path}: {_reason(exc)}") from exc

    with fp:
        log("--> Reading header...")
        header = read_header(fp)
        check_header(header)
        ramdisk, dtb = segment_layout(header)
        log(
            f"header_version={header.header_version} page_size={header.page_size} "
            f"header_size={header.header_size}"
        )
        log(
            f"kernel_addr=0x{header.kernel_addr:08x} ramdisk_addr=0x{header.ramdisk_addr:08x} "
            f"tags_addr=0x{header.tags_addr:08x} dtb_addr=0x{header.dtb_addr:016x}"
        )

        log("--> Reading ramdisk...")
        log(f"{ramdisk.name}: {ramdisk.size} bytes at offset {ramdisk.offset}")
        _extract_segment(fp, ramdisk, output_dir / VENDOR_RAMDISK)

        log("--> Reading dtb...")
        log(f"{dtb.name}: {dtb.size} bytes at offset {dtb.offset}")
        _extract_segment(fp, dtb, output_dir / VENDOR_DTB)

    return header
