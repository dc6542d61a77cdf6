#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

Sequential unformatted (Fortran) record decoder.

──────────────────────────────────────────────────────────────────────────────
Record framing
──────────────────────────────────────────────────────────────────────────────
Every record written by RAMSES is laid out as

    [int32 nbytes] [payload: nbytes bytes] [int32 nbytes]

Both markers must agree. A disagreement, a short read, or a payload that
does not divide into whole items of the requested type raises
MalformedRecordError. The decoder never tries to resynchronise: the
shard is abandoned and the dispatcher decides what happens next.

"""

from __future__ import annotations

import os
from typing import Any, Dict, Sequence, Tuple, Union

import numpy as np

from .errors import MalformedRecordError

_MARKER = np.dtype("<i4")
_MARKER_SIZE = _MARKER.itemsize

HeaderSpec = Sequence[Tuple[Union[str, Tuple[str, ...]], int, str]]


class FortranFile:
    """
    Reader for one Fortran sequential binary file.

    Use as a context manager:

        with FortranFile(path) as f:
            ncpu = f.read_int()
            xg = f.read_vector("d")
    """

    def __init__(self, path: str, byteorder: str = "<"):
        self.path = os.fspath(path)
        self.byteorder = byteorder
        self._marker = _MARKER.newbyteorder(byteorder)
        self._fh = open(self.path, "rb")
        self._fh.seek(0, os.SEEK_END)
        self._size = self._fh.tell()
        self._fh.seek(0)

    def __enter__(self) -> "FortranFile":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        if not self._fh.closed:
            self._fh.close()

    def tell(self) -> int:
        return self._fh.tell()

    def _error(self, message: str) -> MalformedRecordError:
        return MalformedRecordError(f"{message} at byte {self._fh.tell()}", path=self.path)

    def _read_marker(self) -> int:
        raw = self._fh.read(_MARKER_SIZE)
        if len(raw) != _MARKER_SIZE:
            raise self._error("Truncated record marker")
        value = int(np.frombuffer(raw, dtype=self._marker)[0])
        if value < 0:
            raise self._error(f"Negative record length {value}")
        return value

    def _check_trailer(self, nbytes: int) -> None:
        trailer = self._read_marker()
        if trailer != nbytes:
            raise self._error(f"Record markers disagree (leading {nbytes}, trailing {trailer})")

    def read_record(self) -> bytes:
        """Read one record and return its raw payload."""
        nbytes = self._read_marker()
        payload = self._fh.read(nbytes)
        if len(payload) != nbytes:
            raise self._error(f"Truncated record: expected {nbytes} bytes, got {len(payload)}")
        self._check_trailer(nbytes)
        return payload

    def read_vector(self, dtype: Union[str, np.dtype]) -> np.ndarray:
        """
        Read one record as a 1-D array.

        Args:
            dtype: numpy type code ('i', 'd', 'q', 'f', 'b', ...) or dtype

        Returns:
            A writable array in native byte order.
        """
        dt = np.dtype(dtype).newbyteorder(self.byteorder)
        payload = self.read_record()
        if len(payload) % dt.itemsize:
            raise self._error(
                f"Record of {len(payload)} bytes is not a whole number of {dt.itemsize}-byte items"
            )
        return np.frombuffer(payload, dtype=dt).astype(dt.newbyteorder("="))

    def read_array(self, dtype: Union[str, np.dtype], count: int) -> np.ndarray:
        """Read one record and check that it holds exactly `count` items."""
        arr = self.read_vector(dtype)
        if arr.size != count:
            raise self._error(f"Expected {count} items, record holds {arr.size}")
        return arr

    def read_int(self) -> int:
        return int(self.read_array("i", 1)[0])

    def read_ints(self, count: int) -> Tuple[int, ...]:
        return tuple(int(v) for v in self.read_array("i", count))

    def read_real(self) -> float:
        return float(self.read_array("d", 1)[0])

    def read_string(self) -> str:
        """Read a character record, stripped of padding."""
        return self.read_record().decode("ascii", errors="replace").strip().strip("\x00")

    def read_attrs(self, spec: HeaderSpec) -> Dict[str, Any]:
        """
        Read a sequence of records described by `spec`.

        Each entry is (name, count, dtype). A tuple of names unpacks a
        record holding several scalars. A count of 1 yields a scalar.
        """
        out: Dict[str, Any] = {}
        for names, count, dtype in spec:
            arr = self.read_array(dtype, count)
            if isinstance(names, tuple):
                if len(names) != count:
                    raise ValueError(f"Header entry {names} does not match count {count}")
                for name, value in zip(names, arr):
                    out[name] = value.item()
            elif count == 1:
                out[names] = arr[0].item()
            else:
                out[names] = arr
        return out

    def skip(self, n: int = 1) -> None:
        """
        Skip `n` records without materialising them.

        The leading marker is peeked, the payload seeked over and the
        trailing marker still verified.
        """
        for _ in range(n):
            nbytes = self._read_marker()
            target = self._fh.tell() + nbytes
            if target + _MARKER_SIZE > self._size:
                raise self._error(f"Truncated record: {nbytes} bytes declared past end of file")
            self._fh.seek(nbytes, os.SEEK_CUR)
            self._check_trailer(nbytes)

    def at_eof(self) -> bool:
        return self._fh.tell() >= self._size

