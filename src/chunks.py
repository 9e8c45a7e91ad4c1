#!/usr/bin/env python3

import bz2
import gzip
import lzma
import zlib

from io import RawIOBase, BufferedReader, DEFAULT_BUFFER_SIZE
from os import path

from util import *

# non-stdlib
try:
    # XXX this workaround needed if both pyzopfli and zopfli are installed
    import zopfli; defattr(zopfli, '__COMPRESSOR_DOCSTRING__', '')

    # pip3 install zopfli
    from zopfli.gzip import compress
    def zopfli_compress(data, iterations=15):
        return compress(data, numiterations=iterations)
except ImportError:
    try:
        # pip3 install pyzopfli
        from zopfli import ZopfliCompressor, ZOPFLI_FORMAT_GZIP
        def zopfli_compress(data, iterations=15):
            c = ZopfliCompressor(ZOPFLI_FORMAT_GZIP, iterations=iterations)
            return c.compress(data) + c.flush()
    except ImportError:
        zopfli_compress = None

try:
    import zstandard
except ImportError:
    zstandard = None

__all__ = [
    'COMPRESSORS', 'SUFFIXES', 'DEFAULT_SUFFIX', 'CompressionError', 'guess_compress',
    'open_chunk', 'iter_chunks', 'split_chunks',
]

COMPRESSORS = ('', 'gz', 'bz2', 'xz', 'zst', 'deflate')

# https://github.com/libarchive/libarchive/blob/0fd2ed25d78e9f4505de5dcb6208c6c0ff8d2edb/tar/creation_set.c#L114
SUFFIXES = {
    '.gz': 'gz', '.tgz': 'gz', '.taz': 'gz',
    '.bz2': 'bz2', '.tbz': 'bz2', '.tbz2': 'bz2', '.tz2': 'bz2',
    '.xz': 'xz', '.txz': 'xz',
    '.zst': 'zst', '.tzst': 'zst',
    '.deflate': 'deflate', '.zz': 'deflate',
}

# suffix used for chunk names when splitting
DEFAULT_SUFFIX = {'': '', 'gz': '.gz', 'bz2': '.bz2', 'xz': '.xz', 'zst': '.zst', 'deflate': '.deflate'}

class CompressionError(Exception):
    pass

def _check(compress):
    if compress not in COMPRESSORS:
        raise CompressionError(f'Unknown compression: `{compress}`')

    if compress == 'zst' and zstandard is None:
        raise CompressionError('zstandard module is not available')

    return compress

def guess_compress(name):
    if not isinstance(name, str):
        return ''
    return SUFFIXES.get(path.splitext(name)[1].lower(), '')

# raw deflate streams (no zlib or gzip header) have no file class in the stdlib
class _InflateReader(RawIOBase):
    def __init__(self, fileobj, chunk_size=DEFAULT_BUFFER_SIZE):
        self._fileobj = fileobj
        self._inflater = zlib.decompressobj(wbits=-zlib.MAX_WBITS)
        self._chunk_size = chunk_size
        self._pending = b''

    def readable(self):
        return True

    def readinto(self, b, /):
        n = len(b)
        while not self._pending:
            if self._inflater.eof:
                return 0

            data = self._fileobj.read(self._chunk_size)
            if not data:
                raise EOFError('Compressed chunk ended before the end-of-stream marker was reached')

            self._pending = self._inflater.decompress(data)

        out, self._pending = self._pending[:n], self._pending[n:]
        b[:len(out)] = out
        return len(out)

    def close(self):
        if not self.closed:
            self._fileobj.close()
        super().close()

def open_chunk(name, compress=None):
    if compress is None: compress = guess_compress(name)
    _check(compress)

    if compress == 'gz':
        return gzip.open(name, 'rb')
    elif compress == 'bz2':
        return bz2.open(name, 'rb')
    elif compress == 'xz':
        return lzma.open(name, 'rb')

    fileobj = open(name, 'rb') if isinstance(name, str) else name
    try:
        if compress == 'zst':
            # ZstdDecompressionReader may return short reads, give it the usual contract
            return BufferedReader(zstandard.ZstdDecompressor().stream_reader(fileobj, closefd=True))
        elif compress == 'deflate':
            return BufferedReader(_InflateReader(fileobj))
    except Exception:
        fileobj.close()
        raise

    return fileobj

def iter_chunks(names, compress=None):
    # each chunk is only opened when iteration reaches it
    for name in names:
        yield open_chunk(name, compress)

writers = Registrar()

@writers.register('gz')
def _write_gz(name, data, level=None, zopfli=False):
    if zopfli:
        if zopfli_compress is None:
            raise CompressionError('zopfli module is not available')
        with open(name, 'wb') as f:
            f.write(zopfli_compress(data, ifnone(level, 15)))
    else:
        with gzip.open(name, 'wb', compresslevel=ifnone(level, 9)) as f:
            f.write(data)

@writers.register('bz2')
def _write_bz2(name, data, level=None, **kwargs):
    with bz2.open(name, 'wb', compresslevel=ifnone(level, 9)) as f:
        f.write(data)

@writers.register('xz')
def _write_xz(name, data, level=None, **kwargs):
    with lzma.open(name, 'wb', preset=level) as f:
        f.write(data)

@writers.register('zst')
def _write_zst(name, data, level=None, **kwargs):
    # auto-detect number of threads based on number of cpu cores
    zstdargs = dict(threads=-1)
    # if level is None, use module default by leaving level argument unset
    if level is not None: zstdargs['level'] = level
    with zstandard.ZstdCompressor(**zstdargs).stream_writer(open(name, 'wb')) as f:
        f.write(data)

@writers.register('deflate')
def _write_deflate(name, data, level=None, **kwargs):
    c = zlib.compressobj(ifnone(level, -1), zlib.DEFLATED, -zlib.MAX_WBITS)
    with open(name, 'wb') as f:
        f.write(c.compress(data) + c.flush())

@writers.register(default=True)
def _write_plain(name, data, **kwargs):
    with open(name, 'wb') as f:
        f.write(data)

def split_chunks(fileobj, name_format, chunk_size, compress='', level=None, zopfli=False):
    if chunk_size < 1:
        raise ValueError(f'Invalid chunk size: {chunk_size}')
    if zopfli and compress != 'gz':
        raise ValueError('zopfli output is only available for gzip chunks')
    _check(compress)

    names = []
    for index, data in enumerate(iter(lambda: fileobj.read(chunk_size), b'')):
        name = name_format.format(index=index)
        writers.dispatch(compress, name, data, level=level, zopfli=zopfli)
        vprint(1, name)
        names.append(name)

    return names
