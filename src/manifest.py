#!/usr/bin/env python3

import json
import codecs

from collections import namedtuple

from chunks import open_chunk

__all__ = ['ChunkEntry', 'ManifestError', 'load', 'loads', 'open_entries']

ChunkEntry = namedtuple('ChunkEntry', ['source', 'compress'])

class ManifestError(ValueError):
    def __init__(self, msg, pos=None):
        super().__init__(msg if pos is None else f'{msg}: char {pos}')
        self.msg = msg
        self.pos = pos

    def __reduce__(self):
        return self.__class__, (self.msg, self.pos)

def _entry(value, pos):
    if isinstance(value, str):
        return ChunkEntry(value, None)
    elif isinstance(value, dict):
        if not isinstance(value.get('source'), str):
            raise ManifestError('Manifest entry without a `source`', pos)
        return ChunkEntry(value['source'], value.get('compress'))

    raise ManifestError(f'Manifest entries must be strings or objects, not {type(value).__name__}', pos)

# decodes whitespace separated JSON values as text arrives
class _EntryDecoder:
    def __init__(self):
        self._decoder = json.JSONDecoder()
        self._buffer = ''
        self._offset = 0

    def _advance(self, n):
        self._buffer = self._buffer[n:]
        self._offset += n

    def feed(self, s):
        self._buffer += s
        while True:
            skip = len(self._buffer) - len(self._buffer.lstrip())
            self._advance(skip)
            if not self._buffer:
                return

            try:
                value, end = self._decoder.raw_decode(self._buffer)
            except json.JSONDecodeError:
                # may just be an incomplete value, wait for more text
                return

            # a number or literal could continue in the next piece of text
            if end == len(self._buffer) and not isinstance(value, (str, dict, list)):
                return

            pos = self._offset
            self._advance(end)
            yield _entry(value, pos)

    def finish(self):
        if self._buffer.strip():
            try:
                value, end = self._decoder.raw_decode(self._buffer)
            except json.JSONDecodeError as e:
                raise ManifestError(e.msg, e.pos + self._offset) from None
            if self._buffer[end:].strip():
                raise ManifestError('Extra data', self._offset + end)
            pos = self._offset
            self._advance(len(self._buffer))
            yield _entry(value, pos)

def load(fp, *, encoding='utf-8', errors='strict', chunk_size=(1<<16)):
    decoder = _EntryDecoder()

    # raw_decode requires strings, so wrap binary files
    if isinstance(fp.read(0), bytes):
        fp = codecs.getreader(encoding)(fp, errors)

    for chunk in iter(lambda: fp.read(chunk_size), ''):
        yield from decoder.feed(chunk)

    yield from decoder.finish()

def loads(s, *, encoding='utf-8', errors='strict'):
    if isinstance(s, (bytes, bytearray)):
        s = s.decode(encoding, errors)

    decoder = _EntryDecoder()
    yield from decoder.feed(s)
    yield from decoder.finish()

def open_entries(entries):
    # each chunk is only opened when iteration reaches it
    for entry in entries:
        yield open_chunk(entry.source, entry.compress)
