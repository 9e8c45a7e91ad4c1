import asyncio
import inspect

from io import RawIOBase, BufferedIOBase, BufferedReader, TextIOWrapper, UnsupportedOperation, DEFAULT_BUFFER_SIZE

__all__ = ['MergedReader', 'open_merged', 'open_merged_text', 'trace']

# diagnostics hook, replaced by the command line tool: trace(level, *args)
def trace(level, *args):
    pass

def _iscoro(obj, name):
    return inspect.iscoroutinefunction(getattr(obj, name, None))

def _drains_on_short_read(io):
    # buffered binary streams only return a short read from a blocking
    # readinto at end of data, raw streams may return one at any time
    return isinstance(io, BufferedIOBase)

def _adrains_on_short_read(io):
    # coroutine reads make no promise to fill the request
    return _drains_on_short_read(io) and not _iscoro(io, 'read') and not _iscoro(io, 'readinto')

def _readinto(io, view, /):
    if _iscoro(io, 'read') or _iscoro(io, 'readinto'):
        raise TypeError(f'{type(io).__name__} has coroutine reads, use aread()')

    if hasattr(io, 'readinto'):
        return io.readinto(view)

    data = io.read(len(view))
    if data is None:
        return None
    view[:len(data)] = data
    return len(data)

async def _areadinto(io, view, /):
    if _iscoro(io, 'readinto'):
        return await io.readinto(view)

    if _iscoro(io, 'read'):
        data = await io.read(len(view))
    else:
        # the worker thread never sees the caller's buffer, so a cancelled
        # read can't write into it after we've returned
        data = await asyncio.to_thread(io.read, len(view))

    if data is None:
        return None
    view[:len(data)] = data
    return len(data)

class MergedReader(RawIOBase):
    def __init__(self, sources, dispose=True):
        self._io = None
        self._pos = 0
        self._exhausted = False
        self._closed = False
        self._index = -1
        self._failure = None
        self.dispose_sources = dispose

        if sources is None:
            raise ValueError('sources must not be None')
        self._iter = iter(sources)
        self._next()

    def _next(self):
        # a failed sequence stays failed, a finished generator would look like EOF
        if self._failure is not None:
            raise self._failure

        try:
            self._io = next(self._iter)
        except StopIteration:
            self._io = None
            self._exhausted = True
            trace(2, f'end of sources after {self._pos} bytes')
        except Exception as e:
            self._failure = e
            raise
        else:
            self._index += 1
            trace(2, f'source #{self._index}: reading')

    def _release(self, awaited=False):
        # drop our reference first: a failing close() still counts as released
        io, self._io = self._io, None
        if self.dispose_sources and io is not None and not getattr(io, 'closed', False):
            trace(2, f'source #{self._index}: closing')
            result = io.close()
            if inspect.isawaitable(result) and not awaited:
                if inspect.iscoroutine(result):
                    result.close()
                raise TypeError(f'{type(io).__name__}.close() is a coroutine, use aread()')
            return result

    async def _arelease(self):
        result = self._release(awaited=True)
        if inspect.isawaitable(result):
            await result

    def _current(self):
        # a previous advance may have failed after releasing its source
        if self._io is None and not self._exhausted:
            self._next()
        return self._io

    def _deliver(self, n):
        self._pos += n
        return n

    # RawIOBase
    def readinto(self, b, /):
        self._checkClosed()
        if self._exhausted:
            return 0

        view = memoryview(b).cast('B')
        n = len(view)
        if n == 0:
            return 0

        total = 0
        while (io := self._current()) is not None:
            result = _readinto(io, view[total:])
            if result is None:
                return self._deliver(total) if total else None

            total += result
            if total == n:
                break
            elif result != 0 and not _drains_on_short_read(io):
                # short read, this source is done for this call
                break

            self._release()
            self._next()

        return self._deliver(total)

    async def areadinto(self, b, /):
        self._checkClosed()
        if self._exhausted:
            return 0

        view = memoryview(b).cast('B')
        n = len(view)
        if n == 0:
            return 0

        total = 0
        while (io := self._current()) is not None:
            result = await _areadinto(io, view[total:])
            if result is None:
                return self._deliver(total) if total else None

            total += result
            if total == n:
                break
            elif result != 0 and not _adrains_on_short_read(io):
                break

            await self._arelease()
            self._next()

        return self._deliver(total)

    async def aread(self, size=-1, /):
        if size is None or size < 0:
            return await self.areadall()

        b = bytearray(size)
        n = await self.areadinto(b)
        if n is None:
            return None
        return bytes(b[:n])

    async def areadall(self):
        chunks = []
        while data := await self.aread(DEFAULT_BUFFER_SIZE):
            chunks.append(data)

        if data is None and not chunks:
            return None
        return b''.join(chunks)

    def write(self, b, /):
        raise UnsupportedOperation('write')

    def writelines(self, lines, /):
        raise UnsupportedOperation('writelines')

    # IOBase
    def close(self):
        if not self._closed:
            if self.dispose_sources and _iscoro(self._io, 'close') and not getattr(self._io, 'closed', False):
                raise TypeError(f'{type(self._io).__name__}.close() is a coroutine, use aclose()')
            self._closed = True
            self._release()

    async def aclose(self):
        if not self._closed:
            self._closed = True
            await self._arelease()

    async def __aenter__(self):
        self._checkClosed()
        return self

    async def __aexit__(self, *args):
        await self.aclose()

    @property
    def closed(self):
        return self._closed

    def fileno(self):
        raise UnsupportedOperation('fileno')

    def flush(self):
        # nothing to flush, BufferedReader.close() calls raw.flush() before raw.close()
        self._checkClosed()

    def isatty(self):
        return False

    def readable(self):
        return True

    def seekable(self):
        return False

    def writable(self):
        return False

    def seek(self, offset, whence=0, /):
        raise UnsupportedOperation('seek')

    def truncate(self, size=None, /):
        raise UnsupportedOperation('truncate')

    def tell(self):
        self._checkClosed()
        return self._pos

    @property
    def position(self):
        return self._pos

    @position.setter
    def position(self, value):
        raise UnsupportedOperation('position can not be set')

    @property
    def length(self):
        raise UnsupportedOperation('length')

    @property
    def exhausted(self):
        return self._exhausted

    @property
    def sources_read(self):
        return self._index + 1

def open_merged(sources, *, dispose=True, buffer_size=DEFAULT_BUFFER_SIZE):
    return BufferedReader(MergedReader(sources, dispose), buffer_size)

def open_merged_text(sources, *, encoding='utf-8', errors='strict', newline=None, **kwargs):
    return TextIOWrapper(open_merged(sources, **kwargs), encoding=encoding, errors=errors, newline=newline)
