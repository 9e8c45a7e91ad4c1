"""Fake byte sources used to observe what the merged reader does to its inputs."""

import asyncio
import io


def sequential_chunks(count=10, size=256):
    return [bytes(i % 256 for i in range(size)) for _ in range(count)]


def distinct_chunks():
    # uneven sizes, an empty chunk in the middle and contents that differ per chunk
    sizes = [50, 1, 0, 256, 13, 4097, 7]
    return [bytes((index * 31 + j) % 251 for j in range(size)) for index, size in enumerate(sizes)]


def line_chunks(count=10, rows=50):
    return [''.join(f'Chunk #{i}, line #{j}\n' for j in range(rows)).encode() for i in range(count)]


def expected_lines(count=10, rows=50):
    return [f'Chunk #{i}, line #{j}' for i in range(count) for j in range(rows)]


class TrackingSource(io.BytesIO):
    """BytesIO that records reads and closes into a shared event log."""

    def __init__(self, label, data, log):
        super().__init__(data)
        self.label = label
        self.log = log
        self.reads = 0
        self.close_calls = 0

    def readinto(self, b):
        self.reads += 1
        self.log.append(('read', self.label))
        return super().readinto(b)

    def read(self, size=-1):
        self.reads += 1
        self.log.append(('read', self.label))
        return super().read(size)

    def close(self):
        if not self.closed:
            self.close_calls += 1
            self.log.append(('close', self.label))
        super().close()


def tracked_sources(chunks, log, opened=None):
    """Generator that logs the moment each source is pulled from it."""
    for label, data in enumerate(chunks):
        log.append(('open', label))
        source = TrackingSource(label, data, log)
        if opened is not None:
            opened.append(source)
        yield source


class TrickleSource(io.RawIOBase):
    """Raw source that never returns more than `step` bytes per call."""

    def __init__(self, data, step):
        self._data = data
        self._pos = 0
        self._step = step
        self.close_calls = 0

    def readable(self):
        return True

    def readinto(self, b):
        n = min(len(b), self._step, len(self._data) - self._pos)
        b[:n] = self._data[self._pos:self._pos + n]
        self._pos += n
        return n

    def close(self):
        if not self.closed:
            self.close_calls += 1
        super().close()


class WouldBlockSource(io.RawIOBase):
    """Raw source that has no data ready on its first read."""

    def __init__(self, data):
        self._data = io.BytesIO(data)
        self._ready = False

    def readable(self):
        return True

    def readinto(self, b):
        if not self._ready:
            self._ready = True
            return None
        return self._data.readinto(b)


class FailingCloseSource(io.BytesIO):
    """BytesIO whose first close() fails."""

    def __init__(self, data):
        super().__init__(data)
        self.failed = False

    def close(self):
        if not self.failed:
            self.failed = True
            raise OSError('close failed')
        super().close()


class FailingReadSource(io.RawIOBase):
    def readable(self):
        return True

    def readinto(self, b):
        raise OSError('read failed')


class AsyncSource:
    """Source with coroutine read() and close(), like aiofiles handles."""

    def __init__(self, data, step=None):
        self._data = data
        self._pos = 0
        self._step = step
        self.closed = False
        self.close_calls = 0

    async def read(self, size=-1):
        await asyncio.sleep(0)
        end = len(self._data) if size < 0 else self._pos + size
        if self._step is not None:
            end = min(end, self._pos + self._step)
        data = self._data[self._pos:end]
        self._pos += len(data)
        return data

    async def close(self):
        await asyncio.sleep(0)
        self.closed = True
        self.close_calls += 1


class GatedSource(AsyncSource):
    """AsyncSource whose reads wait until `gate` is set."""

    def __init__(self, data):
        super().__init__(data)
        self.gate = asyncio.Event()
        self.waiting = asyncio.Event()

    async def read(self, size=-1):
        self.waiting.set()
        await self.gate.wait()
        return await super().read(size)


class AsyncCloseSource:
    """Source with a blocking read() but a coroutine close()."""

    def __init__(self, data):
        self._data = io.BytesIO(data)
        self.closed = False

    def read(self, size=-1):
        return self._data.read(size)

    async def close(self):
        self.closed = True
