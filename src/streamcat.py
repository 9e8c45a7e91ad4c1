#!/usr/bin/env python3

import sys

from os import fdopen

# bundled
import chunks
import manifest
import mergedreader
from config import AUTO, ParseError, Settings
from mergedreader import open_merged
from util import *

def count_lines(reader):
    n, last = 0, b''
    while data := reader.read1():
        n += data.count(b'\n')
        last = data

    # a final line without a terminator still counts
    if last and not last.endswith(b'\n'):
        n += 1
    return n

def copy_stream(reader, outfile, buffer_size):
    total = 0
    while data := reader.read(buffer_size):
        outfile.write(data)
        total += len(data)
    return total

def concat_chunks(args, settings):
    if args.manifest:
        entries = manifest.load(args.manifest)
        if settings.compress is not None:
            entries = (e._replace(compress=settings.compress) for e in entries)
        sources = manifest.open_entries(entries)
    else:
        sources = chunks.iter_chunks(args.infiles, settings.compress)

    # with disposal off the sources are still ours to close at the end
    opened = []
    if not settings.dispose:
        sources = _tracking(sources, opened)

    try:
        with open_merged(sources, dispose=settings.dispose, buffer_size=settings.buffer_size) as reader:
            if args.lines:
                args.outfile.write(f'{count_lines(reader)}\n'.encode(settings.encoding))
            else:
                total = copy_stream(reader, args.outfile, settings.buffer_size)
                vprint(1, f'{total} bytes from {reader.raw.sources_read} chunks')
    finally:
        for io in opened:
            if not io.closed: io.close()

def _tracking(sources, opened):
    for io in sources:
        opened.append(io)
        yield io

def split_file(args, settings):
    compress = ifnone(settings.compress, '')
    name_format = args.output
    if name_format is None:
        name_format = args.split.name.replace('{', '{{').replace('}', '}}')
        name_format += '.{index:04d}' + chunks.DEFAULT_SUFFIX.get(compress, '')

    return chunks.split_chunks(
        args.split, name_format, settings.chunk_size,
        compress=compress, level=settings.level, zopfli=args.zopfli,
    )

def main(argv=None):
    from argparse import ArgumentParser, ArgumentTypeError, FileType

    def SizeType(s):
        try:
            n = int(s)
        except ValueError:
            raise ArgumentTypeError(f'{s} is not an integer') from None
        if n < 1: raise ArgumentTypeError(f'{s} is not a positive size')
        return n

    parser = ArgumentParser(prog='streamcat', description='Read a document stored as separate chunks as one stream.')
    parser.set_defaults(zopfli=False)

    # compression arguments
    cargs = parser.add_mutually_exclusive_group()
    cargs.add_argument(
        '-a', '--auto-compress', dest='compress', action='store_const', const=AUTO,
        help='detect chunk compression from file suffix (default)'
    )
    cargs.add_argument(
        '-z', '--gzip', dest='compress', action='store_const', const='gz',
        help='chunks are compressed with gzip',
    )
    if chunks.zopfli_compress:
        cargs.add_argument(
            '--zopfli', dest='zopfli', action='store_true',
            help='compress split chunks with zopfli (gzip compatible)',
        )
    cargs.add_argument(
        '-j', '--bzip2', dest='compress', action='store_const', const='bz2',
        help='chunks are compressed with bzip2',
    )
    cargs.add_argument(
        '-J', '--xz', dest='compress', action='store_const', const='xz',
        help='chunks are compressed with xz'
    )
    if chunks.zstandard:
        cargs.add_argument(
            '--zstd', dest='compress', action='store_const', const='zst',
            help='chunks are compressed with zstd',
        )
    cargs.add_argument(
        '--deflate', dest='compress', action='store_const', const='deflate',
        help='chunks are raw deflate streams'
    )
    cargs.add_argument(
        '--no-compress', dest='compress', action='store_const', const='',
        help='chunks are not compressed, regardless of suffix',
    )

    # source arguments
    sargs = parser.add_mutually_exclusive_group()
    sargs.add_argument(
        '-m', '--manifest', dest='manifest', type=FileType('r'), metavar='FILE',
        help='read the list of chunks from FILE'
    )
    sargs.add_argument(
        '-s', '--split', dest='split', type=FileType('rb'), metavar='FILE',
        help='split FILE into chunks instead of reading them'
    )

    # other arguments
    parser.add_argument(
        '-c', '--config', dest='config', type=FileType('r'), metavar='FILE',
        help='read settings from FILE'
    )
    parser.add_argument(
        '-L', '--level', dest='level', type=int, metavar='LEVEL',
        help='set compression level for split chunks',
    )
    parser.add_argument(
        '-b', '--chunk-size', dest='chunk_size', type=SizeType, metavar='BYTES',
        help='size of split chunks before compression',
    )
    parser.add_argument(
        '-B', '--buffer-size', dest='buffer_size', type=SizeType, metavar='BYTES',
        help='read buffer size',
    )
    parser.add_argument(
        '-o', '--output', dest='output', metavar='FORMAT',
        help='name format for split chunks, `{index}` is replaced by the chunk number'
    )
    parser.add_argument(
        '-n', '--lines', dest='lines', action='store_true',
        help='print the number of lines instead of the content'
    )
    parser.add_argument(
        '--no-dispose', dest='dispose', action='store_const', const=False,
        help='keep every chunk open until all of them have been read'
    )
    parser.add_argument(
        '-v', '--verbose', dest='verbose', action='count', default=0,
        help='print progress to stderr, repeat for more'
    )
    parser.add_argument(
        '-f', dest='outfile', type=FileType('wb'), metavar='FILE',
        help='output filename',
    )
    parser.add_argument(
        'infiles', nargs='*', metavar='CHUNK',
        help='chunk filename(s), in order',
    )

    args = parser.parse_args(argv)

    if not args.split and not args.manifest and len(args.infiles) == 0:
        parser.error('no chunks given')
    if args.split and args.infiles:
        parser.error('chunk filenames can not be combined with --split')

    if args.zopfli:
        args.compress = 'gz'

    set_verbosity(args.verbose)
    mergedreader.trace = vprint

    try:
        settings = Settings.from_file(args.config) if args.config else Settings()
        settings.update(
            compress=args.compress, level=args.level, dispose=args.dispose,
            chunk_size=args.chunk_size, buffer_size=args.buffer_size,
        )

        if args.split:
            with args.split:
                split_file(args, settings)
            return 0

        if args.outfile is None:
            args.outfile = fdopen(sys.stdout.fileno(), "wb", closefd=False)

        concat_chunks(args, settings)
    except (ParseError, manifest.ManifestError, chunks.CompressionError, OSError, EOFError) as e:
        eprint(f'{parser.prog}: error: {e}')
        return 1
    finally:
        if args.outfile: args.outfile.close()

    return 0


if __name__ == '__main__':
    sys.exit(main())
