#!/usr/bin/env python3

import re
import json

from io import DEFAULT_BUFFER_SIZE

__all__ = ['AUTO', 'ParseError', 'Settings', 'load']

class ParseError(Exception):
    pass

raw_decode = json.JSONDecoder().raw_decode
comment = re.compile(r'''
    \s*                         # zero or more spaces
    (?:\#.*)?                   # optionally, `#` followed by anything
''', re.VERBOSE)
sep = re.compile(rf'''
    \s*                         # zero or more spaces
    (?:                         # begin uncaptured group
        {comment.pattern}       # optional comment (or blank line)
    |                           # OR
        (\w+)                   # a variable name
        \s*=\s*                 # an `=` surrounded by zero or more spaces
        (?:                     # begin uncaptured group
            (".*)               # a `"` followed by any number of characters
        |                       # OR
            (.*?)               # any number of characters (non-greedy group)
            {comment.pattern}   # optional comment
        )                       # end uncaptured group
    )                           # end uncaptured group
    \Z                          # end of string
''', re.VERBOSE)

def _name(fileobj):
    return getattr(fileobj, 'name', '<config>')

def _parse_json(lines, name):
    try:
        data = json.loads(''.join(lines))
    except json.JSONDecodeError as e:
        raise ParseError(f'Invalid JSON: {name}, line {e.lineno}') from None

    if not isinstance(data, dict):
        raise ParseError(f'Invalid JSON: {name}, expected an object')
    return data

def _parse_simple(lines, name):
    data = {}
    for lineno, line in enumerate(map(lambda x: x.strip(), lines), 1):
        m = sep.match(line)
        if m is None:
            raise ParseError(f'Invalid syntax: {name}, line {lineno}')
        key, quoted, value = m.groups()
        if key:
            if quoted:
                try:
                    value, pos = raw_decode(quoted)
                except json.JSONDecodeError:
                    raise ParseError(f'Invalid syntax: {name}, line {lineno}') from None
                if not comment.fullmatch(quoted[pos:]):
                    raise ParseError(f'Invalid syntax: {name}, line {lineno}')

            data[key] = value

    return data

def load(fileobj):
    lines = list(fileobj)
    if ''.join(lines).lstrip().startswith('{'):
        return _parse_json(lines, _name(fileobj))
    return _parse_simple(lines, _name(fileobj))

# compression name that asks for detection from the chunk suffix
AUTO = 'auto'

_TRUE = ('1', 'true', 'yes', 'on')
_FALSE = ('0', 'false', 'no', 'off')

def _bool(key, value):
    if isinstance(value, bool): return value
    if str(value).lower() in _TRUE: return True
    if str(value).lower() in _FALSE: return False
    raise ParseError(f'Invalid boolean for `{key}`: {value!r}')

def _int(key, value):
    if isinstance(value, int) and not isinstance(value, bool): return value
    try:
        return int(str(value))
    except ValueError:
        raise ParseError(f'Invalid integer for `{key}`: {value!r}') from None

def _optional(fn):
    return lambda key, value: None if value in (None, '') else fn(key, value)

class Settings:
    _types = {
        'buffer_size': _int,
        'dispose': _bool,
        'encoding': lambda key, value: str(value),
        'compress': _optional(lambda key, value: None if str(value) == AUTO else str(value)),
        'level': _optional(_int),
        'chunk_size': _int,
    }

    def __init__(self, buffer_size=DEFAULT_BUFFER_SIZE, dispose=True, encoding='utf-8',
                 compress=None, level=None, chunk_size=(1<<20)):
        self.buffer_size = buffer_size
        self.dispose = dispose
        self.encoding = encoding
        self.compress = compress
        self.level = level
        self.chunk_size = chunk_size

    @classmethod
    def from_dict(cls, data):
        kwargs = {}
        for key, value in data.items():
            if key not in cls._types:
                raise ParseError(f'Unknown setting: `{key}`')
            kwargs[key] = cls._types[key](key, value)

        for key in ('buffer_size', 'chunk_size'):
            if key in kwargs and kwargs[key] < 1:
                raise ParseError(f'Invalid value for `{key}`: {kwargs[key]}')

        return cls(**kwargs)

    @classmethod
    def from_file(cls, fileobj):
        return cls.from_dict(load(fileobj))

    def update(self, **kwargs):
        # command line options take precedence, but only when given
        for key, value in kwargs.items():
            if key == 'compress' and value == AUTO: setattr(self, key, None)
            elif value is not None: setattr(self, key, value)
        return self

    def __repr__(self):
        items = ', '.join(f'{k}={getattr(self, k)!r}' for k in self._types)
        return f'Settings({items})'
