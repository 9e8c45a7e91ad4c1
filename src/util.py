#!/usr/bin/env python3

import sys

__all__ = []
def export(fn):
    __all__.append(fn.__name__)
    return fn

@export
class Registrar(dict):
    def __init__(self):
        super().__init__()
        self._default = None

    def __getitem__(self, key):
        if self._default and key not in self: return self._default
        else: return super().__getitem__(key)

    def register(self, *args, **kwargs):
        if len(args) == 1:
            if callable(args[0]):
                fn = args[0]
                self[fn.__name__] = fn
                return fn

            name = args[0]
        elif len(args) == 0 and 'name' in kwargs: name = kwargs['name']
        else: name = None

        default = kwargs.get('default', False)
        if name is None and not default: raise TypeError('Invalid argument(s)!')

        def register_name(fn):
            if name is not None: self[name] = fn
            if default: self._default = fn
            return fn

        return register_name

    def dispatch(self, name, *args, **kwargs):
        return (self[name])(*args, **kwargs)

@export
def ifnone(obj, default):
    return obj if obj is not None else default

@export
def defattr(obj, name, value):
    if not hasattr(obj, name):
        setattr(obj, name, value)
        return True
    return False

@export
def eprint(*args, **kwargs):
    if kwargs.pop('file', None):
        raise TypeError('Keyword argument `file` must be omited or `None`!')
    print(*args, file=sys.stderr, **kwargs)

_verbosity = 0

@export
def set_verbosity(level):
    global _verbosity
    _verbosity = level

# diagnostics, printed to stderr once `-v` has been given `level` times
@export
def vprint(level, *args, **kwargs):
    if _verbosity >= level:
        eprint(*args, **kwargs)
