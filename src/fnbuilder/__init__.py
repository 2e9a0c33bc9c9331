"""
fnbuilder - Function Builder client

Assembles a function's Docker build context from a language template and its
handler, archives it, signs it and submits it to a remote Builder API.

Main modules:
- io: scope-checked paths and the file system abstraction
- builder: context assembly, archiving, signing, submission and result streams
- config: project file loading and validation
- datacls: build config and build result models
- utils: logging setup

Quick start example:
```python
from fnbuilder import FunctionBuilder, create_build_context, make_tar, BuildConfig

context = create_build_context("hello", "./hello", "python3", ["common"])
make_tar("hello.tar", context, BuildConfig(image="ttl.sh/hello:1h"))

with FunctionBuilder("http://127.0.0.1:8081", hmac_secret=secret) as builder:
    result = builder.build("hello.tar")
```
"""

__version__ = "0.3.0"

from .datacls import BuildConfig, BuildResult
from .config import Config, ConfigModel, BuildContextConfig
from .builder import (
    ContextAssembler,
    create_build_context,
    make_tar,
    read_manifest,
    FunctionBuilder,
    BuildResultStream,
)
from .io import FileSystem, create_fs, path_in_scope
from .exceptions import (
    FnBuilderError,
    ConfigurationError,
    ContextError,
    ScopeViolation,
    ArchiveError,
    BuilderError,
    UnexpectedStatusError,
    StreamDecodeError,
)

__all__ = [
    # Version
    '__version__',
    # Data classes
    'BuildConfig',
    'BuildResult',
    # Config
    'Config',
    'ConfigModel',
    'BuildContextConfig',
    # Builder
    'ContextAssembler',
    'create_build_context',
    'make_tar',
    'read_manifest',
    'FunctionBuilder',
    'BuildResultStream',
    # IO
    'FileSystem',
    'create_fs',
    'path_in_scope',
    # Exceptions
    'FnBuilderError',
    'ConfigurationError',
    'ContextError',
    'ScopeViolation',
    'ArchiveError',
    'BuilderError',
    'UnexpectedStatusError',
    'StreamDecodeError',
]
