"""
fnbuilder Builder Module

- context: assemble a function's Docker build context
- archive: tar the context together with its build config
- signature: HMAC signing of build payloads
- client: submit archives to the Builder API
- stream: read newline-delimited build results
"""

from .context import ContextAssembler, create_build_context, is_running_in_ci
from .archive import make_tar, read_manifest
from .signature import sign_payload, verify_signature
from .client import FunctionBuilder
from .stream import BuildResultStream

__all__ = [
    # Context
    'ContextAssembler',
    'create_build_context',
    'is_running_in_ci',
    # Archive
    'make_tar',
    'read_manifest',
    # Signature
    'sign_payload',
    'verify_signature',
    # Client
    'FunctionBuilder',
    'BuildResultStream',
]
