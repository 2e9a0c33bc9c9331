"""
fnbuilder Data Classes

- BuildConfig: image reference, build args and platforms sent with a build
- BuildResult: one build event reported by the builder
"""

from .build import BuildConfig, BuildResult

__all__ = [
    'BuildConfig',
    'BuildResult',
]
