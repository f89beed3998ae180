"""Include resolution with per-compile dependency tracking.

Resolves include paths against the template that includes them, compiles the
target (or reuses it from the dependency map or the template cache) and keeps
the path stack that relative includes are resolved against.
"""

from __future__ import annotations

import contextlib
import logging
import os
from typing import TYPE_CHECKING

from pyet.exceptions import ConfigError, IncludeError, TemplateNotFoundError
from pyet.runtime import read_template

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from pyet.cache import TemplateCache
    from pyet.loader import Program
    from pyet.options import CompileOptions

__all__ = [
    "DEFAULT_EXTENSION",
    "MAX_INCLUDE_DEPTH",
    "IncludeResolver",
    "get_include_path",
    "resolve_include",
]

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".pyet"
MAX_INCLUDE_DEPTH = 64


def resolve_include(name: str, filename: str, is_dir: bool = False) -> str:
    """Resolve ``name`` against the including template's ``filename``.

    Args:
        name: Include path as written in the template.
        filename: Path of the including template, or a directory when
            ``is_dir`` is true.
        is_dir: Treat ``filename`` as the base directory itself.

    Returns:
        Absolute path, with ``.pyet`` appended when ``name`` has no extension.
    """
    base = filename if is_dir else os.path.dirname(filename)
    include_path = os.path.abspath(os.path.join(base, name))
    if not os.path.splitext(name)[1]:
        include_path += DEFAULT_EXTENSION
    return include_path


def get_include_path(path: str, filename: str | None, root: str | None) -> str:
    """Resolve an include path the way the compile options describe.

    A path starting with ``/`` is resolved against ``root`` (default ``/``);
    any other path is relative to the including template.

    Raises:
        ConfigError: If ``path`` is relative and there is no including filename.
    """
    if path.startswith("/"):
        return resolve_include(path.lstrip("/"), root or "/", is_dir=True)
    if not filename:
        raise ConfigError("`include` with a relative path requires the 'filename' option.")
    return resolve_include(path, filename)


class IncludeResolver:
    """Resolves and compiles includes for one top-level compile.

    ``build`` compiles template text into a program; it is called with the
    included template's identifier already on top of :attr:`path_stack`, so
    includes nested inside it resolve against it. ``dependency_key`` maps
    ``(path, parent, identifier)`` to the key used in :attr:`dependencies`.
    """

    def __init__(
        self,
        options: CompileOptions,
        cache: TemplateCache,
        build: Callable[[str, str], Program],
        dependency_key: Callable[[str, str | None, str], str] | None = None,
    ) -> None:
        self.options = options
        self.cache = cache
        self.build = build
        self.dependency_key = dependency_key or (lambda path, parent, identifier: identifier)
        self.dependencies: dict[str, Program] = {}
        self.path_stack: list[str | None] = [options.filename]

    @property
    def current_filename(self) -> str | None:
        return self.path_stack[-1]

    def resolve(self, path: str) -> str:
        """Map an include path to a template identifier."""
        if self.options.use_pages:
            return path
        return get_include_path(path, self.current_filename, self.options.root)

    def fetch(self, identifier: str) -> str:
        """Return the template text for ``identifier``."""
        pages = self.options.pages
        if pages is not None:
            if identifier not in pages:
                raise TemplateNotFoundError(f"Template not found in pages: {identifier}")
            return pages[identifier]
        return read_template(identifier)

    @contextlib.contextmanager
    def including(self, path: str) -> Iterator[Program]:
        """Resolve and compile an include, keeping it on the path stack meanwhile.

        The identifier is pushed before the program is looked up or compiled
        and popped when the ``with`` block exits, whether or not it raised.

        Raises:
            IncludeError: If includes nest deeper than ``MAX_INCLUDE_DEPTH``.
        """
        parent = self.current_filename
        identifier = self.resolve(path)
        if len(self.path_stack) > MAX_INCLUDE_DEPTH:
            raise IncludeError(
                f"Includes nested deeper than {MAX_INCLUDE_DEPTH} levels while including "
                f"{identifier} (is there an include cycle?)"
            )

        self.path_stack.append(identifier)
        try:
            yield self._load(path, parent, identifier)
        finally:
            self.path_stack.pop()

    def register(self, path: str) -> None:
        """Compile an include into the dependency map without using it."""
        with self.including(path):
            pass

    def _load(self, path: str, parent: str | None, identifier: str) -> Program:
        opts = self.options
        key = self.dependency_key(path, parent, identifier)
        program = self.dependencies.get(key)
        from_map = program is not None
        cached = False

        if program is None and opts.cache and not opts.client:
            program = self.cache.get(identifier)
            cached = program is not None

        if program is None:
            logger.debug("Compiling include %s (from %s)", identifier, parent or "(string)")
            program = self.build(self.fetch(identifier), identifier)

        if not from_map and (opts.load_only_once or opts.client):
            self.dependencies[key] = program
        if not cached and opts.cache and not opts.client:
            self.cache.set(identifier, program)
        return program
