"""Compile and render entry points.

A :class:`TemplateCompiler` owns a template cache and turns template text into
callable templates::

    compiler = TemplateCompiler()
    template = compiler.compile("Hi <%= name %>", CompileOptions())
    template({"name": "Ada"})

The module-level :func:`compile`, :func:`render`, :func:`render_file` and
:func:`clear_cache` use a process-wide compiler backed by
:data:`pyet.cache.default_cache`.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any

from pyet.assembler import SourceAssembler, strategy_for
from pyet.cache import TemplateCache, default_cache
from pyet.exceptions import ConfigError
from pyet.includes import IncludeResolver
from pyet.loader import Program, ProgramLoader, load_program
from pyet.options import CompileOptions
from pyet.runtime import Template, read_template

if TYPE_CHECKING:
    from collections.abc import Mapping

    from pyet.assembler import GeneratedSource

__all__ = [
    "Compilation",
    "TemplateCompiler",
    "clear_cache",
    "compile",
    "default_compiler",
    "render",
    "render_file",
]

logger = logging.getLogger(__name__)


class Compilation:
    """One top-level compile: its strategy, include resolver and assembler.

    Includes compiled along the way share the options, the dependency map and
    the path stack of the compilation that triggered them. ``loader`` turns
    assembled source into a :class:`~pyet.loader.Program`.
    """

    def __init__(
        self,
        options: CompileOptions,
        cache: TemplateCache,
        loader: ProgramLoader = load_program,
    ) -> None:
        self.options = options
        self.loader = loader
        self.strategy = strategy_for(options)
        self.resolver = IncludeResolver(
            options,
            cache,
            build=self._build_include,
            dependency_key=self.strategy.dependency_key,
        )
        self.assembler = SourceAssembler(options, self.resolver, self.strategy)

    def compile(self, template: str) -> Program:
        opts = self.options
        generated = self.assembler.generate(template, opts.filename, top_level=True)
        if opts.client:
            for path in opts.precompile:
                self.resolver.register(path)
        generated = self.strategy.finish(generated, self.resolver.dependencies, opts)

        if opts.debug:
            logger.info("Generated program for %s:\n%s", opts.filename or "(string)", generated.source)
        return self._load(generated, opts.filename)

    def _build_include(self, template: str, identifier: str) -> Program:
        return self._load(self.assembler.generate(template, identifier), identifier)

    def _load(self, generated: GeneratedSource, filename: str | None) -> Program:
        program = self.loader(generated.source, filename, generated.line_map)
        program.body = generated.body
        return program


class TemplateCompiler:
    """Compiles templates, reusing programs from ``cache`` when options allow."""

    def __init__(
        self,
        cache: TemplateCache | None = None,
        loader: ProgramLoader = load_program,
    ) -> None:
        self.cache = cache if cache is not None else TemplateCache()
        self.loader = loader

    def compile(
        self,
        template: str | None,
        options: CompileOptions | None = None,
    ) -> Template | Program:
        """Compile ``template`` into a callable.

        Args:
            template: Template text. When ``None``, the text is read from
                ``options.filename``.
            options: Compile options; defaults to ``CompileOptions()``.

        Returns:
            A :class:`~pyet.runtime.Template`, or in distribution mode
            (``client=True``) the standalone :class:`~pyet.loader.Program`.

        Raises:
            ConfigError: If there is neither template text nor a filename.
            TemplateSyntaxError: If the template does not form a valid program.
        """
        opts = options or CompileOptions()

        if opts.cache and opts.filename and not opts.use_pages:
            program = self.cache.get(opts.filename)
            if program is not None:
                return self._bind(program, Compilation(opts, self.cache, self.loader))

        if template is None:
            if not opts.filename:
                raise ConfigError("compile() needs template text or the 'filename' option.")
            template = read_template(opts.filename)

        compilation = Compilation(opts, self.cache, self.loader)
        program = compilation.compile(template)
        logger.info("Compiled template %s", opts.filename or "(string)")
        if opts.cache and opts.filename:
            self.cache.set(opts.filename, program)
        return self._bind(program, compilation)

    def render(
        self,
        template: str,
        data: Mapping[str, Any] | None = None,
        options: CompileOptions | None = None,
    ) -> str:
        """Compile ``template`` and render it with ``data``."""
        return self.compile(template, options)(data or {})

    def render_file(
        self,
        filename: str | os.PathLike[str],
        data: Mapping[str, Any] | None = None,
        options: CompileOptions | None = None,
    ) -> str:
        """Read, compile and render the template at ``filename``."""
        opts = (options or CompileOptions()).evolve(filename=os.fspath(filename))
        return self.compile(None, opts)(data or {})

    def clear_cache(self) -> None:
        self.cache.reset()

    @staticmethod
    def _bind(program: Program, compilation: Compilation) -> Template | Program:
        if compilation.options.client:
            return program
        return Template(program, compilation.resolver)


default_compiler = TemplateCompiler(default_cache)


def compile(template: str | None, options: CompileOptions | None = None) -> Template | Program:
    """Compile ``template`` with the process-wide compiler."""
    return default_compiler.compile(template, options)


def render(
    template: str,
    data: Mapping[str, Any] | None = None,
    options: CompileOptions | None = None,
) -> str:
    """Compile and render ``template`` with the process-wide compiler."""
    return default_compiler.render(template, data, options)


def render_file(
    filename: str | os.PathLike[str],
    data: Mapping[str, Any] | None = None,
    options: CompileOptions | None = None,
) -> str:
    """Compile and render the template file at ``filename``."""
    return default_compiler.render_file(filename, data, options)


def clear_cache() -> None:
    """Drop every program from the process-wide template cache."""
    default_compiler.clear_cache()
