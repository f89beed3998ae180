"""Program loader: turns assembled Python source into a callable program."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from pyet.exceptions import TemplateSyntaxError

__all__ = [
    "RENDER_FUNCTION",
    "Program",
    "ProgramLoader",
    "load_program",
    "syntax_error",
]

logger = logging.getLogger(__name__)

RENDER_FUNCTION = "__render"

RenderFunction = Callable[..., str]


class Program:
    """An assembled program and the render function loaded from it.

    Calling a program runs the render function with the
    ``(data, escape, include, rethrow)`` contract. ``body`` holds the render
    function's lines without its signature, prologue and data bindings, as
    ``(code, template_line)`` pairs; the compiler fills it in so the program
    can be spliced into an including template.
    """

    def __init__(self, source: str, function: RenderFunction, filename: str | None = None) -> None:
        self.source = source
        self.function = function
        self.filename = filename
        self.body: tuple[tuple[str, int], ...] = ()

    def __call__(
        self,
        data: Mapping[str, Any] | None = None,
        escape: Callable[[Any], str] | None = None,
        include: Callable[..., str] | None = None,
        rethrow: Callable[..., Any] | None = None,
    ) -> str:
        return self.function(data if data is not None else {}, escape, include, rethrow)

    def __repr__(self) -> str:
        return f"<Program {self.filename or '(string)'}>"


def syntax_error(
    err: SyntaxError,
    filename: str | None,
    line_map: Mapping[int, int] | None = None,
) -> TemplateSyntaxError:
    """Describe a syntax error in generated source in terms of the template."""
    template_line = (line_map or {}).get(err.lineno or 0, 0)
    message = err.msg
    if template_line:
        message += f" (template line {template_line})"
    if filename:
        message += f" in {filename}"
    message += " while compiling template\n\n"
    message += "If the above error is not helpful, inspect the generated program with:\n"
    message += f"    pyet source {filename or '<template>'}"
    return TemplateSyntaxError(message, filename=filename, lineno=template_line)


def load_program(
    source: str,
    filename: str | None = None,
    line_map: Mapping[int, int] | None = None,
) -> Program:
    """Compile and execute ``source``, returning the program it defines.

    Raises:
        TemplateSyntaxError: If ``source`` is not valid Python.
    """
    try:
        code = compile(source, f"<template {filename or '(string)'}>", "exec")
    except SyntaxError as e:
        raise syntax_error(e, filename, line_map) from e

    namespace: dict[str, Any] = {}
    exec(code, namespace)
    logger.debug("Loaded program for %s", filename or "(string)")
    return Program(source, namespace[RENDER_FUNCTION], filename)


ProgramLoader = Callable[[str, str | None, Mapping[int, int] | None], Program]
