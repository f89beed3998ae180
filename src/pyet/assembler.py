"""Source assembler: folds template segments into a Python render function.

The generated function has the shape::

    def __render(locals, escape, include, rethrow):
        __filename = 'page.pyet'
        __line = 1
        __lines = '...template text...'
        try:
            if 'user' in locals: user = locals['user']
            __output = []
            __append = __output.append
            __append('Hello ')
            __line = 1
            __append(escape(user))
            return ''.join(__output)
        except Exception as __err:
            rethrow(__err, __lines, __filename, __line)

Python needs explicit block structure, so a scriptlet whose last line ends
with ``:`` opens an indented suite that lasts until a scriptlet reading
``end``; ``else``/``elif``/``except``/``finally`` close the current suite and
open the next one.

Two strategies decide what surrounds the function: :class:`InlineStrategy`
(the program runs in this process) and :class:`DistributionStrategy` (the
program is a standalone module carrying its own include table).
"""

from __future__ import annotations

import ast
import builtins
import io
import logging
import re
import symtable
import tokenize
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pyet.exceptions import TemplateSyntaxError
from pyet.loader import RENDER_FUNCTION, syntax_error
from pyet.tokenizer import (
    match_include_call,
    match_include_directive,
    normalize_content,
    strip_lines,
    tokenize as tokenize_template,
)
from pyet.types import Segment, SegmentKind

if TYPE_CHECKING:
    from collections.abc import Collection, Iterator, Mapping

    from pyet.includes import IncludeResolver
    from pyet.loader import Program
    from pyet.options import CompileOptions

__all__ = [
    "AssemblyStrategy",
    "CodeWriter",
    "DistributionStrategy",
    "GeneratedSource",
    "InlineStrategy",
    "SourceAssembler",
    "strategy_for",
]

logger = logging.getLogger(__name__)

INDENT = "    "

_BLOCK_END_RE = re.compile(r"^end(?:\s+[A-Za-z_]+)?\s*;?$")
_CONTINUATION_RE = re.compile(r"^(?:else|elif|except|finally)\b")
_TRAILING_SEMICOLON_RE = re.compile(r";\s*$")
_BUILTIN_NAMES = frozenset(dir(builtins))
_IGNORED_TOKENS = frozenset(
    {
        tokenize.COMMENT,
        tokenize.NL,
        tokenize.NEWLINE,
        tokenize.INDENT,
        tokenize.DEDENT,
        tokenize.ENDMARKER,
    }
)


@dataclass(frozen=True)
class GeneratedSource:
    """Assembled source plus a map from generated line to template line.

    ``body`` is the render function without its signature, prologue and data
    bindings: the lines an including template splices in as a closure.
    """

    source: str
    line_map: dict[int, int] = field(default_factory=dict)
    body: tuple[tuple[str, int], ...] = ()


class CodeWriter:
    """Accumulates indented source lines, each tagged with its template line."""

    def __init__(self, indent: str = "") -> None:
        self._code: list[tuple[str, int] | CodeWriter] = []
        self._indents = [indent]

    def add_line(self, line: str, template_line: int = 0) -> None:
        """Add one item at the current indentation.

        Only the first physical line of a multi-line item is indented, so
        continuation lines of string literals keep their text.
        """
        self._code.append((self._indents[-1] + line if line.strip() else "", template_line))

    def add_lines(self, text: str, template_line: int = 0) -> None:
        """Add every line of ``text``, keeping its relative indentation."""
        for line in text.split("\n"):
            self.add_line(line, template_line)

    def add_section(self) -> CodeWriter:
        """Reserve a place for lines that are only known later."""
        section = CodeWriter(self._indents[-1])
        self._code.append(section)
        return section

    def indent(self, extra: str = INDENT) -> None:
        self._indents.append(self._indents[-1] + extra)

    def dedent(self) -> None:
        self._indents.pop()

    def lines(self, exclude: Collection[CodeWriter] = ()) -> Iterator[tuple[str, int]]:
        for item in self._code:
            if isinstance(item, CodeWriter):
                if item not in exclude:
                    yield from item.lines(exclude)
            else:
                yield item

    def generated(self, exclude: Collection[CodeWriter] = ()) -> GeneratedSource:
        code = list(self.lines(exclude))
        source = "\n".join(text for text, _ in code) + "\n"
        line_map: dict[int, int] = {}
        lineno = 1
        for text, line in code:
            # Every physical line of an item maps to the item's template line.
            for _ in range(text.count("\n") + 1):
                if line:
                    line_map[lineno] = line
                lineno += 1
        return GeneratedSource(source, line_map)


def _opens_block(line: str) -> bool:
    """Whether a code line ends with the ``:`` of a compound statement header."""
    try:
        tokens = [
            tok
            for tok in tokenize.generate_tokens(io.StringIO(line.strip() + "\n").readline)
            if tok.type not in _IGNORED_TOKENS
        ]
    except (tokenize.TokenError, SyntaxError):
        return line.rstrip().endswith(":")
    return bool(tokens) and tokens[-1].type == tokenize.OP and tokens[-1].string == ":"


def _split_code(content: str) -> list[str]:
    """Split scriptlet code into logical lines.

    Continuation lines (open brackets, multi-line strings, backslashes) stay
    in the piece of the line they continue, and the common indentation of the
    logical lines is removed from their first lines only.
    """
    lines = content.split("\n")
    continued: set[int] = set()
    start = None
    try:
        for tok in tokenize.generate_tokens(io.StringIO(content + "\n").readline):
            if tok.type == tokenize.NEWLINE:
                if start is not None:
                    continued.update(range(start + 1, tok.start[0] + 1))
                start = None
            elif start is None and tok.type not in _IGNORED_TOKENS:
                start = tok.start[0]
    except (tokenize.TokenError, SyntaxError):
        continued.clear()

    pieces: list[str] = []
    for row, line in enumerate(lines, start=1):
        if row in continued and pieces:
            pieces[-1] += "\n" + line
        else:
            pieces.append(line)

    margin = min(len(piece) - len(piece.lstrip()) for piece in pieces if piece.strip())
    return [piece[margin:] if piece.strip() else "" for piece in pieces]


def _assigned_names(source: str) -> frozenset[str]:
    """Names the render function in ``source`` assigns, i.e. its own locals."""
    module = symtable.symtable(source, "<template>", "exec")
    function = next(
        table for table in module.get_children() if table.get_name() == RENDER_FUNCTION
    )
    return frozenset(
        symbol.get_name()
        for symbol in function.get_symbols()
        if symbol.is_local() and symbol.is_assigned()
    )


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class AssemblyStrategy:
    """What surrounds the render function; the base runs it in-process."""

    #: Pre-register ``include("path")`` calls found in fragments.
    registers_include_calls = False

    def signature(self, locals_name: str, top_level: bool) -> str:
        return f"def {RENDER_FUNCTION}({locals_name}, escape, include, rethrow):"

    def prologue(self, writer: CodeWriter, locals_name: str, top_level: bool) -> None:
        """Add lines that run right after ``__filename`` is bound."""

    def dependency_key(self, path: str, parent: str | None, identifier: str) -> str:
        return identifier

    def finish(
        self,
        generated: GeneratedSource,
        dependencies: Mapping[str, Program],
        options: CompileOptions,
    ) -> GeneratedSource:
        """Turn the top-level function into the final program."""
        return generated


class InlineStrategy(AssemblyStrategy):
    """Program executed in this process; includes are compiled on demand."""


# Helpers embedded in distributed programs, which cannot import pyet.
_CLIENT_RUNTIME = r'''
def __escape_xml(markup):
    if markup is None:
        return ''
    return (
        str(markup)
        .replace('&', '&amp;')
        .replace('<', '&lt;')
        .replace('>', '&gt;')
        .replace('"', '&#34;')
        .replace("'", '&#39;')
    )


def __rethrow(err, source, filename, lineno):
    if getattr(err, 'reported', False):
        raise err
    lines = source.split('\n')
    start = max(lineno - 3, 1)
    end = min(len(lines), lineno + 3)
    context = '\n'.join(
        (' >> ' if curr == lineno else '    ') + str(curr) + '| ' + lines[curr - 1]
        for curr in range(start, end + 1)
    )
    error = RuntimeError(
        (filename or 'pyet') + ':' + str(lineno) + '\n' + context + '\n\n' + str(err)
    )
    error.path = filename
    error.reported = True
    raise error from err


def __client_include(parent, data, escape, rethrow):
    def include(path, include_data=None):
        if path.startswith('/'):
            key = __root.rstrip('/') + path
        else:
            key = (parent or '')[: (parent or '').rfind('/') + 1] + path
        source = __dependencies.get(key)
        if source is None:
            raise LookupError('can not find template ' + key)
        namespace = {}
        exec(source, namespace)
        merged = dict(data)
        if include_data:
            merged.update(include_data)
        nested = __client_include(key, merged, escape, rethrow)
        return namespace['__render'](merged, escape, nested, rethrow)

    return include
'''


class DistributionStrategy(AssemblyStrategy):
    """Standalone program: includes are looked up in an embedded dependency table.

    Dependencies are keyed by the include path joined to the including
    template's key (or to ``root`` for absolute paths), the same way the
    embedded ``include`` resolves them at run time.
    """

    registers_include_calls = True

    def __init__(self, root: str | None = None) -> None:
        self.root = (root or "/").rstrip("/")
        self._keys: dict[str, str] = {}

    def signature(self, locals_name: str, top_level: bool) -> str:
        if not top_level:
            return super().signature(locals_name, top_level)
        return (
            f"def {RENDER_FUNCTION}({locals_name}, escape=None, include=None, rethrow=None):"
        )

    def prologue(self, writer: CodeWriter, locals_name: str, top_level: bool) -> None:
        if not top_level:
            return
        writer.add_line("escape = escape or __escape_xml")
        writer.add_line("rethrow = rethrow or __rethrow")
        writer.add_line(f"include = __client_include(__filename, {locals_name}, escape, rethrow)")

    def dependency_key(self, path: str, parent: str | None, identifier: str) -> str:
        if path.startswith("/"):
            key = self.root + path
        else:
            parent_key = self._keys.get(parent, parent) if parent else ""
            key = parent_key[: parent_key.rfind("/") + 1] + path
        self._keys[identifier] = key
        return key

    def finish(
        self,
        generated: GeneratedSource,
        dependencies: Mapping[str, Program],
        options: CompileOptions,
    ) -> GeneratedSource:
        header = CodeWriter()
        header.add_line("# Generated by pyet; do not edit.")
        header.add_line(f"__root = {self.root!r}")
        if dependencies:
            header.add_line("__dependencies = {")
            for key, program in dependencies.items():
                header.add_line(f"    {key!r}: {program.source!r},")
            header.add_line("}")
        else:
            header.add_line("__dependencies = {}")
        header.add_lines(_CLIENT_RUNTIME)
        header.add_line("")

        head = header.generated()
        offset = head.source.count("\n")
        line_map = {line + offset: tmpl for line, tmpl in generated.line_map.items()}
        return GeneratedSource(head.source + generated.source, line_map, generated.body)


def strategy_for(options: CompileOptions) -> AssemblyStrategy:
    """Pick the code generation strategy for ``options``."""
    return DistributionStrategy(options.root) if options.client else InlineStrategy()


# ---------------------------------------------------------------------------
# Assembler
# ---------------------------------------------------------------------------


@dataclass
class _Body:
    """Per-function assembly state."""

    writer: CodeWriter
    filename: str | None
    blocks: list[int] = field(default_factory=list)
    includes: int = 0


class SourceAssembler:
    """Generates render-function source for templates compiled with ``options``."""

    def __init__(
        self,
        options: CompileOptions,
        resolver: IncludeResolver,
        strategy: AssemblyStrategy,
    ) -> None:
        self.options = options
        self.resolver = resolver
        self.strategy = strategy
        self.delimiters = options.delimiters

    def generate(
        self,
        template: str,
        filename: str | None,
        *,
        top_level: bool = False,
    ) -> GeneratedSource:
        """Assemble the render function for ``template``.

        Args:
            template: Template text.
            filename: Template identifier, used for ``__filename`` and errors.
            top_level: Whether this is the template being compiled, as opposed
                to one of its includes.

        Raises:
            TemplateSyntaxError: If blocks are unbalanced or the fragments do
                not form valid Python.
        """
        opts = self.options
        loc = opts.locals_name
        segments = tokenize_template(template, self.delimiters, rm_whitespace=opts.rm_whitespace)

        writer = CodeWriter()
        header = writer.add_section()
        header.add_line(self.strategy.signature(loc, top_level))
        writer.indent()
        writer.add_line(f"__filename = {filename!r}")
        prologue = writer.add_section()
        self.strategy.prologue(prologue, loc, top_level)
        if opts.compile_debug:
            lines_text = strip_lines(template) if opts.rm_whitespace else template
            writer.add_line("__line = 1")
            writer.add_line(f"__lines = {lines_text!r}")
            writer.add_line("try:")
            writer.indent()
        bindings = writer.add_section()
        closure_bindings = writer.add_section()
        writer.add_line("__output = []")
        writer.add_line("__append = __output.append")

        body = _Body(writer=writer, filename=filename)
        for segment in segments:
            self._emit(body, segment)
        if body.blocks:
            raise TemplateSyntaxError(
                f"Block opened on line {body.blocks[-1]} is never closed with `end`"
                + (f" in {filename}" if filename else ""),
                filename=filename,
                lineno=body.blocks[-1],
            )

        writer.add_line("return ''.join(__output)")
        if opts.compile_debug:
            writer.dedent()
            writer.add_line("except Exception as __err:")
            writer.add_line("    rethrow(__err, __lines, __filename, __line)")

        if opts.with_locals:
            self._bind_locals(bindings, closure_bindings, writer.generated(), filename)

        generated = writer.generated(exclude=(closure_bindings,))
        logger.debug(
            "Assembled %s: %d segment(s), %d line(s)",
            filename or "(string)",
            len(segments),
            generated.source.count("\n"),
        )
        closure = tuple(writer.lines(exclude=(header, prologue, bindings)))
        return GeneratedSource(generated.source, generated.line_map, closure)

    # -- segments ----------------------------------------------------------

    def _emit(self, body: _Body, segment: Segment) -> None:
        kind = segment.kind
        if kind in (SegmentKind.LITERAL, SegmentKind.LITERAL_DELIMITER):
            body.writer.add_line(f"__append({segment.text!r})", segment.line)
        elif kind is SegmentKind.COMMENT:
            return
        else:
            self._emit_fragment(body, segment)

    def _emit_fragment(self, body: _Body, segment: Segment) -> None:
        writer = body.writer
        content = normalize_content(segment.text)
        if not content:
            return

        directive = match_include_directive(content)
        if directive is not None:
            call = self._inline_include(body, directive.path, segment.line)
            self._mark_line(body, segment.line)
            if segment.kind is SegmentKind.ESCAPED:
                call = f"escape({call})"
            writer.add_line(f"__append({call})", segment.line)
            return

        if self.strategy.registers_include_calls:
            include_call = match_include_call(content)
            if include_call is not None:
                self.resolver.register(include_call.path)

        if segment.kind is SegmentKind.ESCAPED:
            self._mark_line(body, segment.line)
            writer.add_line(f"__append(escape({content}))", segment.line)
        elif segment.kind is SegmentKind.RAW:
            content = _TRAILING_SEMICOLON_RE.sub("", content)
            self._mark_line(body, segment.line)
            writer.add_line(f"__append(str({content}))", segment.line)
        else:
            self._emit_statements(body, content, segment.line)

    def _emit_statements(self, body: _Body, content: str, line: int) -> None:
        writer = body.writer
        code_lines = content.split("\n")
        first = code_lines[0].strip()

        if len(code_lines) == 1 and _BLOCK_END_RE.match(first):
            self._close_block(body, line)
            return

        if _CONTINUATION_RE.match(first):
            self._close_block(body, line)
        else:
            self._mark_line(body, line)

        pieces = _split_code(content)
        for piece in pieces:
            writer.add_line(piece.rstrip(), line)

        last = next(piece for piece in reversed(pieces) if piece.strip())
        if _opens_block(last):
            writer.indent(last[: len(last) - len(last.lstrip())] + INDENT)
            body.blocks.append(line)
            # Suites must not be empty.
            if self.options.compile_debug:
                writer.add_line(f"__line = {line}", line)
            else:
                writer.add_line("pass", line)

    def _close_block(self, body: _Body, line: int) -> None:
        if not body.blocks:
            where = f" in {body.filename}" if body.filename else ""
            raise TemplateSyntaxError(
                f"`end` on line {line} has no open block to close{where}",
                filename=body.filename,
                lineno=line,
            )
        body.blocks.pop()
        body.writer.dedent()

    def _mark_line(self, body: _Body, line: int) -> None:
        if self.options.compile_debug:
            body.writer.add_line(f"__line = {line}", line)

    # -- includes ----------------------------------------------------------

    def _inline_include(self, body: _Body, path: str, line: int) -> str:
        """Splice an include in as a closure; return the call to it.

        The closure keeps its own accumulator and error location, while the
        names it reads (data fields and the includer's loop variables alike)
        resolve through the including function.
        """
        with self.resolver.including(path) as program:
            code = program.body
        body.includes += 1
        name = f"__include_{body.includes}"
        body.writer.add_line(f"def {name}():", line)
        # Body items are already indented one level.
        for text, _ in code:
            body.writer.add_line(text, line)
        return f"{name}()"

    # -- implicit locals ---------------------------------------------------

    def _bind_locals(
        self,
        bindings: CodeWriter,
        closure_bindings: CodeWriter,
        draft: GeneratedSource,
        filename: str | None,
    ) -> None:
        """Bind every free name the fragments use to the matching data field.

        Names missing from the data stay unbound, so using one raises
        ``NameError`` only where it is used. Builtin names fall back to the
        builtin. ``closure_bindings`` only gets the names the function assigns
        itself: spliced in as an include, the function reads every other name
        from its includer.
        """
        try:
            tree = ast.parse(draft.source)
            assigned = _assigned_names(draft.source)
        except SyntaxError as e:
            raise syntax_error(e, filename, draft.line_map) from e

        reserved = {self.options.locals_name, "escape", "include", "rethrow"}
        names = sorted(
            {
                node.id
                for node in ast.walk(tree)
                if isinstance(node, ast.Name)
                and isinstance(node.ctx, ast.Load)
                and node.id not in reserved
                and not node.id.startswith("__")
            }
        )

        self._add_bindings(bindings, names)
        self._add_bindings(closure_bindings, [name for name in names if name in assigned])

    def _add_bindings(self, writer: CodeWriter, names: list[str]) -> None:
        loc = self.options.locals_name
        if any(name in _BUILTIN_NAMES for name in names):
            writer.add_line("import builtins as __builtins")
        for name in names:
            if name in _BUILTIN_NAMES:
                writer.add_line(
                    f"{name} = {loc}[{name!r}] if {name!r} in {loc} else __builtins.{name}"
                )
            else:
                writer.add_line(f"if {name!r} in {loc}: {name} = {loc}[{name!r}]")
