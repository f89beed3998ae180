"""pyet: embedded Python templates.

Templates are text with ``<% %>`` tags holding Python statements and
``<%= %>`` / ``<%- %>`` tags holding expressions whose value is written
escaped or raw. ``compile`` turns a template into a callable::

    import pyet

    template = pyet.compile("<% for name in names: %><li><%= name %></li><% end %>")
    template({"names": ["Ada", "Grace"]})
"""

from pyet.cache import TemplateCache, default_cache
from pyet.compiler import TemplateCompiler, clear_cache, compile, render, render_file
from pyet.exceptions import (
    ConfigError,
    IncludeError,
    PyetError,
    TemplateNotFoundError,
    TemplateRuntimeError,
    TemplateSyntaxError,
)
from pyet.includes import resolve_include
from pyet.options import CompileOptions, load_options, save_options
from pyet.runtime import Template, escape_xml

__version__ = "0.1.0"

__all__ = [
    "CompileOptions",
    "ConfigError",
    "IncludeError",
    "PyetError",
    "Template",
    "TemplateCache",
    "TemplateCompiler",
    "TemplateNotFoundError",
    "TemplateRuntimeError",
    "TemplateSyntaxError",
    "__version__",
    "clear_cache",
    "compile",
    "default_cache",
    "escape_xml",
    "load_options",
    "render",
    "render_file",
    "resolve_include",
    "save_options",
]
