"""Diagnostics raised when a `jest` call cannot be hoisted safely.

Both errors are terminal: the transform aborts and the caller must not use the
partially rewritten tree.
"""
from __future__ import annotations

from typing import Optional

from .hoist_ast_util import Node, code_frame__, node_position__


class HoistError(Exception):
    """Base class; anchored at the offending node."""

    def __init__(self, message: str, node: Optional[Node] = None, source: Optional[str] = None,
                 filename: Optional[str] = None):
        self.message = message
        self.node = node
        self.filename = filename
        self.line, self.column = node_position__(node)
        self.code_frame = ''
        if source is not None and self.line is not None:
            self.code_frame = code_frame__(source, self.line, self.column)
        super().__init__(self._format())

    def _format(self) -> str:
        where = []
        if self.filename:
            where.append(str(self.filename))
        if self.line is not None:
            where.append(str(self.line))
            if self.column is not None:
                where.append(str(self.column))
        text = self.message.rstrip('\n')
        if where:
            text = ':'.join(where) + ': ' + text
        if self.code_frame:
            text += '\n' + self.code_frame
        return text


class InvalidFactoryArgumentError(HoistError, TypeError):
    """The second argument of ``jest.mock`` is not an inline function."""


class OutOfScopeReferenceError(HoistError, NameError):
    """A module factory reads a variable that may not be initialized when the factory runs."""

    def __init__(self, message: str, name: str, node: Optional[Node] = None, source: Optional[str] = None,
                 filename: Optional[str] = None):
        super().__init__(message, node = node, source = source, filename = filename)
        self.name = name
