"""`jest_hoist` 包入口。

Hoists `jest.mock` / `jest.unmock` / automock calls above the rest of their
block in an ESTree syntax tree and checks that mock factories only read
variables that are safe at that point.

Main API: `hoist_tree` (in-place, dict tree) and `hoist_json` (JSON text).
"""
from .errors import HoistError, InvalidFactoryArgumentError, OutOfScopeReferenceError
from .hoist_ast import ALLOWED_IDENTIFIERS, JestHoister, hoist_json, hoist_tree

__all__ = [
            "hoist_tree", "hoist_json", "JestHoister", "ALLOWED_IDENTIFIERS", "HoistError",
            "InvalidFactoryArgumentError", "OutOfScopeReferenceError"
]

__version__ = "0.1.0"
