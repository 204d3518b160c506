"""Hoist ``jest.mock`` & friends above everything else in their block.

A module mock has to be registered before the module it replaces is required,
but imports (and the ``require`` calls they compile to) sit at the top of a
test file. This pass therefore

1. finds every expression statement that is a (possibly chained) call on the
   ``jest`` object (the global, ``import {jest} from '@jest/globals'`` or
   ``import * as g from '@jest/globals'; g.jest``);
2. validates the call; module factories passed to ``jest.mock`` may only read
   globals from a fixed allow-list, ``mock``-prefixed names, or constants with
   a pure initializer, since the factory may run before the surrounding code;
3. swaps the ``jest`` reference for a call to a lazily initialized getter
   (``_getJestObj()``) declared once at the top of the program;
4. moves the rewritten statements, and the constants their factories read, to
   the front of their enclosing block.

The tree is an ESTree ``Program`` made of plain dicts and is rewritten in place.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Callable, Dict, List, Optional

from .errors import InvalidFactoryArgumentError, OutOfScopeReferenceError
from .hoist_ast_util import (FUNCTION_TYPES, Node, NodeRef, build_parent_map__, call__, collect_identifier_names__,
                             expression_statement__, generate_uid__, identifier__, literal__, walk__)
from .hoist_transformer import HoistState, transform_code_tree
from .scope import Scope, ScopeTracker, is_referenced__

logger = logging.getLogger(__name__)

JEST_GLOBAL_NAME = 'jest'
JEST_GLOBALS_MODULE_NAME = '@jest/globals'
JEST_GLOBALS_MODULE_JEST_EXPORT_NAME = 'jest'
GETTER_BASE_NAME = 'getJestObj'

# Own property names of Node's global object, enumerated rather than read from a live runtime.
NODE_GLOBAL_NAMES = (
            'AbortController', 'AbortSignal', 'AggregateError', 'Atomics', 'BigInt64Array', 'BigUint64Array',
            'Blob', 'BroadcastChannel', 'Buffer', 'DOMException', 'Event', 'EventTarget', 'FinalizationRegistry',
            'FormData', 'Headers', 'MessageChannel', 'MessageEvent', 'MessagePort', 'Request', 'Response',
            'SharedArrayBuffer', 'TextDecoder', 'TextEncoder', 'URL', 'URLSearchParams', 'WeakRef', 'WebAssembly',
            'atob', 'btoa', 'clearImmediate', 'clearInterval', 'clearTimeout', 'crypto', 'decodeURI',
            'decodeURIComponent', 'encodeURI', 'encodeURIComponent', 'escape', 'eval', 'fetch', 'global',
            'globalThis', 'isFinite', 'performance', 'process', 'queueMicrotask', 'setImmediate', 'setInterval',
            'setTimeout', 'structuredClone', 'unescape',
)

# `jest`, `expect`, `require`, the Node.js globals and the ES2015 built-ins may be
# used inside a `jest.mock` factory; `mock`-prefixed names are the escape hatch.
ALLOWED_IDENTIFIERS = tuple(
            sorted({
                        'Array', 'ArrayBuffer', 'Boolean', 'BigInt', 'DataView', 'Date', 'Error', 'EvalError',
                        'Float32Array', 'Float64Array', 'Function', 'Generator', 'GeneratorFunction', 'Infinity',
                        'Int16Array', 'Int32Array', 'Int8Array', 'InternalError', 'Intl', 'JSON', 'Map', 'Math', 'NaN',
                        'Number', 'Object', 'Promise', 'Proxy', 'RangeError', 'ReferenceError', 'Reflect', 'RegExp',
                        'Set', 'String', 'Symbol', 'SyntaxError', 'TypeError', 'URIError', 'Uint16Array',
                        'Uint32Array', 'Uint8Array', 'Uint8ClampedArray', 'WeakMap', 'WeakSet', 'arguments',
                        'console', 'expect', 'isNaN', 'jest', 'parseFloat', 'parseInt', 'exports', 'require', 'module',
                        '__filename', '__dirname', 'undefined', *NODE_GLOBAL_NAMES
            }))
_ALLOWED_IDENTIFIER_SET = frozenset(ALLOWED_IDENTIFIERS)

MOCK_PREFIX_RE = re.compile(r'^mock', re.IGNORECASE)
# istanbul's coverage counters
COVERAGE_VAR_RE = re.compile(r'^(?:__)?cov')

# type annotations never read a runtime value
ID_VISITOR_BLACKLIST = ('TypeAnnotation', 'TSTypeAnnotation', 'TSTypeReference')

STRING_LITERAL_TYPES = ('StringLiteral', )
LITERAL_TYPES = ('Literal', 'StringLiteral', 'NumericLiteral', 'BooleanLiteral', 'NullLiteral', 'RegExpLiteral',
                 'BigIntLiteral', 'DecimalLiteral', 'TemplateLiteral')
FACTORY_FUNCTION_TYPES = ('FunctionExpression', 'ArrowFunctionExpression')


def is_string_literal__(node: Node) -> bool:
    node_type = node.get('type')
    return node_type in STRING_LITERAL_TYPES or (node_type == 'Literal' and isinstance(node.get('value'), str))


def is_literal__(node: Node) -> bool:
    return node.get('type') in LITERAL_TYPES


def out_of_scope_message__(name: str) -> str:
    return ('The module factory of `jest.mock()` is not allowed to '
            'reference any out-of-scope variables.\n'
            'Invalid variable access: ' + name + '\n'
            'Allowed objects: ' + ', '.join(ALLOWED_IDENTIFIERS) + '.\n'
            'Note: This is a precaution to guard against uninitialized mock '
            'variables. If it is ensured that the mock is required lazily, '
            'variable names prefixed with `mock` (case insensitive) are permitted.\n')


###############
# per-method validation rules: (args, call, hoister) -> looks hoistable


def _mock_rule(args: List[Node], call: Node, hoister: 'JestHoister') -> bool:
    if len(args) == 1:
        return is_string_literal__(args[0]) or is_literal__(args[0])
    if len(args) in (2, 3):
        module_factory = args[1]
        if module_factory.get('type') not in FACTORY_FUNCTION_TYPES:
            raise InvalidFactoryArgumentError('The second argument of `jest.mock` must be an inline function.\n',
                                              node = module_factory,
                                              source = hoister.source,
                                              filename = hoister.filename)
        hoister.validate_module_factory(module_factory, call)
        return True
    return False


def _unmock_rule(args: List[Node], call: Node, hoister: 'JestHoister') -> bool:
    return len(args) == 1 and is_string_literal__(args[0])


def _automock_rule(args: List[Node], call: Node, hoister: 'JestHoister') -> bool:
    return len(args) == 0


FUNCTIONS: Dict[str, Callable[[List[Node], Node, 'JestHoister'], bool]] = {
            'mock': _mock_rule,
            'unmock': _unmock_rule,
            'deepUnmock': _unmock_rule,
            'enableAutomock': _automock_rule,
            'disableAutomock': _automock_rule,
}


def create_jest_object_getter__(getter_name: str) -> Node:
    """Build::

        function GETTER_NAME() {
          const { jest } = require("@jest/globals");
          GETTER_NAME = () => jest;
          return jest;
        }
    """
    export_name = JEST_GLOBALS_MODULE_JEST_EXPORT_NAME
    return {
                'type': 'FunctionDeclaration',
                'id': identifier__(getter_name),
                'params': [],
                'generator': False,
                'async': False,
                'body': {
                            'type': 'BlockStatement',
                            'body': [
                                        {
                                                    'type': 'VariableDeclaration',
                                                    'kind': 'const',
                                                    'declarations': [{
                                                                'type': 'VariableDeclarator',
                                                                'id': {
                                                                            'type': 'ObjectPattern',
                                                                            'properties': [{
                                                                                        'type': 'Property',
                                                                                        'key': identifier__(export_name),
                                                                                        'value': identifier__(export_name),
                                                                                        'kind': 'init',
                                                                                        'method': False,
                                                                                        'shorthand': True,
                                                                                        'computed': False,
                                                                            }],
                                                                },
                                                                'init': call__(identifier__('require'),
                                                                               [literal__(JEST_GLOBALS_MODULE_NAME)]),
                                                    }],
                                        },
                                        expression_statement__({
                                                    'type': 'AssignmentExpression',
                                                    'operator': '=',
                                                    'left': identifier__(getter_name),
                                                    'right': {
                                                                'type': 'ArrowFunctionExpression',
                                                                'id': None,
                                                                'params': [],
                                                                'body': identifier__(export_name),
                                                                'expression': True,
                                                                'generator': False,
                                                                'async': False,
                                                    },
                                        }),
                                        {
                                                    'type': 'ReturnStatement',
                                                    'argument': identifier__(export_name),
                                        },
                            ],
                },
    }


class JestHoister:
    """One invocation of the transform over one program."""

    def __init__(self, program: Node, source: Optional[str] = None, filename: Optional[str] = None):
        self.program = program
        self.source = source
        self.filename = filename
        self.scopes = ScopeTracker(program)
        self.state = HoistState(used_names = collect_identifier_names__(program))

    ############### getter synthesizer

    def declare_getter_identifier(self) -> Node:
        """Return a fresh reference to the getter, declaring it at the top of the program on first use."""
        state = self.state
        if state.getter_name is None:
            state.getter_name = generate_uid__(GETTER_BASE_NAME, state.used_names)
            self.program['body'].insert(0, create_jest_object_getter__(state.getter_name))
            logger.debug("declared jest object getter %s", state.getter_name)
        return identifier__(state.getter_name)

    ############### call-chain detector

    def is_jest_object(self, expression: Node) -> bool:
        expression_type = expression.get('type')

        # global
        if expression_type == 'Identifier' and expression['name'] == JEST_GLOBAL_NAME:
            scope = self.scopes.scope_of(expression)
            if scope is not None and not scope.has_binding(JEST_GLOBAL_NAME):
                return True

        # import { jest } from '@jest/globals'
        if self.scopes.references_import(expression, JEST_GLOBALS_MODULE_NAME, JEST_GLOBALS_MODULE_JEST_EXPORT_NAME):
            return True

        # import * as JestGlobals from '@jest/globals'
        if expression_type == 'MemberExpression' and not expression.get('computed'):
            prop = expression.get('property') or {}
            if (prop.get('type') == 'Identifier' and prop.get('name') == JEST_GLOBALS_MODULE_JEST_EXPORT_NAME
                        and self.scopes.references_import(expression['object'], JEST_GLOBALS_MODULE_NAME, '*')):
                return True

        return False

    def extract_jest_obj_expr_if_hoistable(self, expr_ref: NodeRef) -> Optional[NodeRef]:
        """Return the slot holding the `jest` object if `expr_ref.node` is a hoistable call, else None."""
        expr = expr_ref.node
        if expr.get('type') != 'CallExpression':
            return None

        callee = expr.get('callee') or {}
        if callee.get('type') != 'MemberExpression' or callee.get('computed'):
            return None

        prop = callee.get('property') or {}
        property_name = prop.get('name') if prop.get('type') == 'Identifier' else None

        object_ref = NodeRef(callee['object'], callee, 'object')
        # 所有方法都可链式调用：jest 对象也可能是上一次调用的返回值
        jest_obj_ref = object_ref if self.is_jest_object(object_ref.node) else self.extract_jest_obj_expr_if_hoistable(
                    object_ref)
        if jest_obj_ref is None:
            return None

        # The rule runs last: it may raise a diagnostic, which is only correct once
        # the call is known to be on the jest object.
        rule = FUNCTIONS.get(property_name)
        function_looks_hoistable = rule is not None and rule(expr.get('arguments', []), expr, self)

        return jest_obj_ref if function_looks_hoistable else None

    ############### free-variable validator

    def _referenced_identifiers(self, module_factory: Node, call: Node) -> List[Node]:
        parent_map = build_parent_map__(module_factory, blacklist = ID_VISITOR_BLACKLIST)
        ids: List[Node] = []
        seen = set()
        for ref in parent_map.values():
            if ref.node['type'] not in ('Identifier', 'JSXIdentifier') or id(ref.node) in seen:
                continue
            if ref.parent is module_factory:
                grandparent = call
            else:
                grandparent = parent_map[id(ref.parent)].parent
            if is_referenced__(ref.node, ref.parent, ref.field, grandparent):
                seen.add(id(ref.node))
                ids.append(ref.node)
        return ids

    def _mark_hoisted(self, declarator: Node, scope: Scope, factory_ident: Node) -> None:
        """Mark `declarator` and the same-scope constants its initializer reads.

        ``const a = 1; const b = a + 1;`` hoists `a` along with `b`; the hoister
        keeps their source order. A dependency that is reassigned, uninitialized
        or impure would run ahead of the mock, so the factory's read of
        `factory_ident` is rejected instead.
        """
        if self.state.is_hoisted(declarator):
            return
        self.state.mark_hoisted(declarator)

        init_node = declarator['init']
        reads: List[Node] = [init_node] if init_node.get('type') == 'Identifier' else []

        def visit(node, parent, field, index):
            if is_referenced__(node, parent, field, None):
                reads.append(node)

        # function bodies do not run while the initializer is evaluated
        if init_node.get('type') not in FUNCTION_TYPES:
            walk__(init_node, ('Identifier', ), visit, blacklist = FUNCTION_TYPES + ('ClassBody', ))

        for ident in reads:
            binding = scope.get_own_binding(ident['name'])
            if binding is None or binding.path.node.get('type') != 'VariableDeclarator':
                continue
            dependency_init = binding.path.node.get('init')
            if dependency_init is None or not binding.constant or not scope.is_pure(dependency_init, True):
                self._raise_out_of_scope(factory_ident)
            self._mark_hoisted(binding.path.node, scope, factory_ident)

    def validate_module_factory(self, module_factory: Node, call: Node) -> None:
        """Reject factories that read variables which may be uninitialized when the factory runs.

        Constants with a pure initializer declared in the call's own scope are
        accepted and recorded so the hoister moves them above the call.
        """
        parent_scope = self.scopes.scope_of(call)

        for ident in self._referenced_identifiers(module_factory, call):
            name = ident['name']
            scope = self.scopes.scope_of(ident)
            if scope is None:
                # synthesized by this transform
                continue

            found = False
            while scope is not None and scope is not parent_scope:
                if scope.has_own_binding(name):
                    found = True
                    break
                scope = scope.parent
            if found:
                continue
            scope = parent_scope

            is_allowed_identifier = ((scope.has_global(name) and name in _ALLOWED_IDENTIFIER_SET)
                                     or MOCK_PREFIX_RE.match(name) is not None
                                     or COVERAGE_VAR_RE.match(name) is not None)

            if not is_allowed_identifier:
                binding = scope.get_own_binding(name)
                if binding is not None and binding.path.node.get('type') == 'VariableDeclarator':
                    declarator = binding.path.node
                    init_node = declarator.get('init')
                    if init_node is not None and binding.constant and scope.is_pure(init_node, True):
                        self._mark_hoisted(declarator, scope, ident)
                        is_allowed_identifier = True
                        logger.debug("marked `%s` for hoisting with its mock factory", name)

            if not is_allowed_identifier:
                self._raise_out_of_scope(ident)

    def _raise_out_of_scope(self, ident: Node) -> None:
        name = ident['name']
        raise OutOfScopeReferenceError(out_of_scope_message__(name),
                                       name,
                                       node = ident,
                                       source = self.source,
                                       filename = self.filename)

    ############### driver

    def visit_expression_statements(self) -> int:
        statements: List[Node] = []
        walk__(self.program, ('ExpressionStatement', ), lambda node, parent, field, index: statements.append(node))

        rewritten = 0
        for stmt in statements:
            jest_obj_ref = self.extract_jest_obj_expr_if_hoistable(NodeRef(stmt['expression'], stmt, 'expression'))
            if jest_obj_ref is not None:
                jest_obj_ref.replace_with(call__(self.declare_getter_identifier()))
                rewritten += 1
        return rewritten

    def run(self) -> Node:
        rewritten = self.visit_expression_statements()
        # after the visit, so we come after an import transform and can unshift above the `require`s
        results = transform_code_tree(self.program, self.state)
        logger.debug("%s: rewrote %d jest call(s), hoisted in %d block(s)", self.filename or '<tree>', rewritten,
                     len(results))
        return self.program


def hoist_tree(tree: Node, source: Optional[str] = None, filename: Optional[str] = None) -> Node:
    """Rewrite an ESTree `Program` (or a Babel `File` wrapping one) in place and return it.

    `source` and `filename` only enrich diagnostics. On error the tree may be
    partially rewritten and must be discarded.
    """
    if not isinstance(tree, dict):
        raise ValueError(f"expected an ESTree node, got {type(tree).__name__}")
    program = tree.get('program') if tree.get('type') == 'File' else tree
    if not isinstance(program, dict) or program.get('type') != 'Program':
        raise ValueError(f"expected an ESTree Program, got {tree.get('type')!r}")

    JestHoister(program, source = source, filename = filename).run()
    return tree


def hoist_json(text: str, source: Optional[str] = None, filename: Optional[str] = None,
               indent: Optional[int] = None) -> str:
    """JSON in, JSON out wrapper around `hoist_tree`."""
    tree = json.loads(text)
    hoist_tree(tree, source = source, filename = filename)
    return json.dumps(tree, ensure_ascii = False, indent = indent)
