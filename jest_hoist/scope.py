"""Lexical scope analysis over an ESTree program.

`ScopeTracker.crawl` walks a `Program` once to register declarations and a
second time to resolve references, so `var` and function-declaration hoisting
is visible to every reference regardless of source order. The resulting
`Scope` / `Binding` objects answer the questions the mock hoister asks:
"is this name bound here", "is it a global", "is it ever reassigned",
"is this initializer pure", "does this identifier come from that import".
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from .hoist_ast_util import FUNCTION_TYPES, Node, NodeRef, iter_child_fields__

logger = logging.getLogger(__name__)

# Scopes whose bindings receive `var` declarations.
FUNCTION_PARENT_TYPES = FUNCTION_TYPES + ('Program', 'StaticBlock')

LITERAL_TYPES = ('Literal', 'StringLiteral', 'NumericLiteral', 'BooleanLiteral', 'NullLiteral', 'RegExpLiteral',
                 'BigIntLiteral', 'DecimalLiteral')

PATTERN_TYPES = ('ObjectPattern', 'ArrayPattern', 'AssignmentPattern', 'RestElement')


@dataclass(slots = True)
class Binding:
    name: str = None
    kind: str = None  # var / let / const / using / hoisted / param / local / module
    identifier: Node = None  # 声明处的标识符
    path: NodeRef = None  # declarator / function / class / import specifier / param owner
    scope: 'Scope' = None
    declaration: Optional[Node] = None  # enclosing VariableDeclaration or ImportDeclaration
    constant_violations: List[Node] = field(default_factory = list)  # assignments, updates, re-declarations

    @property
    def constant(self) -> bool:
        return not self.constant_violations

    def reassign(self, node: Node) -> None:
        self.constant_violations.append(node)


class Scope:

    def __init__(self, block: Node, parent: Optional[Scope] = None):
        self.block = block
        self.parent = parent
        self.bindings: Dict[str, Binding] = {}
        # only meaningful on the program scope
        self.globals: Set[str] = set()

    def __repr__(self):
        return f"<Scope {self.block.get('type')} {sorted(self.bindings)}>"

    @property
    def program(self) -> Scope:
        scope = self
        while scope.parent is not None:
            scope = scope.parent
        return scope

    def get_function_parent(self) -> Scope:
        scope = self
        while scope.parent is not None and scope.block.get('type') not in FUNCTION_PARENT_TYPES:
            scope = scope.parent
        return scope

    def get_own_binding(self, name: str) -> Optional[Binding]:
        return self.bindings.get(name)

    def get_binding(self, name: str) -> Optional[Binding]:
        scope = self
        while scope is not None:
            binding = scope.bindings.get(name)
            if binding is not None:
                return binding
            scope = scope.parent
        return None

    def has_own_binding(self, name: str) -> bool:
        return name in self.bindings

    def has_binding(self, name: str) -> bool:
        return self.get_binding(name) is not None

    def has_global(self, name: str) -> bool:
        return name in self.program.globals

    def register_binding(self,
                         kind: str,
                         identifier: Node,
                         path: NodeRef,
                         declaration: Optional[Node] = None) -> Binding:
        name = identifier['name']
        local = self.bindings.get(name)
        if local is not None:
            # var x; var x = 1; / function f() {} var f; 重复声明视为重新赋值
            local.reassign(identifier)
            return local
        binding = Binding(name = name,
                          kind = kind,
                          identifier = identifier,
                          path = path,
                          scope = self,
                          declaration = declaration)
        self.bindings[name] = binding
        return binding

    def is_pure(self, node: Optional[Node], constants_only: bool = False) -> bool:
        """Conservatively decide whether evaluating `node` can have no observable side effect.

        Identifiers are pure only when bound (and, with `constants_only`, never
        reassigned). Calls, `new`, member access, assignments and anything not
        listed here are impure.
        """
        if node is None:
            return True
        node_type = node.get('type')

        if node_type == 'Identifier':
            binding = self.get_binding(node['name'])
            if binding is None:
                return False
            if constants_only:
                return binding.constant
            return True

        if node_type in LITERAL_TYPES or node_type in ('FunctionExpression', 'ArrowFunctionExpression',
                                                       'FunctionDeclaration'):
            return True

        if node_type == 'TemplateLiteral':
            return all(self.is_pure(expr, constants_only) for expr in node.get('expressions', ()))

        if node_type == 'TaggedTemplateExpression':
            tag = node.get('tag') or {}
            return (tag.get('type') == 'MemberExpression' and not tag.get('computed')
                    and tag['object'].get('type') == 'Identifier' and tag['object']['name'] == 'String'
                    and not self.has_binding('String') and tag['property'].get('name') == 'raw'
                    and self.is_pure(node.get('quasi'), constants_only))

        if node_type in ('ClassExpression', 'ClassDeclaration'):
            if node.get('superClass') is not None and not self.is_pure(node['superClass'], constants_only):
                return False
            return all(self.is_pure(member, constants_only) for member in node['body'].get('body', ()))

        if node_type in ('MethodDefinition', 'ClassMethod', 'ClassPrivateMethod', 'ObjectMethod'):
            if node.get('computed') and not self.is_pure(node.get('key'), constants_only):
                return False
            return node.get('kind') not in ('get', 'set')

        if node_type in ('Property', 'ObjectProperty', 'PropertyDefinition', 'ClassProperty',
                         'ClassPrivateProperty'):
            if node.get('computed') and not self.is_pure(node.get('key'), constants_only):
                return False
            if node.get('kind') in ('get', 'set'):
                return False
            return self.is_pure(node.get('value'), constants_only)

        if node_type == 'ArrayExpression':
            return all(el is None or (el.get('type') != 'SpreadElement' and self.is_pure(el, constants_only))
                       for el in node.get('elements', ()))

        if node_type == 'ObjectExpression':
            return all(prop.get('type') != 'SpreadElement' and self.is_pure(prop, constants_only)
                       for prop in node.get('properties', ()))

        if node_type == 'UnaryExpression':
            return node.get('operator') != 'delete' and self.is_pure(node.get('argument'), constants_only)

        if node_type in ('BinaryExpression', 'LogicalExpression'):
            return self.is_pure(node.get('left'), constants_only) and self.is_pure(node.get('right'), constants_only)

        return False


def get_binding_identifiers__(pattern: Optional[Node]) -> List[Node]:
    """Identifiers bound by a declaration target or parameter pattern."""
    result: List[Node] = []
    stack = [pattern]
    while stack:
        node = stack.pop()
        if node is None:
            continue
        node_type = node.get('type')
        if node_type == 'Identifier':
            result.append(node)
        elif node_type == 'ObjectPattern':
            for prop in reversed(node.get('properties', ())):
                if prop.get('type') == 'RestElement':
                    stack.append(prop)
                else:
                    stack.append(prop.get('value'))
        elif node_type == 'ArrayPattern':
            stack.extend(reversed([el for el in node.get('elements', ()) if el is not None]))
        elif node_type == 'AssignmentPattern':
            stack.append(node.get('left'))
        elif node_type == 'RestElement':
            stack.append(node.get('argument'))
        elif node_type == 'TSParameterProperty':
            stack.append(node.get('parameter'))
    return result


def is_compat_tag__(name: str) -> bool:
    """Lower-case JSX tags (`div`) are host elements, not variable references."""
    return bool(name) and 'a' <= name[0] <= 'z'


def is_referenced__(node: Node, parent: Node, field: str, grandparent: Optional[Node]) -> bool:
    """Whether the identifier `node`, held in ``parent[field]``, reads a variable."""
    if node.get('type') == 'JSXIdentifier':
        if is_compat_tag__(node.get('name', '')):
            return False
    elif node.get('type') != 'Identifier':
        return False

    parent_type = parent.get('type')

    if parent_type in ('MemberExpression', 'OptionalMemberExpression', 'JSXMemberExpression'):
        if field == 'property':
            return bool(parent.get('computed'))
        return True

    if parent_type == 'MetaProperty':
        return False

    if parent_type == 'VariableDeclarator':
        return field == 'init'

    if parent_type == 'ArrowFunctionExpression':
        return field == 'body'

    if parent_type in ('FunctionDeclaration', 'FunctionExpression', 'ObjectMethod', 'ClassMethod',
                       'ClassPrivateMethod'):
        if field in ('id', 'params'):
            return False
        if field == 'key':
            return bool(parent.get('computed'))
        return True

    if parent_type in ('MethodDefinition', 'PropertyDefinition', 'ClassProperty', 'ClassAccessorProperty',
                       'AccessorProperty', 'TSPropertySignature'):
        if field == 'key':
            return bool(parent.get('computed'))
        return True

    if parent_type in ('Property', 'ObjectProperty'):
        if field == 'key':
            return bool(parent.get('computed'))
        # { a: b } = ... / const { a: b } = ...
        return grandparent is None or grandparent.get('type') != 'ObjectPattern'

    if parent_type in ('ClassDeclaration', 'ClassExpression'):
        return field == 'superClass'

    if parent_type in ('AssignmentExpression', 'AssignmentPattern'):
        return field == 'right'

    if parent_type in ('ExportSpecifier', ):
        if grandparent is not None and grandparent.get('source'):
            return False
        return field == 'local'

    if parent_type in ('ImportSpecifier', 'ImportDefaultSpecifier', 'ImportNamespaceSpecifier',
                       'ExportNamespaceSpecifier', 'ExportDefaultSpecifier', 'ImportAttribute',
                       'LabeledStatement', 'BreakStatement', 'ContinueStatement', 'CatchClause', 'RestElement',
                       'ObjectPattern', 'ArrayPattern', 'JSXAttribute', 'JSXNamespacedName', 'PrivateName',
                       'TSEnumMember', 'TSTypeParameter'):
        return False

    if parent_type == 'ForInStatement' or parent_type == 'ForOfStatement':
        return field != 'left'

    return True


class ScopeTracker:
    """Scope information for one program.

    Every node seen by `crawl` maps to its innermost scope; scope-creating nodes
    (functions, classes, catch clauses, loops, switches, non-function-body blocks)
    map to their own scope.
    """

    def __init__(self, program: Node):
        self.program = program
        self._node_scopes: Dict[int, Scope] = {}
        self.program_scope: Scope = None
        self.crawl()

    def scope_of(self, node: Node) -> Optional[Scope]:
        """Innermost scope of `node`; None for nodes created after the crawl."""
        return self._node_scopes.get(id(node))

    def crawl(self) -> None:
        self._node_scopes = {}
        self.program_scope = Scope(self.program)
        self._node_scopes[id(self.program)] = self.program_scope
        self._collect_declarations()
        self._resolve_references()
        logger.debug("crawled program: %d top-level bindings, %d globals", len(self.program_scope.bindings),
                     len(self.program_scope.globals))

    ############### pass 1: scopes and declarations

    def _creates_scope(self, node: Node, parent: Optional[Node]) -> bool:
        node_type = node['type']
        if node_type == 'BlockStatement':
            # 函数体 / catch 体与其所属函数、catch 共用作用域
            return parent is None or parent.get('type') not in FUNCTION_TYPES + ('CatchClause', )
        return node_type in FUNCTION_TYPES or node_type in (
                    'Program', 'StaticBlock', 'CatchClause', 'ForStatement', 'ForInStatement', 'ForOfStatement',
                    'SwitchStatement', 'ClassDeclaration', 'ClassExpression', 'TSModuleBlock')

    def _collect_declarations(self) -> None:
        stack: List[Tuple[Node, Node, str, Optional[int], Scope]] = []
        self._push_children(stack, self.program, self.program_scope)

        while stack:
            node, parent, field, index, scope = stack.pop()
            own_scope = Scope(node, scope) if self._creates_scope(node, parent) else scope
            self._node_scopes[id(node)] = own_scope
            self._declare(node, parent, field, index, scope, own_scope)
            self._push_children(stack, node, own_scope)

    @staticmethod
    def _push_children(stack, node: Node, scope: Scope) -> None:
        for child_field, child_index, child in reversed(list(iter_child_fields__(node))):
            stack.append((child, node, child_field, child_index, scope))

    def _declare(self, node: Node, parent: Optional[Node], field: Optional[str], index: Optional[int],
                 outer_scope: Scope, own_scope: Scope) -> None:
        node_type = node['type']
        ref = NodeRef(node, parent, field, index)

        if node_type == 'VariableDeclaration':
            kind = node.get('kind', 'var')
            target = own_scope.get_function_parent() if kind == 'var' else own_scope
            if kind in ('await using', ):
                kind = 'using'
            for i, declarator in enumerate(node.get('declarations', ())):
                declarator_ref = NodeRef(declarator, node, 'declarations', i)
                for ident in get_binding_identifiers__(declarator.get('id')):
                    target.register_binding(kind, ident, declarator_ref, declaration = node)

        elif node_type in FUNCTION_TYPES:
            if node_type == 'FunctionDeclaration' and node.get('id') is not None:
                # block scoped: registered in the scope enclosing the function
                outer_scope.register_binding('hoisted', node['id'], ref)
            elif node_type == 'FunctionExpression' and node.get('id') is not None:
                own_scope.register_binding('local', node['id'], ref)
            for param in node.get('params', ()):
                for ident in get_binding_identifiers__(param):
                    own_scope.register_binding('param', ident, ref)

        elif node_type == 'ClassDeclaration':
            if node.get('id') is not None:
                outer_scope.register_binding('let', node['id'], ref)

        elif node_type == 'ClassExpression':
            if node.get('id') is not None:
                own_scope.register_binding('local', node['id'], ref)

        elif node_type == 'CatchClause':
            for ident in get_binding_identifiers__(node.get('param')):
                own_scope.register_binding('let', ident, ref)

        elif node_type == 'ImportDeclaration':
            program_scope = outer_scope.program
            for i, specifier in enumerate(node.get('specifiers', ())):
                local = specifier.get('local')
                if local is not None:
                    program_scope.register_binding('module',
                                                   local,
                                                   NodeRef(specifier, node, 'specifiers', i),
                                                   declaration = node)

    ############### pass 2: references and constant violations

    def _resolve_references(self) -> None:
        stack: List[Tuple[Node, Node, str, Optional[Node]]] = []
        for child_field, _, child in reversed(list(iter_child_fields__(self.program))):
            stack.append((child, self.program, child_field, None))

        while stack:
            node, parent, field, grandparent = stack.pop()
            node_type = node['type']

            if node_type in ('Identifier', 'JSXIdentifier'):
                if is_referenced__(node, parent, field, grandparent):
                    self._reference(node)

            elif node_type == 'AssignmentExpression':
                self._violate(node.get('left'), node)

            elif node_type == 'UpdateExpression':
                self._violate(node.get('argument'), node)

            elif node_type in ('ForInStatement', 'ForOfStatement'):
                left = node.get('left')
                if left is not None and left.get('type') != 'VariableDeclaration':
                    self._violate(left, node)

            for child_field, _, child in reversed(list(iter_child_fields__(node))):
                stack.append((child, node, child_field, parent))

    def _reference(self, ident: Node) -> None:
        scope = self._node_scopes[id(ident)]
        if not scope.has_binding(ident['name']):
            self.program_scope.globals.add(ident['name'])

    def _violate(self, target: Optional[Node], node: Node) -> None:
        if target is None or target.get('type') not in ('Identifier', ) + PATTERN_TYPES:
            return
        for ident in get_binding_identifiers__(target):
            binding = self._node_scopes[id(ident)].get_binding(ident['name'])
            if binding is None:
                self.program_scope.globals.add(ident['name'])
            else:
                binding.reassign(node)

    ############### import provenance

    def references_import(self, node: Node, module_source: str, import_name: str) -> bool:
        """Whether identifier `node` is bound by ``import ... from module_source`` selecting `import_name`.

        `import_name` is an export name, ``'default'`` or ``'*'`` (namespace import).
        """
        if node.get('type') != 'Identifier':
            return False
        scope = self.scope_of(node)
        if scope is None:
            return False
        binding = scope.get_binding(node['name'])
        if binding is None or binding.kind != 'module':
            return False

        declaration = binding.declaration
        source = (declaration or {}).get('source') or {}
        if source.get('value') != module_source:
            return False

        specifier = binding.path.node
        specifier_type = specifier.get('type')
        if specifier_type == 'ImportDefaultSpecifier':
            return import_name == 'default'
        if specifier_type == 'ImportNamespaceSpecifier':
            return import_name == '*'
        if specifier_type == 'ImportSpecifier':
            imported = specifier.get('imported') or {}
            return (imported.get('name') if imported.get('type') == 'Identifier' else imported.get('value')) == import_name
        return False
