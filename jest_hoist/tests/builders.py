"""Tiny ESTree builders so tests can describe programs without a JS parser."""
from __future__ import annotations

import json
from typing import List, Optional, Union

Node = dict


def _node(value) -> Node:
    return ident(value) if isinstance(value, str) else value


def ident(name: str) -> Node:
    return {'type': 'Identifier', 'name': name}


def lit(value) -> Node:
    return {'type': 'Literal', 'value': value, 'raw': json.dumps(value)}


def program(*body: Node, source_type: str = 'module') -> Node:
    return {'type': 'Program', 'sourceType': source_type, 'body': list(body)}


def expr_stmt(expression: Node) -> Node:
    return {'type': 'ExpressionStatement', 'expression': expression}


def member(obj: Union[str, Node], prop: str, computed: bool = False) -> Node:
    return {
                'type': 'MemberExpression',
                'object': _node(obj),
                'property': lit(prop) if computed else ident(prop),
                'computed': computed,
                'optional': False,
    }


def call(callee: Union[str, Node], *args: Node) -> Node:
    return {'type': 'CallExpression', 'callee': _node(callee), 'arguments': list(args), 'optional': False}


def method_call(obj: Union[str, Node], method: str, *args: Node) -> Node:
    return call(member(obj, method), *args)


def jest_stmt(method: str, *args: Node, obj: Union[str, Node] = 'jest') -> Node:
    """``jest.<method>(...args);``"""
    return expr_stmt(method_call(obj, method, *args))


def block(*body: Node) -> Node:
    return {'type': 'BlockStatement', 'body': list(body)}


def arrow(body: Union[Node, List[Node]], *params: Union[str, Node]) -> Node:
    is_block = isinstance(body, list)
    return {
                'type': 'ArrowFunctionExpression',
                'id': None,
                'params': [_node(p) for p in params],
                'body': block(*body) if is_block else body,
                'expression': not is_block,
                'generator': False,
                'async': False,
    }


def fn_expr(body: List[Node], *params: Union[str, Node], name: Optional[str] = None) -> Node:
    return {
                'type': 'FunctionExpression',
                'id': ident(name) if name else None,
                'params': [_node(p) for p in params],
                'body': block(*body),
                'generator': False,
                'async': False,
    }


def fn_decl(name: str, body: List[Node], *params: Union[str, Node]) -> Node:
    return {
                'type': 'FunctionDeclaration',
                'id': ident(name),
                'params': [_node(p) for p in params],
                'body': block(*body),
                'generator': False,
                'async': False,
    }


def declarator(target: Union[str, Node], init: Optional[Node] = None) -> Node:
    return {'type': 'VariableDeclarator', 'id': _node(target), 'init': init}


def var_decl(kind: str, *declarators: Node) -> Node:
    return {'type': 'VariableDeclaration', 'kind': kind, 'declarations': list(declarators)}


def const(name: Union[str, Node], init: Optional[Node] = None) -> Node:
    return var_decl('const', declarator(name, init))


def let(name: Union[str, Node], init: Optional[Node] = None) -> Node:
    return var_decl('let', declarator(name, init))


def var(name: Union[str, Node], init: Optional[Node] = None) -> Node:
    return var_decl('var', declarator(name, init))


def assign(target: Union[str, Node], value: Node, operator: str = '=') -> Node:
    return expr_stmt({'type': 'AssignmentExpression', 'operator': operator, 'left': _node(target), 'right': value})


def update(name: str, operator: str = '++') -> Node:
    return expr_stmt({'type': 'UpdateExpression', 'operator': operator, 'prefix': False, 'argument': ident(name)})


def binary(operator: str, left: Union[str, Node], right: Union[str, Node]) -> Node:
    return {'type': 'BinaryExpression', 'operator': operator, 'left': _node(left), 'right': _node(right)}


def obj(*properties: Node) -> Node:
    return {'type': 'ObjectExpression', 'properties': list(properties)}


def prop(key: str, value: Union[str, Node], shorthand: bool = False) -> Node:
    return {
                'type': 'Property',
                'key': ident(key),
                'value': _node(value),
                'kind': 'init',
                'method': False,
                'shorthand': shorthand,
                'computed': False,
    }


def object_pattern(*names: str) -> Node:
    return {'type': 'ObjectPattern', 'properties': [prop(n, n, shorthand = True) for n in names]}


def array(*elements: Node) -> Node:
    return {'type': 'ArrayExpression', 'elements': list(elements)}


def if_stmt(test: Union[str, Node], consequent: Node, alternate: Optional[Node] = None) -> Node:
    return {'type': 'IfStatement', 'test': _node(test), 'consequent': consequent, 'alternate': alternate}


def return_stmt(argument: Optional[Node] = None) -> Node:
    return {'type': 'ReturnStatement', 'argument': argument}


def import_named(source: str, *names: Union[str, tuple]) -> Node:
    """``import { a, b as c } from 'source'``; pass ``('b', 'c')`` for an alias."""
    specifiers = []
    for name in names:
        imported, local = name if isinstance(name, tuple) else (name, name)
        specifiers.append({'type': 'ImportSpecifier', 'imported': ident(imported), 'local': ident(local)})
    return {'type': 'ImportDeclaration', 'specifiers': specifiers, 'source': lit(source)}


def import_namespace(source: str, local: str) -> Node:
    return {
                'type': 'ImportDeclaration',
                'specifiers': [{
                            'type': 'ImportNamespaceSpecifier',
                            'local': ident(local)
                }],
                'source': lit(source),
    }


def export_named(declaration: Node) -> Node:
    return {'type': 'ExportNamedDeclaration', 'declaration': declaration, 'specifiers': [], 'source': None}


def at(node: Node, line: int, column: int) -> Node:
    """Attach an ESTree `loc` to `node` and return it."""
    node['loc'] = {'start': {'line': line, 'column': column}, 'end': {'line': line, 'column': column + 1}}
    return node


###############
# inspection helpers


def chain_root(expression: Node) -> Node:
    """Innermost receiver of a chain like ``a.b().c()``."""
    cur = expression
    while True:
        if cur.get('type') == 'CallExpression' and cur['callee'].get('type') == 'MemberExpression':
            cur = cur['callee']['object']
        elif cur.get('type') == 'MemberExpression':
            cur = cur['object']
        else:
            return cur


def is_getter_call(node: Node, getter_name: str = '_getJestObj') -> bool:
    return (node.get('type') == 'CallExpression' and node['callee'].get('type') == 'Identifier'
            and node['callee']['name'] == getter_name and node['arguments'] == [])


def is_hoisted_jest_stmt(stmt: Node, getter_name: str = '_getJestObj') -> bool:
    return stmt.get('type') == 'ExpressionStatement' and is_getter_call(chain_root(stmt['expression']), getter_name)


def first_string_arg(stmt: Node):
    """First argument value of the outermost call in ``x.y('a', ...)``."""
    return stmt['expression']['arguments'][0]['value']


def declared_names(stmt: Node) -> List[str]:
    return [d['id']['name'] for d in stmt['declarations']]
