from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Set, Tuple

# ESTree 节点就是带 "type" 键的 dict（acorn / esprima / espree 的 JSON 输出）
Node = dict

# Keys that carry position/metadata, never child nodes.
NON_CHILD_KEYS = frozenset(('type', 'loc', 'range', 'start', 'end', 'comments', 'leadingComments',
                            'trailingComments', 'innerComments', 'tokens', 'extra'))

BLOCK_TYPES = ('Program', 'BlockStatement', 'StaticBlock', 'TSModuleBlock')

FUNCTION_TYPES = ('FunctionDeclaration', 'FunctionExpression', 'ArrowFunctionExpression', 'ObjectMethod',
                  'ClassMethod', 'ClassPrivateMethod')

DECLARATION_STATEMENT_TYPES = ('VariableDeclaration', 'FunctionDeclaration', 'ClassDeclaration', 'ImportDeclaration',
                               'ExportNamedDeclaration', 'ExportDefaultDeclaration', 'ExportAllDeclaration',
                               'TSTypeAliasDeclaration', 'TSInterfaceDeclaration', 'TSEnumDeclaration',
                               'TSModuleDeclaration', 'TSImportEqualsDeclaration', 'TSExportAssignment')


@dataclass(slots = True)
class NodeRef:
    """A node together with the slot that holds it: ``parent[field]`` or ``parent[field][index]``."""
    node: Node = None
    parent: Optional[Node] = None
    field: Optional[str] = None
    index: Optional[int] = None

    def container(self) -> Optional[list]:
        if self.parent is None or self.index is None:
            return None
        return self.parent[self.field]

    def replace_with(self, new_node: Node) -> Node:
        """Put `new_node` into the slot and return the node it replaced."""
        old = self.node
        if self.index is None:
            self.parent[self.field] = new_node
        else:
            self.parent[self.field][self.index] = new_node
        self.node = new_node
        return old


def is_node__(value) -> bool:
    return isinstance(value, dict) and isinstance(value.get('type'), str)


def is_statement__(node: Node) -> bool:
    node_type = node.get('type', '')
    return node_type.endswith('Statement') or node_type in DECLARATION_STATEMENT_TYPES


def iter_child_fields__(node: Node) -> Iterator[Tuple[str, Optional[int], Node]]:
    """Yield ``(field, index, child)`` for every direct child node of `node`, in document order.

    `index` is None for single-node fields.
    """
    for field, value in node.items():
        if field in NON_CHILD_KEYS:
            continue
        if isinstance(value, list):
            for i, el in enumerate(value):
                if is_node__(el):
                    yield field, i, el
        elif is_node__(value):
            yield field, None, value


def walk__(root: Node,
           types: Optional[Iterable[str]],
           callback: Callable[[Node, Node, str, Optional[int]], None],
           blacklist: Iterable[str] = ()) -> None:
    """Depth-first pre-order walk over the descendants of `root`.

    `callback(node, parent, field, index)` is invoked for every node whose type is in
    `types` (all nodes when `types` is None). Nodes whose type is in `blacklist` are
    neither reported nor descended into. `root` itself is not reported.
    """
    wanted = None if types is None else frozenset(types)
    skipped = frozenset(blacklist)

    stack: List[Tuple[Node, Node, str, Optional[int]]] = []
    # Push children in reverse order so they are processed in forward order (LIFO)
    for field, index, child in reversed(list(iter_child_fields__(root))):
        stack.append((child, root, field, index))

    while stack:
        node, parent, field, index = stack.pop()
        node_type = node['type']
        if node_type in skipped:
            continue
        if wanted is None or node_type in wanted:
            callback(node, parent, field, index)
        for child_field, child_index, child in reversed(list(iter_child_fields__(node))):
            stack.append((child, node, child_field, child_index))


def build_parent_map__(root: Node, blacklist: Iterable[str] = ()) -> Dict[int, NodeRef]:
    """Build a mapping ``id(child) -> NodeRef`` for all nodes under `root`.

    Dict nodes are unhashable, so the map is keyed by identity. Rebuild it after
    the tree has been mutated.
    """
    parent_map: Dict[int, NodeRef] = {}

    def record(node, parent, field, index):
        parent_map[id(node)] = NodeRef(node, parent, field, index)

    walk__(root, None, record, blacklist = blacklist)
    return parent_map


def find_stmt_ancestor__(node: Node, parent_map: Dict[int, NodeRef]) -> Optional[NodeRef]:
    cur = parent_map.get(id(node))
    while cur is not None and not is_statement__(cur.node):
        cur = parent_map.get(id(cur.parent))
    return cur


def index_of__(items: list, node: Node) -> int:
    """`list.index` by identity; equal-looking dicts must not match."""
    for i, el in enumerate(items):
        if el is node:
            return i
    raise ValueError(f"node {node.get('type')} is not in the container")


def remove_from__(items: list, node: Node) -> None:
    del items[index_of__(items, node)]


def insert_before__(items: list, anchor: Node, new_node: Node) -> None:
    items.insert(index_of__(items, anchor), new_node)


###############
# node builders


def identifier__(name: str) -> Node:
    return {'type': 'Identifier', 'name': name}


def literal__(value) -> Node:
    return {'type': 'Literal', 'value': value, 'raw': json.dumps(value)}


def call__(callee: Node, arguments: Optional[List[Node]] = None) -> Node:
    return {'type': 'CallExpression', 'callee': callee, 'arguments': list(arguments or []), 'optional': False}


def empty_statement__() -> Node:
    return {'type': 'EmptyStatement'}


def expression_statement__(expression: Node) -> Node:
    return {'type': 'ExpressionStatement', 'expression': expression}


def variable_declaration__(kind: str, declarations: List[Node]) -> Node:
    return {'type': 'VariableDeclaration', 'kind': kind, 'declarations': list(declarations)}


def export_specifiers__(names: List[str]) -> Node:
    """``export { a, b };``"""
    return {
                'type': 'ExportNamedDeclaration',
                'declaration': None,
                'specifiers': [{
                            'type': 'ExportSpecifier',
                            'local': identifier__(name),
                            'exported': identifier__(name)
                } for name in names],
                'source': None,
    }


###############
# names


def collect_identifier_names__(root: Node) -> Set[str]:
    names: Set[str] = set()

    def record(node, parent, field, index):
        name = node.get('name')
        if isinstance(name, str):
            names.add(name)

    walk__(root, ('Identifier', 'JSXIdentifier'), record)
    return names


def to_identifier__(name: str) -> str:
    """Turn an arbitrary string into a camel-cased identifier fragment (`get-jest obj` -> `getJestObj`)."""
    parts: List[str] = []
    word = ''
    for ch in name:
        if ch.isalnum() or ch in ('_', '$'):
            word += ch
        else:
            parts.append(word)
            word = ''
    parts.append(word)
    parts = [p for p in parts if p]
    if not parts:
        return '_'
    res = parts[0] + ''.join(p[: 1].upper() + p[1 :] for p in parts[1 :])
    if res[0].isdigit():
        res = '_' + res
    return res


def generate_uid__(name: str, used_names: Set[str]) -> str:
    """Return `_name`, `_name2`, `_name3`, ... whichever is first absent from `used_names`.

    The chosen name is added to `used_names` so repeated calls never collide.
    """
    base = to_identifier__(name).lstrip('_').rstrip('0123456789') or 'temp'
    i = 1
    while True:
        uid = '_' + base + (str(i) if i > 1 else '')
        if uid not in used_names:
            used_names.add(uid)
            return uid
        i += 1


###############
# positions


def node_position__(node: Optional[Node]) -> Tuple[Optional[int], Optional[int]]:
    """(line, column) of a node's start, 1-based line and 0-based column, or (None, None)."""
    if not node:
        return None, None
    loc = node.get('loc')
    if isinstance(loc, dict) and isinstance(loc.get('start'), dict):
        start = loc['start']
        return start.get('line'), start.get('column')
    return None, None


def code_frame__(source: str, line: int, column: Optional[int] = None, context: int = 2) -> str:
    """Render the lines around `line` with a gutter and a caret under `column`.

    ::

          1 | const x = 1;
        > 2 | jest.mock('m', () => x);
            |                      ^
    """
    lines = source.splitlines()
    if not 1 <= line <= len(lines):
        return ''
    first = max(1, line - context)
    last = min(len(lines), line + context)
    width = len(str(last))
    result = []
    for i in range(first, last + 1):
        marker = '>' if i == line else ' '
        text = lines[i - 1]
        result.append(f"{marker} {i:{width}d} | {text}".rstrip())
        if i == line and column is not None:
            result.append(f"  {' ' * width} | {' ' * column}^")
    return '\n'.join(result)
