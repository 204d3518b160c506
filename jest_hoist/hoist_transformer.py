from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from .hoist_ast_util import (BLOCK_TYPES, Node, NodeRef, build_parent_map__, empty_statement__, export_specifiers__,
                             find_stmt_ancestor__, index_of__, insert_before__, remove_from__,
                             variable_declaration__, walk__)
from .scope import get_binding_identifiers__

logger = logging.getLogger(__name__)

# Nested blocks run their own pass. Switch cases have no block of their own, so
# the enclosing block's pass walks into them.
NESTED_BLOCK_TYPES = ('BlockStatement', 'StaticBlock', 'TSModuleBlock')


@dataclass(slots = True)
class HoistState:
    """Registries owned by one transform invocation."""
    used_names: Set[str] = field(default_factory = set)  # 已占用的标识符名，生成 getter 名时避让
    getter_name: Optional[str] = None
    # id(declarator) -> declarator, in the order they were found
    hoisted_declarators: Dict[int, Node] = field(default_factory = dict)

    def mark_hoisted(self, declarator: Node) -> None:
        self.hoisted_declarators[id(declarator)] = declarator

    def is_hoisted(self, declarator: Node) -> bool:
        return self.hoisted_declarators.get(id(declarator)) is declarator

    def is_getter_call(self, node: Node) -> bool:
        callee = node.get('callee') or {}
        return (self.getter_name is not None and callee.get('type') == 'Identifier'
                and callee.get('name') == self.getter_name)


@dataclass(slots = True)
class BlockHoistResult:
    block: Node = None
    hoisted_calls: List[Node] = field(default_factory = list)  # moved statements
    hoisted_declarators: List[Node] = field(default_factory = list)


def _detach_declarator(declarator: Node, parent_map: Dict[int, NodeRef]) -> str:
    """Take `declarator` out of its declaration and return the declaration kind."""
    declaration = parent_map[id(declarator)].parent
    kind = declaration.get('kind', 'var')
    declarations: list = declaration['declarations']
    declaration_ref = parent_map.get(id(declaration))
    owner = declaration_ref.parent if declaration_ref is not None else None

    if len(declarations) > 1:
        remove_from__(declarations, declarator)
        if owner is not None and owner.get('type') == 'ExportNamedDeclaration':
            # export const a = 1, b = 2;  ->  export const b = 2; export { a };
            export_ref = parent_map[id(owner)]
            items = export_ref.container()
            names = [ident['name'] for ident in get_binding_identifiers__(declarator.get('id'))]
            items.insert(index_of__(items, owner) + 1, export_specifiers__(names))
        return kind

    if owner is not None and owner.get('type') == 'ExportNamedDeclaration':
        names = [ident['name'] for ident in get_binding_identifiers__(declarator.get('id'))]
        items = parent_map[id(owner)].container()
        items[index_of__(items, owner)] = export_specifiers__(names)
    elif declaration_ref.index is not None:
        remove_from__(declaration_ref.container(), declaration)
    elif owner.get('type') == 'ForStatement' and declaration_ref.field == 'init':
        owner['init'] = None
    else:
        # if (c) var x = 1;
        declaration_ref.replace_with(empty_statement__())
    return kind


def hoist_block__(block: Node, state: HoistState) -> BlockHoistResult:
    """Move getter calls and hoist-eligible declarators of `block` to its front.

    Nested blocks are not entered. The block ends up as
    [hoisted declarations] [hoisted calls] [everything else], each group in its
    original order.
    """
    result = BlockHoistResult(block = block)
    body: list = block['body']

    # 先插入两个占位语句：第一条语句本身可能也要被提升
    vars_anchor = empty_statement__()
    calls_anchor = empty_statement__()
    body[0 : 0] = [vars_anchor, calls_anchor]

    calls: List[Node] = []
    declarators: List[Node] = []

    def visit(node, parent, field, index):
        if node['type'] == 'CallExpression':
            if state.is_getter_call(node):
                calls.append(node)
        elif state.is_hoisted(node):
            declarators.append(node)

    walk__(block, ('CallExpression', 'VariableDeclarator'), visit, blacklist = NESTED_BLOCK_TYPES)

    if calls or declarators:
        parent_map = build_parent_map__(block, blacklist = NESTED_BLOCK_TYPES)

        moved: Set[int] = set()
        for call in calls:
            stmt_ref = find_stmt_ancestor__(call, parent_map)
            if stmt_ref is None or stmt_ref.parent is not block or id(stmt_ref.node) in moved:
                continue
            moved.add(id(stmt_ref.node))
            remove_from__(body, stmt_ref.node)
            insert_before__(body, calls_anchor, stmt_ref.node)
            result.hoisted_calls.append(stmt_ref.node)

        for declarator in declarators:
            kind = _detach_declarator(declarator, parent_map)
            insert_before__(body, vars_anchor, variable_declaration__(kind, [declarator]))
            del state.hoisted_declarators[id(declarator)]
            result.hoisted_declarators.append(declarator)

    remove_from__(body, calls_anchor)
    remove_from__(body, vars_anchor)

    if result.hoisted_calls or result.hoisted_declarators:
        logger.debug("hoisted %d call(s) and %d declarator(s) in %s", len(result.hoisted_calls),
                     len(result.hoisted_declarators), block['type'])
    return result


def transform_code_tree(program: Node, state: HoistState) -> List[BlockHoistResult]:
    """Run the block-local hoisting pass on the program and then on every nested block."""
    if state.getter_name is None and not state.hoisted_declarators:
        return []

    blocks: List[Node] = [program]
    walk__(program, BLOCK_TYPES, lambda node, parent, field, index: blocks.append(node))

    results = []
    for block in blocks:
        block_result = hoist_block__(block, state)
        if block_result.hoisted_calls or block_result.hoisted_declarators:
            results.append(block_result)
    return results
