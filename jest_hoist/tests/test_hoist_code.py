import json

from jest_hoist.hoist_code import hoist_path, main
from jest_hoist.tests.builders import (arrow, assign, at, call, expr_stmt, ident, is_hoisted_jest_stmt, jest_stmt, let,
                                       lit, program)


def _write_tree(path, tree):
    path.write_text(json.dumps(tree), encoding = "utf-8")
    return path


def _mockable_tree():
    return program(expr_stmt(call('A')), jest_stmt('mock', lit('./foo')))


def _bad_tree():
    return program(
                let('x', lit(1)),
                assign('x', lit(2)),
                jest_stmt('mock', lit('m'), arrow(at(ident('x'), 3, 21))),
    )


def test_writes_hoisted_copy_next_to_input(tmp_path, capsys):
    src = _write_tree(tmp_path / 'a.test.json', _mockable_tree())

    assert main([str(src)]) == 0

    out = tmp_path / 'a.test.hoisted.json'
    body = json.loads(out.read_text(encoding = "utf-8"))['body']
    assert is_hoisted_jest_stmt(body[0])
    assert json.loads(src.read_text(encoding = "utf-8")) == _mockable_tree()
    assert 'Done' in capsys.readouterr().out


def test_explicit_output_and_indent(tmp_path):
    src = _write_tree(tmp_path / 'a.test.json', _mockable_tree())
    out = tmp_path / 'out.json'

    assert main([str(src), '-o', str(out), '--indent', '2']) == 0
    text = out.read_text(encoding = "utf-8")
    assert text.startswith('{\n  "type": "Program"')


def test_in_place_keeps_backup(tmp_path):
    src = _write_tree(tmp_path / 'a.test.json', _mockable_tree())
    original = src.read_text(encoding = "utf-8")

    assert main([str(src), '--in-place']) == 0

    assert (tmp_path / 'a.test.json.back').read_text(encoding = "utf-8") == original
    assert is_hoisted_jest_stmt(json.loads(src.read_text(encoding = "utf-8"))['body'][0])


def test_in_place_without_backup(tmp_path):
    src = _write_tree(tmp_path / 'a.test.json', _mockable_tree())

    assert main([str(src), '--in-place', '-noback']) == 0

    assert not (tmp_path / 'a.test.json.back').exists()
    assert not (tmp_path / 'a.test.hoisted.json').exists()


def test_unchanged_file_reports_same(tmp_path, capsys):
    src = _write_tree(tmp_path / 'plain.test.json', program(expr_stmt(call('A'))))

    assert hoist_path(str(src)) == 0
    assert 'Same' in capsys.readouterr().out


def test_directory_input_skips_previous_outputs(tmp_path, capsys):
    nested = tmp_path / 'nested'
    nested.mkdir()
    _write_tree(tmp_path / 'a.test.json', _mockable_tree())
    _write_tree(nested / 'b.test.json', _mockable_tree())
    _write_tree(tmp_path / 'old.hoisted.json', _mockable_tree())

    assert hoist_path(str(tmp_path)) == 0

    assert (tmp_path / 'a.test.hoisted.json').exists()
    assert (nested / 'b.test.hoisted.json').exists()
    assert not (tmp_path / 'old.hoisted.hoisted.json').exists()
    assert '/   2 ]' in capsys.readouterr().out


def test_directory_input_rejects_output(tmp_path, capsys):
    assert hoist_path(str(tmp_path), output = str(tmp_path / 'x.json')) == 2
    assert '--output' in capsys.readouterr().err


def test_missing_input(tmp_path, capsys):
    assert main([str(tmp_path / 'nope.json')]) == 2
    assert 'not found' in capsys.readouterr().err


def test_diagnostic_with_code_frame(tmp_path, capsys):
    src = _write_tree(tmp_path / 'bad.test.json', _bad_tree())
    source = tmp_path / 'bad.test.js'
    source.write_text("let x = 1;\nx = 2;\njest.mock('m', () => x);\n", encoding = "utf-8")

    assert main([str(src)]) == 1

    captured = capsys.readouterr()
    assert 'Fail' in captured.out
    assert f"{source}:3:21: " in captured.err
    assert 'Invalid variable access: x' in captured.err
    assert "> 3 | jest.mock('m', () => x);" in captured.err
    assert not (tmp_path / 'bad.test.hoisted.json').exists()
