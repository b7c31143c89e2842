import os.path
import pytest

from crawlspace.crawl_environment import Environment, new_environment
from crawlspace.crawl_runtime import evaluate
from crawlspace.crawl_datatypes import NativeFunction, Results
from crawlspace.crawl_errors import RuntimeFault, TypeMismatch


@pytest.fixture
def env():
    return new_environment()


def test_builtins_are_seeded(env):
    assert env["nil"] is None
    assert env["true"] is True
    assert env["false"] is False
    for name in ("define", "mutate", "len", "import"):
        assert isinstance(env[name], NativeFunction)
        assert env[name].env is env
    assert env.names() == sorted(env.names())


def test_environment_is_a_mapping():
    env = Environment({"b": 2})
    env["a"] = 1
    assert env.names() == ["a", "b"]
    assert len(env) == 2
    del env["b"]
    assert "b" not in env
    with pytest.raises(TypeError):
        env[1] = "x"
    assert repr(env) == "<Environment bindings=[a]>"


def test_define_binds_names(env):
    assert evaluate('define("a", "b")(1, "two")', env) == []
    assert evaluate("a", env) == [1]
    assert evaluate("b", env) == ["two"]


def test_define_twice_fails(env):
    evaluate('define("a")(1)', env)
    with pytest.raises(RuntimeFault) as exc:
        evaluate('define("a")(1)', env)
    assert "already exists" in str(exc.value)


def test_mutate_requires_existing_name(env):
    with pytest.raises(RuntimeFault) as exc:
        evaluate('mutate("a")(2)', env)
    assert "does not exist" in str(exc.value)
    evaluate('define("a")(1)', env)
    evaluate('mutate("a")(2)', env)
    assert evaluate("a", env) == [2]


def test_define_value_count_must_match(env):
    with pytest.raises(TypeMismatch):
        evaluate('define("a", "b")(1)', env)
    assert "a" not in env


def test_define_rejects_bad_names(env):
    with pytest.raises(TypeMismatch):
        evaluate("define(1)", env)
    with pytest.raises(RuntimeFault):
        evaluate('define("a", "a")', env)


def test_reserved_names_cannot_be_bound(env):
    env.reserve("quit")
    with pytest.raises(RuntimeFault) as exc:
        evaluate('define("quit")(1)', env)
    assert "reserved" in str(exc.value)
    env["quit"] = 0
    with pytest.raises(RuntimeFault):
        evaluate('mutate("quit")(1)', env)


def test_define_spreads_multi_value_call(env):
    env["pair"] = lambda: Results(1, 2)
    evaluate('define("x", "y")(pair())', env)
    assert (env["x"], env["y"]) == (1, 2)


# Test cases: (id, source, expected)
LEN_TEST_CASES = [
    ("string", 'len("hello")', 5),
    ("list", "len(items)", 3),
    ("dict", "len(mapping)", 1),
]


@pytest.mark.parametrize("case_id, source, expected", LEN_TEST_CASES, ids=[c[0] for c in LEN_TEST_CASES])
def test_len(env, case_id, source, expected):
    env["items"] = [1, 2, 3]
    env["mapping"] = {"k": "v"}
    assert evaluate(source, env) == [expected]


def test_len_errors(env):
    with pytest.raises(TypeMismatch):
        evaluate("len(1)", env)
    with pytest.raises(TypeMismatch):
        evaluate('len("a", "b")', env)


def test_import_binds_last_component(env):
    assert evaluate('import("os.path")', env) == []
    assert env["path"] is os.path
    assert evaluate('path.basename("/a/b.txt")', env) == ["b.txt"]


def test_import_rejects_existing_names(env):
    evaluate('import("json")', env)
    with pytest.raises(RuntimeFault) as exc:
        evaluate('import("json")', env)
    assert "already exists" in str(exc.value)


def test_import_missing_module(env):
    with pytest.raises(RuntimeFault) as exc:
        evaluate('import("no_such_module_for_crawlspace")', env)
    assert "cannot import" in str(exc.value)
