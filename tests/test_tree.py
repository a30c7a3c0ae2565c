import pytest


def _make_task(task_id, parent_id=None, **extra):
    """Helper to build a task record the way the API returns it."""
    from doist.models import Task
    data = {"id": task_id, "content": f"Task {task_id}", "project_id": "p1"}
    if parent_id is not None:
        data["parent_id"] = parent_id
    data.update(extra)
    return Task.model_validate(data)


def _ids(forest):
    return [node.id for node in forest]


def test_assemble_builds_nested_forest():
    from doist.tree import assemble
    forest = assemble([
        _make_task("1"),
        _make_task("2", parent_id="1"),
        _make_task("3", parent_id="2"),
        _make_task("4"),
    ])
    assert _ids(forest) == ["1", "4"]
    assert _ids(forest[0].children) == ["2"]
    assert _ids(forest[0].children[0].children) == ["3"]
    assert forest[0].children[0].children[0].depth == 2
    assert forest[0].children[0].parent_id == "1"


def test_assemble_places_every_record_once():
    from doist.tree import assemble, walk_forest
    records = [_make_task(str(i), parent_id=str(i // 2) if i > 1 else None) for i in range(1, 30)]
    forest = assemble(records)
    seen = [node.id for node in walk_forest(forest)]
    assert sorted(seen) == sorted(r.id for r in records)
    assert len(seen) == len(set(seen))


def test_assemble_keeps_input_order_for_siblings():
    from doist.tree import assemble
    forest = assemble([
        _make_task("root"),
        _make_task("b", parent_id="root"),
        _make_task("a", parent_id="root"),
        _make_task("c", parent_id="root"),
    ])
    assert _ids(forest[0].children) == ["b", "a", "c"]


def test_assemble_child_before_parent_in_input():
    from doist.tree import assemble
    forest = assemble([_make_task("child", parent_id="parent"), _make_task("parent")])
    assert _ids(forest) == ["parent"]
    assert _ids(forest[0].children) == ["child"]
    assert forest[0].children[0].depth == 1


def test_dangling_parent_becomes_root():
    from doist.tree import assemble
    forest = assemble([_make_task("1", parent_id="missing"), _make_task("2")])
    assert _ids(forest) == ["1", "2"]
    assert forest[0].parent_id is None
    assert forest[0].depth == 0


def test_self_parent_becomes_root():
    from doist.tree import assemble
    forest = assemble([_make_task("1", parent_id="1")])
    assert _ids(forest) == ["1"]
    assert forest[0].children == ()


def test_three_cycle_members_all_become_roots():
    from doist.tree import assemble
    forest = assemble([
        _make_task("a", parent_id="c"),
        _make_task("b", parent_id="a"),
        _make_task("c", parent_id="b"),
    ])
    assert _ids(forest) == ["a", "b", "c"]
    assert all(node.children == () for node in forest)


def test_chain_into_cycle_keeps_its_link():
    """A task pointing into a cycle is not itself part of it."""
    from doist.tree import assemble
    forest = assemble([
        _make_task("a", parent_id="b"),
        _make_task("b", parent_id="a"),
        _make_task("tail", parent_id="a"),
    ])
    assert _ids(forest) == ["a", "b"]
    assert _ids(forest[0].children) == ["tail"]
    assert forest[0].children[0].depth == 1


def test_duplicate_id_raises():
    from doist.tree import DuplicateIDError, assemble
    with pytest.raises(DuplicateIDError, match="Duplicate task id") as excinfo:
        assemble([_make_task("1"), _make_task("1")])
    assert excinfo.value.record_id == "1"


def test_empty_input_gives_empty_forest():
    from doist.tree import assemble
    assert assemble([]) == []


def test_deep_chain_does_not_recurse():
    from doist.tree import assemble, walk_forest
    depth = 5000
    records = [_make_task("0")] + [_make_task(str(i), parent_id=str(i - 1)) for i in range(1, depth)]
    forest = assemble(records)
    assert len(forest) == 1
    assert forest[0].count() == depth
    last = list(walk_forest(forest))[-1]
    assert last.id == str(depth - 1)
    assert last.depth == depth - 1


def test_walk_is_preorder():
    from doist.tree import assemble, walk_forest
    forest = assemble([
        _make_task("1"),
        _make_task("1.1", parent_id="1"),
        _make_task("1.1.1", parent_id="1.1"),
        _make_task("1.2", parent_id="1"),
        _make_task("2"),
    ])
    assert [n.id for n in walk_forest(forest)] == ["1", "1.1", "1.1.1", "1.2", "2"]


def test_postorder_visits_children_first():
    from doist.tree import assemble, iter_postorder
    forest = assemble([
        _make_task("1"),
        _make_task("1.1", parent_id="1"),
        _make_task("1.2", parent_id="1"),
    ])
    assert [n.id for n in iter_postorder(forest)] == ["1.1", "1.2", "1"]


def test_subtask_count():
    from doist.tree import assemble
    forest = assemble([
        _make_task("1"),
        _make_task("2", parent_id="1"),
        _make_task("3", parent_id="2"),
    ])
    assert forest[0].count() == 3
    assert forest[0].subtask_count() == 2
