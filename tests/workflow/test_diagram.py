from collabflow.workflow.diagram import STATUS_STYLES, node_id, render_mermaid
from collabflow.workflow.models import Task, TaskBatch, TaskStatus


def test_empty_graph():
    assert render_mermaid([]) == 'graph TD\n    empty["No tasks defined"]'
    assert render_mermaid([TaskBatch(id="batch-1", tasks=[])]) == 'graph TD\n    empty["No tasks defined"]'


def test_waves_edges_and_styles():
    batches = [
        TaskBatch(id="batch-1", tasks=[Task(id="setup", status=TaskStatus.COMPLETED)]),
        TaskBatch(
            id="batch-2",
            tasks=[
                Task(id="api", status=TaskStatus.IN_PROGRESS, depends_on=["setup"]),
                Task(id="ui", depends_on=["setup", "external"]),
            ],
        ),
    ]
    lines = render_mermaid(batches).splitlines()

    assert lines[0] == "graph TD"
    assert '    subgraph batch_1["Wave 1"]' in lines
    assert '    subgraph batch_2["Wave 2"]' in lines
    assert '        api["api"]' in lines
    assert "    setup --> api" in lines
    assert "    setup --> ui" in lines
    assert not any("external" in line for line in lines)
    assert f"    style setup {STATUS_STYLES[TaskStatus.COMPLETED]}" in lines
    assert f"    style api {STATUS_STYLES[TaskStatus.IN_PROGRESS]}" in lines
    assert f"    style ui {STATUS_STYLES[TaskStatus.PENDING]}" in lines


def test_every_status_has_a_style():
    assert set(STATUS_STYLES) == set(TaskStatus)


def test_node_ids_are_sanitized():
    assert node_id("item-1") == "item_1"
    assert node_id("auth/login.v2") == "auth_login_v2"

    diagram = render_mermaid([TaskBatch(id="batch-1", tasks=[Task(id="item-1")])])
    assert 'item_1["item-1"]' in diagram
