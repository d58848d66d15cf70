"""Tests for key bindings and the action-tree interpreter."""

import pytest

from fakes import make_item
from wikitriage.triage.control_scripts import (
    CommandAction,
    ConditionalAction,
    ControlScript,
    ControlScriptInterpreter,
    load_control_script,
)
from wikitriage.triage.models import EnrichmentResult, WarningLevel

SCRIPT_YAML = """\
bindings:
  - key: r
    actions:
      - kind: conditional
        condition: has-issues
        actions:
          - kind: command
            name: rollback
            params: {summary: vandalism}
          - kind: conditional
            condition: "!final-warning"
            actions:
              - {kind: command, name: warn}
            otherwise:
              - {kind: command, name: report}
          - {kind: command, name: next-item}
"""


class RecordingPerformer:
    def __init__(self, fail_on=()):
        self.calls = []
        self.fail_on = set(fail_on)

    async def perform(self, name, params, item):
        self.calls.append((name, params, item.revision_id if item else None))
        if name == "explode":
            raise RuntimeError("wiki said no")
        return name not in self.fail_on


@pytest.fixture
def script(tmp_path):
    path = tmp_path / "keys.yaml"
    path.write_text(SCRIPT_YAML)
    return load_control_script(path)


class TestControlScript:
    def test_yaml_parses_into_action_tree(self, script):
        [root] = script.actions_for("R")
        assert isinstance(root, ConditionalAction)
        assert isinstance(root.actions[0], CommandAction)
        assert root.actions[0].params == {"summary": "vandalism"}
        assert isinstance(root.actions[1], ConditionalAction)

    def test_unknown_key(self, script):
        assert script.actions_for("q") == []

    def test_invalid_script(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("bindings:\n  - key: x\n    actions:\n      - kind: teleport\n")
        with pytest.raises(ValueError):
            load_control_script(path)


class TestInterpreter:
    @pytest.mark.asyncio
    async def test_default_navigation(self, queue):
        queue.admit(make_item(1))
        queue.admit(make_item(2))
        interpreter = ControlScriptInterpreter(queue)

        assert await interpreter.handle_key("ArrowRight")
        assert queue.cursor.revision_id == 2
        assert await interpreter.handle_key("arrowleft")
        assert queue.cursor.revision_id == 1
        assert not await interpreter.handle_key("f13")

    @pytest.mark.asyncio
    async def test_conditional_branches(self, queue, script):
        item = make_item(1)
        item.enrichment = EnrichmentResult(has_issues=True)
        queue.admit(item)
        queue.admit(make_item(2))
        performer = RecordingPerformer()
        interpreter = ControlScriptInterpreter(queue, performer, script=script)

        assert await interpreter.handle_key("r")

        assert performer.calls == [("rollback", {"summary": "vandalism"}, 1), ("warn", {}, 1)]
        assert queue.cursor.revision_id == 2

    @pytest.mark.asyncio
    async def test_otherwise_branch(self, queue, script):
        item = make_item(1)
        item.enrichment = EnrichmentResult(has_issues=True)
        item.author.current_severity = WarningLevel.LEVEL_4_IMMEDIATE
        queue.admit(item)
        performer = RecordingPerformer()

        await ControlScriptInterpreter(queue, performer, script=script).handle_key("r")

        assert [call[0] for call in performer.calls] == ["rollback", "report"]

    @pytest.mark.asyncio
    async def test_failed_action_stops_binding(self, queue, script):
        item = make_item(1)
        item.enrichment = EnrichmentResult(has_issues=True)
        queue.admit(item)
        performer = RecordingPerformer(fail_on={"rollback"})

        assert not await ControlScriptInterpreter(queue, performer, script=script).handle_key("r")

        assert [call[0] for call in performer.calls] == ["rollback"]
        assert queue.cursor.revision_id == 1

    @pytest.mark.asyncio
    async def test_performer_exception_is_a_failure(self, queue):
        queue.admit(make_item(1))
        interpreter = ControlScriptInterpreter(queue, RecordingPerformer())
        assert not await interpreter.run([CommandAction(name="explode")])

    @pytest.mark.asyncio
    async def test_missing_performer(self, queue):
        interpreter = ControlScriptInterpreter(queue)
        assert not await interpreter.run([CommandAction(name="warn")])

    @pytest.mark.asyncio
    async def test_queue_commands(self, queue):
        for revision_id in (1, 2, 3):
            queue.admit(make_item(revision_id, author=f"Author{revision_id}"))
        interpreter = ControlScriptInterpreter(queue)

        await interpreter.run([CommandAction(name="spotlight-author", params={"author": "Author3"})])
        assert queue.get(3).boosted
        await interpreter.run([CommandAction(name="discard-item")])
        assert not queue.dismissed[0].reviewed
        await interpreter.run([CommandAction(name="clear-queue")])
        assert len(queue) == 0

    def test_evaluate(self, queue):
        interpreter = ControlScriptInterpreter(queue, predicates={"always": lambda item: True})
        assert interpreter.evaluate("!has-item")
        assert interpreter.evaluate("always")
        assert not interpreter.evaluate("no-such-condition")
        queue.admit(make_item(1, author="192.0.2.1"))
        assert interpreter.evaluate("is-temporary")
        assert interpreter.evaluate("!is-blp")
