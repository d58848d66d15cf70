"""Key bindings as a tagged action tree.

A binding maps a key to a list of actions. Each action is either a
``CommandAction`` (run one named command) or a ``ConditionalAction``
(run a nested list when a named predicate holds for the cursor item).
Queue navigation commands are executed here; anything else is handed to
an ``ActionPerformer`` (revert, warn, report...) which reports success or
failure. A failed action stops the rest of the binding.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import (
    TYPE_CHECKING,
    Annotated,
    Any,
    Callable,
    Dict,
    List,
    Literal,
    Optional,
    Protocol,
    Sequence,
    Union,
)

import yaml
from pydantic import BaseModel, Field, ValidationError

from .models import WorkItem
from .prompts import is_temporary_account

if TYPE_CHECKING:
    from .queue import TriageQueue

logger = logging.getLogger(__name__)


class CommandAction(BaseModel):
    kind: Literal["command"] = "command"
    name: str
    params: Dict[str, Any] = Field(default_factory=dict)


class ConditionalAction(BaseModel):
    kind: Literal["conditional"] = "conditional"
    condition: str
    actions: List["Action"] = Field(default_factory=list)
    otherwise: List["Action"] = Field(default_factory=list)


Action = Annotated[Union[CommandAction, ConditionalAction], Field(discriminator="kind")]

ConditionalAction.model_rebuild()


class ControlBinding(BaseModel):
    key: str
    actions: List[Action] = Field(default_factory=list)


class ControlScript(BaseModel):
    """A full set of key bindings."""

    bindings: List[ControlBinding] = Field(default_factory=list)

    def actions_for(self, key: str) -> List[Action]:
        key = key.lower()
        for binding in self.bindings:
            if binding.key.lower() == key:
                return list(binding.actions)
        return []

    @classmethod
    def default(cls) -> "ControlScript":
        return cls(
            bindings=[
                ControlBinding(key="arrowright", actions=[CommandAction(name="next-item")]),
                ControlBinding(key="space", actions=[CommandAction(name="next-item")]),
                ControlBinding(key="arrowleft", actions=[CommandAction(name="prev-item")]),
            ]
        )


def load_control_script(path: Path) -> ControlScript:
    """Read bindings from YAML.

    Raises:
        ValueError: If the file is not a valid control script
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    try:
        return ControlScript.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid control script {path}: {exc}") from exc


class ActionPerformer(Protocol):
    """Carries out wiki write actions on behalf of the operator."""

    async def perform(self, name: str, params: Dict[str, Any], item: Optional[WorkItem]) -> bool:
        ...


Predicate = Callable[[Optional[WorkItem]], bool]

DEFAULT_PREDICATES: Dict[str, Predicate] = {
    "has-item": lambda item: item is not None,
    "is-temporary": lambda item: item is not None and is_temporary_account(item.author.name),
    "is-blocked": lambda item: item is not None and item.author.blocked,
    "is-talk": lambda item: item is not None and item.page.is_talk,
    "is-blp": lambda item: item is not None and item.is_blp,
    "is-boosted": lambda item: item is not None and item.boosted,
    "has-warnings": lambda item: item is not None and item.author.current_severity.rank > 0,
    "final-warning": lambda item: item is not None and item.author.current_severity.is_final,
    "empty-talk-page": lambda item: item is not None and item.author.empty_talk_page,
    "has-issues": lambda item: (
        item is not None and item.enrichment is not None and item.enrichment.has_issues
    ),
}


class ControlScriptInterpreter:
    """Runs bindings against a ``TriageQueue``."""

    def __init__(
        self,
        queue: "TriageQueue",
        performer: Optional[ActionPerformer] = None,
        *,
        script: Optional[ControlScript] = None,
        predicates: Optional[Dict[str, Predicate]] = None,
    ) -> None:
        self._queue = queue
        self._performer = performer
        self.script = script or ControlScript.default()
        self._predicates = dict(DEFAULT_PREDICATES)
        self._predicates.update(predicates or {})

    async def handle_key(self, key: str) -> bool:
        """Run the binding for ``key``; False if unbound or an action failed."""
        actions = self.script.actions_for(key)
        if not actions:
            logger.debug(f"No binding for key {key!r}")
            return False
        return await self.run(actions)

    async def run(self, actions: Sequence[Action]) -> bool:
        for action in actions:
            if isinstance(action, ConditionalAction):
                branch = action.actions if self.evaluate(action.condition) else action.otherwise
                if not await self.run(branch):
                    return False
            elif not await self._execute(action):
                logger.info(f"Action {action.name!r} failed, skipping the rest of the binding")
                return False
        return True

    def evaluate(self, condition: str) -> bool:
        negate = condition.startswith("!")
        name = condition[1:] if negate else condition
        predicate = self._predicates.get(name)
        if predicate is None:
            logger.warning(f"Unknown condition {name!r}")
            return False
        result = bool(predicate(self._queue.cursor))
        return not result if negate else result

    async def _execute(self, action: CommandAction) -> bool:
        item = self._queue.cursor
        if action.name == "next-item":
            self._queue.advance()
        elif action.name == "prev-item":
            self._queue.retreat()
        elif action.name == "discard-item":
            if item is not None:
                self._queue.discard(item.revision_id)
        elif action.name == "clear-queue":
            self._queue.clear()
        elif action.name == "spotlight-author":
            if item is not None:
                self._queue.spotlight_author(action.params.get("author", item.author.name))
        else:
            return await self._delegate(action, item)
        return True

    async def _delegate(self, action: CommandAction, item: Optional[WorkItem]) -> bool:
        if self._performer is None:
            logger.warning(f"No performer configured for action {action.name!r}")
            return False
        try:
            return bool(await self._performer.perform(action.name, dict(action.params), item))
        except Exception:
            logger.error(f"Action {action.name!r} raised", exc_info=True)
            return False


__all__ = [
    "Action",
    "ActionPerformer",
    "CommandAction",
    "ConditionalAction",
    "ControlBinding",
    "ControlScript",
    "ControlScriptInterpreter",
    "DEFAULT_PREDICATES",
    "load_control_script",
]
