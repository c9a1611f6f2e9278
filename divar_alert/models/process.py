"""
Conversation Models
===================

Persisted state of a multi-step input collection ("process") for one chat.
"""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class Step:
    """One prompt/response unit. `value` stays empty until the step is passed."""
    name: str
    prompt: str
    value: str = ""


@dataclass
class ConversationState:
    """
    A running process for one owner.

    The last step carries no input requirement; reaching it completes the
    process.
    """
    kind: str
    owner_id: int
    steps: List[Step] = field(default_factory=list)
    current_step_index: int = 0
    last_action_at: int = 0

    @property
    def current_step(self) -> Step:
        return self.steps[self.current_step_index]

    @property
    def is_terminal(self) -> bool:
        return self.current_step_index == len(self.steps) - 1

    def value_of(self, name: str) -> Optional[str]:
        """Captured value of the step called `name`, or None if no such step."""
        for step in self.steps:
            if step.name == name:
                return step.value
        return None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "owner_id": self.owner_id,
            "steps": [
                {"name": s.name, "prompt": s.prompt, "value": s.value}
                for s in self.steps
            ],
            "current_step_index": self.current_step_index,
            "last_action_at": self.last_action_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ConversationState":
        steps = [
            Step(name=s["name"], prompt=s["prompt"], value=s.get("value", ""))
            for s in data["steps"]
        ]
        index = int(data.get("current_step_index", 0))
        if not 0 <= index < len(steps):
            raise ValueError(f"step index {index} out of range for {len(steps)} steps")
        return cls(
            kind=data["kind"],
            owner_id=int(data["owner_id"]),
            steps=steps,
            current_step_index=index,
            last_action_at=int(data.get("last_action_at", 0)),
        )
