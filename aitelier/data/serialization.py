"""
Training file serialization.

Each example becomes one UTF-8 JSON line in chat format:

    {"messages": [{"role": "system", ...}, {"role": "user", "content": <input>},
                  {"role": "assistant", "content": <output>}]}

The system message is present only when the project defines a system prompt.
Zero examples serialize to an empty file.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from aitelier.core.exceptions import DataValidationError

from .schema import Example, Message, Role, TrainingPair


def format_training_record(example: Example, system_prompt: Optional[str] = None) -> Dict[str, Any]:
    messages: List[Message] = []
    if system_prompt:
        messages.append(Message(role=Role.SYSTEM, content=system_prompt))
    messages.append(Message(role=Role.USER, content=example.input))
    messages.append(Message(role=Role.ASSISTANT, content=example.output))
    return {"messages": [m.model_dump(mode="json") for m in messages]}


def serialize_examples(examples: Iterable[Example], system_prompt: Optional[str] = None) -> str:
    lines = [
        json.dumps(format_training_record(e, system_prompt), ensure_ascii=False)
        for e in examples
    ]
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def write_training_file(
    examples: Iterable[Example],
    path: Union[str, Path],
    system_prompt: Optional[str] = None,
) -> int:
    """
    Write examples to ``path`` and return the number of records written.
    """
    content = serialize_examples(examples, system_prompt)
    Path(path).write_text(content, encoding="utf-8")
    return content.count("\n")


def parse_training_record(line: str) -> TrainingPair:
    """
    Recover the {input, output} pair from one training-file line.

    The last user message is the input and the last assistant message is
    the output; system messages are ignored.
    """
    try:
        payload = json.loads(line)
        messages = [Message(**m) for m in payload["messages"]]
    except (ValueError, KeyError, TypeError) as exc:
        raise DataValidationError(f"Invalid training record: {exc}") from exc

    user = [m.content for m in messages if m.role == Role.USER]
    assistant = [m.content for m in messages if m.role == Role.ASSISTANT]
    if not user or not assistant:
        raise DataValidationError("Training record needs a user and an assistant message")
    return TrainingPair(input=user[-1], output=assistant[-1])


def read_training_file(path: Union[str, Path]) -> List[TrainingPair]:
    pairs: List[TrainingPair] = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            if not line.strip():
                continue
            pairs.append(parse_training_record(line))
    return pairs
