"""
Unit tests for training file serialization.
"""

import json

import pytest

from aitelier.core.exceptions import DataValidationError
from aitelier.data.schema import Example
from aitelier.data.serialization import (
    format_training_record,
    parse_training_record,
    read_training_file,
    serialize_examples,
    write_training_file,
)


def _examples(n):
    return [
        Example(project_id="p", input=f"input {i}\nline two", output=f"output é {i}", created_by="u")
        for i in range(n)
    ]


def test_zero_examples_write_empty_file(tmp_path):
    path = tmp_path / "train.jsonl"
    written = write_training_file([], path)

    assert written == 0
    assert path.read_bytes() == b""
    assert read_training_file(path) == []


def test_n_examples_write_n_lines_that_read_back(tmp_path):
    examples = _examples(5)
    path = tmp_path / "train.jsonl"
    written = write_training_file(examples, path, system_prompt="Be brief.")

    lines = path.read_text(encoding="utf-8").splitlines()
    assert written == 5
    assert len(lines) == 5

    pairs = read_training_file(path)
    assert [(p.input, p.output) for p in pairs] == [(e.input, e.output) for e in examples]


def test_record_uses_chat_messages():
    example = _examples(1)[0]

    with_system = format_training_record(example, system_prompt="Be brief.")
    without_system = format_training_record(example)

    assert [m["role"] for m in with_system["messages"]] == ["system", "user", "assistant"]
    assert [m["role"] for m in without_system["messages"]] == ["user", "assistant"]
    assert without_system["messages"][0]["content"] == example.input


def test_serialized_text_is_utf8_json_lines():
    text = serialize_examples(_examples(2))
    assert text.endswith("\n")
    for line in text.splitlines():
        assert "é" in line
        json.loads(line)


@pytest.mark.parametrize(
    "line",
    [
        "not json",
        json.dumps({"prompt": "x"}),
        json.dumps({"messages": [{"role": "user", "content": "only a question"}]}),
    ],
)
def test_invalid_record_raises(line):
    with pytest.raises(DataValidationError):
        parse_training_record(line)
