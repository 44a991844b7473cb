"""Tests for moa/output.py."""

from pathlib import Path

from moa import output
from moa.models import LayerResult, ModelResponse
from moa.output import DEFAULT_OUTPUT_FILENAME, _response_preview, save_result


def test_response_preview_truncates_words():
    response = ModelResponse(content=" ".join(f"w{i}" for i in range(60)))
    preview = _response_preview(response, words=5)
    assert preview == "w0 w1 w2 w3 w4..."


def test_response_preview_short_content_unchanged():
    assert _response_preview(ModelResponse(content="just a few words")) == "just a few words"


def test_save_result_writes_content(tmp_path: Path):
    out_dir = tmp_path / "nested" / "out"
    path = save_result(ModelResponse(content="Final answer."), out_dir)
    assert path == out_dir / DEFAULT_OUTPUT_FILENAME
    assert path.read_text(encoding="utf-8") == "Final answer."


def test_save_result_overwrites(tmp_path: Path):
    save_result(ModelResponse(content="old"), tmp_path)
    path = save_result(ModelResponse(content="new"), tmp_path, filename="answer.md")
    assert path.name == "answer.md"
    assert path.read_text(encoding="utf-8") == "new"


def test_print_layer_summary_shows_agents_and_aggregate(monkeypatch):
    printed = []
    monkeypatch.setattr(output.console, "print", lambda *args, **kwargs: printed.extend(args))
    result = LayerResult(
        iteration=0,
        layer_name="proposers",
        responses=[ModelResponse("draft", metadata={"agent": "analyst", "model": "ollama:m", "latency_sec": 1.31})],
        aggregate=ModelResponse("merged", metadata={"method": "synthesis"}),
    )

    output.print_layer_summary(result)

    assert len(printed) == 3
    assert "analyst" in printed[1].title
    assert printed[1].subtitle == "1.3s"
    assert "synthesis" in printed[2].title
