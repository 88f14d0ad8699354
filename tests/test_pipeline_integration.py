# tests/test_pipeline_integration.py

import json
import logging
from pathlib import Path

from src.dream_pipeline import pipeline as pipeline_mod
from src.dream_pipeline.loaders import load_corpus, load_raw_fragments, load_themes
import src.run_ingestion as run_ingestion_cli


def test_ingestion_writes_classified_and_embedded_corpus(tmp_path: Path, monkeypatch):
    """
    End-to-end happy path integration test.

    - Use a tiny input JSON file (2 excerpts).
    - Monkeypatch embeddings to avoid real API calls.
    - Run the pipeline function (not CLI).
    - Assert:
        * processed == number of raw excerpts
        * both corpus files exist and have the right length
        * each record has id, contentType, classification and (embedded) embedding.
    """
    excerpts = [
        {
            "id": "jung-owl-1",
            "source": "man-and-his-symbols",
            "persona": "jung",
            "content": "The owl, a bird of the night, is a messenger of the unconscious.",
        },
        {
            "id": "freud-house-1",
            "source": "interpretation-of-dreams",
            "persona": "freud",
            "content": (
                "I had a dream about a house. In the dream I was climbing the stairs "
                "when suddenly the walls began to melt."
            ),
        },
    ]
    input_path = tmp_path / "small_input.json"
    output_dir = tmp_path / "output"
    input_path.write_text(json.dumps({"fragments": excerpts}), encoding="utf-8")

    dim = 4
    fake_vectors = [
        [0.1, 0.2, 0.3, 0.4],
        [0.5, 0.6, 0.7, 0.8],
    ]

    def fake_embed_texts_with_retry(texts, **kwargs):
        assert len(texts) == len(excerpts)
        assert all(isinstance(t, str) and t.strip() for t in texts)
        return fake_vectors

    # NOTE: patch on the pipeline module, because embed_fragments imports it there
    monkeypatch.setattr(pipeline_mod, "embed_texts_with_retry", fake_embed_texts_with_retry)

    total_raw, processed_count, output_paths = pipeline_mod.run_ingestion(
        input_path=input_path,
        output_dir=output_dir,
        limit=None,
        keep_history=False,
    )

    assert total_raw == len(excerpts)
    assert processed_count == len(excerpts)
    assert output_paths["corpus"] == output_dir / "corpus.json"
    assert output_paths["embedded"] == output_dir / "corpus_embedded.json"

    corpus = json.loads(output_paths["corpus"].read_text(encoding="utf-8"))
    assert [r["id"] for r in corpus] == ["jung-owl-1", "freud-house-1"]
    assert all("embedding" not in r for r in corpus)

    embedded = json.loads(output_paths["embedded"].read_text(encoding="utf-8"))
    assert len(embedded) == len(excerpts)
    for raw, record, expected_vec in zip(excerpts, embedded, fake_vectors):
        assert record["id"] == raw["id"]
        assert record["sourceId"] == raw["source"]
        assert record["persona"] == raw["persona"]
        assert record["embedding"] == expected_vec
        assert len(record["embedding"]) == dim
        assert 0.0 <= record["classification"]["confidence"] <= 1.0

    assert embedded[1]["contentType"] == "dream_example"

    metadata = json.loads((output_dir / "run_metadata.json").read_text(encoding="utf-8"))
    assert metadata["total_raw"] == 2
    assert metadata["processed"] == 2
    assert metadata["embeddings_generated"] is True

    # the embedded corpus loads back as the retriever's input
    fragments = load_corpus(output_paths["embedded"])
    assert [f.id for f in fragments] == ["jung-owl-1", "freud-house-1"]
    assert fragments[0].embedding == fake_vectors[0]


def test_ingestion_logging_high_level_messages(tmp_path: Path, monkeypatch, capsys):
    """
    Integration test for logging at INFO level.

    - Use the CLI entrypoint (run_ingestion.main) so we exercise the script as it
      would be run in production.
    - Monkeypatch embeddings to avoid real API calls.
    - Capture logs and assert that our high-level milestones appear.
    """
    excerpts = [
        {
            "id": "kb-log-1",
            "source": "dream-symbol-atlas",
            "content": "A bridge in a dream marks a crossing between two states of life.",
        }
    ]
    input_path = tmp_path / "logging_input.json"
    output_dir = tmp_path / "output"
    input_path.write_text(json.dumps(excerpts), encoding="utf-8")

    def fake_embed_texts_with_retry(texts, **kwargs):
        return [[0.0, 0.0, 0.0] for _ in texts]

    monkeypatch.setattr(pipeline_mod, "embed_texts_with_retry", fake_embed_texts_with_retry)

    exit_code = run_ingestion_cli.main(
        [
            "--input",
            str(input_path),
            "--output-dir",
            str(output_dir),
            "--no-history",
        ]
    )

    assert exit_code == 0
    assert (output_dir / "corpus_embedded.json").exists()

    # Our logging.StreamHandler writes to stderr by default
    messages = capsys.readouterr().err

    assert "=== Starting knowledge ingestion ===" in messages
    assert "STEP 1/5: Loading raw excerpts" in messages
    assert "STEP 2/5: Classifying" in messages
    assert "Embedding 1 fragments in 1 batches" in messages
    assert "Ingestion completed successfully" in messages


def test_ingestion_skips_duplicate_ids_and_logs_warning(tmp_path: Path, monkeypatch, caplog):
    """
    If two excerpts share the same id, the pipeline should:
      - keep only the first occurrence
      - log a warning
      - embed and write exactly one fragment.
    """
    excerpts = [
        {"id": "dup-1", "source": "a", "content": "First version of the lotus passage."},
        {"id": "dup-1", "source": "b", "content": "Second version of the lotus passage."},
    ]
    input_path = tmp_path / "dup_input.json"
    output_dir = tmp_path / "output"
    input_path.write_text(json.dumps(excerpts), encoding="utf-8")

    def fake_embed_texts_with_retry(texts, **kwargs):
        assert len(texts) == 1
        return [[0.1, 0.2, 0.3]]

    monkeypatch.setattr(pipeline_mod, "embed_texts_with_retry", fake_embed_texts_with_retry)
    caplog.set_level(logging.WARNING)

    total_raw, processed_count, output_paths = pipeline_mod.run_ingestion(
        input_path=input_path,
        output_dir=output_dir,
        keep_history=False,
    )

    assert total_raw == 2
    assert processed_count == 1
    records = json.loads(output_paths["embedded"].read_text(encoding="utf-8"))
    assert len(records) == 1
    assert records[0]["content"] == "First version of the lotus passage."

    messages = "\n".join(rec.getMessage() for rec in caplog.records)
    assert "Duplicate fragment id detected: dup-1" in messages


def test_ingestion_limit_and_empty_excerpts(tmp_path: Path):
    excerpts = [
        {"id": "kb-1", "content": "<p></p>"},
        {"id": "kb-2", "content": "The mountain stands for the effort of individuation."},
        {"id": "kb-3", "content": "Never reached because of the limit."},
    ]
    input_path = tmp_path / "input.json"
    input_path.write_text(json.dumps(excerpts), encoding="utf-8")

    total_raw, processed_count, output_paths = pipeline_mod.run_ingestion(
        input_path=input_path,
        output_dir=tmp_path / "output",
        limit=2,
        skip_embeddings=True,
        keep_history=False,
    )

    assert total_raw == 3
    assert processed_count == 1
    assert set(output_paths) == {"corpus"}
    records = json.loads(output_paths["corpus"].read_text(encoding="utf-8"))
    assert [r["id"] for r in records] == ["kb-2"]


def test_ingestion_dry_run_writes_nothing(tmp_path: Path, monkeypatch):
    input_path = tmp_path / "input.json"
    input_path.write_text(json.dumps([{"id": "kb-1", "content": "The moon governs tides and moods."}]), encoding="utf-8")
    output_dir = tmp_path / "output"

    def fail_embed(*args, **kwargs):
        raise AssertionError("dry run must not embed")

    monkeypatch.setattr(pipeline_mod, "embed_texts_with_retry", fail_embed)

    total_raw, processed_count, output_paths = pipeline_mod.run_ingestion(
        input_path=input_path,
        output_dir=output_dir,
        dry_run=True,
    )

    assert (total_raw, processed_count, output_paths) == (1, 1, {})
    assert not output_dir.exists()


def test_loaders_accept_wrapped_inputs(tmp_path: Path):
    raw_path = tmp_path / "raw.json"
    raw_path.write_text(json.dumps({"results": [{"id": "r-1"}]}), encoding="utf-8")
    empty_path = tmp_path / "empty.json"
    empty_path.write_text(json.dumps({"fragments": []}), encoding="utf-8")

    assert load_raw_fragments(raw_path) == [{"id": "r-1"}]
    assert load_raw_fragments(empty_path) == []


def test_load_themes_from_wrapper(tmp_path: Path):
    path = tmp_path / "themes.json"
    path.write_text(
        json.dumps({"themes": [{"code": "owl", "name": "Owl", "description": "Night bird of wisdom"}]}),
        encoding="utf-8",
    )

    themes = load_themes(path)

    assert [t.code for t in themes] == ["owl"]
    assert themes[0].embedding is None
