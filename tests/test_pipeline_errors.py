# tests/test_pipeline_errors.py

import json
from pathlib import Path

import src.dream_pipeline.pipeline as pipeline_mod
import src.run_ingestion as run_ingestion

EXCERPTS = [
    {
        "id": "kb-1",
        "source": "man-and-his-symbols",
        "persona": "jung",
        "content": "The snake in dreams often points to renewal and transformation.",
    },
    {
        "id": "kb-2",
        "source": "interpretation-of-dreams",
        "persona": "freud",
        "content": "Every dream is the disguised fulfilment of a repressed wish.",
    },
]


def test_ingestion_missing_input_file_exits_nonzero(tmp_path: Path):
    """
    If the input file does not exist, the CLI should fail with a non-zero
    exit code and not silently succeed.
    """
    missing_input = tmp_path / "does_not_exist.json"
    output_dir = tmp_path / "output"

    exit_code = run_ingestion.main(
        [
            "--input",
            str(missing_input),
            "--output-dir",
            str(output_dir),
        ]
    )

    assert exit_code != 0
    if output_dir.exists():
        assert len(list(output_dir.iterdir())) == 0


def test_ingestion_invalid_json_exits_nonzero(tmp_path: Path):
    input_path = tmp_path / "broken.json"
    input_path.write_text("[{not json", encoding="utf-8")

    exit_code = run_ingestion.main(["--input", str(input_path), "--output-dir", str(tmp_path / "output")])

    assert exit_code == 1


def test_ingestion_empty_input_file_succeeds_with_zero_fragments(tmp_path: Path):
    """
    When the input file is an empty JSON array, the pipeline should:
      - return exit code 0
      - create a corpus file
      - write an empty list (no fragments).
    """
    input_path = tmp_path / "empty_input.json"
    output_dir = tmp_path / "output"
    input_path.write_text("[]", encoding="utf-8")

    exit_code = run_ingestion.main(
        [
            "--input",
            str(input_path),
            "--output-dir",
            str(output_dir),
            "--skip-embeddings",
        ]
    )

    assert exit_code == 0, "Empty input should be treated as successful."

    corpus_files = list(output_dir.glob("corpus*.json"))
    assert len(corpus_files) == 1, "Should create exactly one corpus file"
    data = json.loads(corpus_files[0].read_text(encoding="utf-8"))
    assert data == []


def test_ingestion_embedding_error_fails_fast(tmp_path: Path, monkeypatch):
    """
    If the embeddings call fails, the CLI should:
      - exit with a non-zero code
      - not leave an embedded corpus file behind.
    """
    input_path = tmp_path / "input.json"
    input_path.write_text(json.dumps(EXCERPTS), encoding="utf-8")
    output_dir = tmp_path / "output"

    def fake_embed_fragments(*args, **kwargs):
        raise RuntimeError("Simulated embeddings API error")

    monkeypatch.setattr(pipeline_mod, "embed_fragments", fake_embed_fragments)

    exit_code = run_ingestion.main(
        [
            "--input",
            str(input_path),
            "--output-dir",
            str(output_dir),
        ]
    )

    assert exit_code != 0, "Ingestion should fail (non-zero exit) on embeddings API error."
    assert list(output_dir.glob("corpus_embedded*.json")) == []
    assert list(output_dir.glob("run_metadata*.json")) == []


def test_ingestion_unusable_output_path_returns_error(tmp_path: Path):
    """
    If the output directory cannot be created (a plain file is in the way),
    the CLI should exit with a non-zero code.
    """
    input_path = tmp_path / "input.json"
    input_path.write_text(json.dumps(EXCERPTS), encoding="utf-8")

    output_dir = tmp_path / "not_a_directory"
    output_dir.write_text("occupied", encoding="utf-8")

    exit_code = run_ingestion.main(
        [
            "--input",
            str(input_path),
            "--output-dir",
            str(output_dir),
            "--skip-embeddings",
        ]
    )

    assert exit_code != 0, "Ingestion should fail when the output path is unusable."
