import json
from pathlib import Path

import pytest

from src.dream_pipeline import pipeline as pipeline_mod
from src.dream_pipeline.scripts import validate_corpus as validate_script
import src.run_ingestion as run_ingestion_cli

FIXTURE = Path(__file__).parent / "fixtures" / "raw_fragments_small.json"


def test_ingestion_and_validation_on_fixture(tmp_path, monkeypatch, capsys):
    """
    Full integration:
      - run the ingestion CLI on a small fixture file
      - run validate_corpus.py against the produced file
      - assert both succeed
    """
    fixture_dst = tmp_path / "raw_fragments_small.json"
    fixture_dst.write_text(FIXTURE.read_text(encoding="utf-8"), encoding="utf-8")

    output_dir = tmp_path / "corpus_output"

    def fake_embed_texts_with_retry(texts, **kwargs):
        # simple deterministic vectors, dim=3
        return [[1.0, 0.0, 0.0] for _ in texts]

    monkeypatch.setattr(pipeline_mod, "embed_texts_with_retry", fake_embed_texts_with_retry)

    exit_code = run_ingestion_cli.main(
        [
            "--input",
            str(fixture_dst),
            "--output-dir",
            str(output_dir),
        ]
    )
    assert exit_code == 0
    assert output_dir.exists()

    # The embedded corpus carries a run timestamp
    embedded_files = list(output_dir.glob("corpus_embedded_*.json"))
    assert len(embedded_files) == 1, "No embedded corpus generated"
    embedded_file = embedded_files[0]

    records = json.loads(embedded_file.read_text(encoding="utf-8"))
    by_id = {r["id"]: r for r in records}
    assert by_id["mary-sleep-rem-01"]["persona"] == "mary"
    assert "persona" not in by_id["shared-forest-01"]
    assert by_id["shared-forest-01"]["contentType"] == "symbol"
    assert "&quot;" not in by_id["freud-interp-house-01"]["content"]

    args = [
        "--path",
        str(embedded_file),
        "--expected-dim",
        "3",
    ]
    with pytest.raises(SystemExit) as excinfo:
        validate_script.main(argv=args)
    assert excinfo.value.code == 0

    captured = capsys.readouterr()
    assert "VALIDATION PASSED" in captured.out
    assert "Total fragments: 4" in captured.out
