from src.dream_pipeline.themes import DEFAULT_THEMES, ConceptMapper


def test_owl_and_forest_concepts_in_input_order():
    mapping = ConceptMapper().map_themes_to_concepts(["forest", "owl"])

    assert mapping.concepts == [
        "Collective Unconscious",
        "Descent into the Unknown",
        "Great Mother",
        "Wise Old Man",
        "Nocturnal Wisdom",
        "Self",
    ]
    assert len(mapping.hints) == 2
    assert mapping.hints[0].startswith("The dark forest")


def test_shared_concepts_are_not_duplicated():
    mapping = ConceptMapper().map_themes_to_concepts(["owl", "wisdom"])

    assert mapping.concepts.count("Wise Old Man") == 1
    assert mapping.concepts.count("Self") == 1
    assert "Individuation" in mapping.concepts


def test_unknown_codes_contribute_nothing():
    mapper = ConceptMapper()

    assert mapper.map_themes_to_concepts(["no_such_theme"]).concepts == []
    assert mapper.concepts_for("no_such_theme") == []
    assert mapper.approach_for("no_such_theme") is None
    assert mapper.map_themes_to_concepts([]).hints == []


def test_themes_for_concept():
    themes = ConceptMapper().themes_for_concept("Wise Old Man")

    assert themes == ["owl", "wisdom"]


def test_infer_from_content():
    inference = ConceptMapper().infer_from_content(
        "A serpent coiled in the shadow of the woods, a figure of the repressed."
    )

    assert "Shadow" in inference.concepts
    assert {"snake", "forest", "shadow"} <= set(inference.themes)
    assert inference.context.startswith("Content discusses Shadow")


def test_infer_from_empty_content():
    inference = ConceptMapper().infer_from_content("   ")

    assert inference.concepts == []
    assert inference.themes == []
    assert inference.context == ""


def test_custom_mappings_replace_defaults():
    mapper = ConceptMapper(mappings={})

    assert mapper.map_themes_to_concepts(["owl"]).concepts == []


def test_default_theme_catalogue_codes_are_mapped():
    mapper = ConceptMapper()

    assert {t.code for t in DEFAULT_THEMES} == set(mapper.mappings)
