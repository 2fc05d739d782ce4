"""Tests for spatial layout directives on steps 4 and 5."""

from workflow.spatial import (
    ENVIRONMENT_NOTES,
    SCENE_NOTES,
    SPATIAL_PROMPT_ADDITION,
    SPATIAL_VIEW_TYPE,
    SpatialEnhancer,
)


def _environments():
    return {"environments": [
        {"name": "Greenhouse", "description": "A glass greenhouse full of ferns"},
        {"name": "Pond"},
    ]}


def _chapters():
    return {"chapters": [{
        "chapterNumber": 1,
        "scenes": [{
            "sceneNumber": 1,
            "title": "Planting",
            "text": "Mira kneels by the seed tray",
            "characters": ["Mira", "Grandma"],
            "environment": "Greenhouse",
            "illustrationNotes": "Warm morning light",
        }],
    }]}


class TestEnvironments:
    def test_adds_layout_fields(self):
        result = SpatialEnhancer().enhance(4, _environments())
        greenhouse, pond = result["environments"]
        assert greenhouse["spatialViewType"] == SPATIAL_VIEW_TYPE
        assert greenhouse["spatialPromptAddition"] == SPATIAL_PROMPT_ADDITION
        assert "SPATIAL CONTEXT: This Greenhouse environment" in greenhouse["enhancedDescription"]
        assert greenhouse["description"] == "A glass greenhouse full of ferns"
        assert result["spatialEnhancementApplied"] is True
        assert result["spatialNotes"] == ENVIRONMENT_NOTES

    def test_no_description_no_enhanced_description(self):
        pond = SpatialEnhancer().enhance(4, _environments())["environments"][1]
        assert "enhancedDescription" not in pond
        assert pond["spatialViewType"] == SPATIAL_VIEW_TYPE

    def test_idempotent(self):
        enhancer = SpatialEnhancer()
        once = enhancer.enhance(4, _environments())
        twice = enhancer.enhance(4, once)
        assert twice == once

    def test_stacked_directive_stripped_from_description(self):
        once = SpatialEnhancer().enhance(4, _environments())
        env = once["environments"][0]
        env["description"] = env["enhancedDescription"]
        again = SpatialEnhancer().enhance(4, once)["environments"][0]
        assert again["enhancedDescription"].count("SPATIAL CONTEXT:") == 1

    def test_input_not_mutated(self):
        payload = _environments()
        SpatialEnhancer().enhance(4, payload)
        assert "spatialViewType" not in payload["environments"][0]

    def test_payload_without_environments_untouched(self):
        payload = {"illustratorStyleGuide": "watercolor"}
        assert SpatialEnhancer().enhance(4, payload) is payload


class TestScenes:
    def test_positions_scenes(self):
        result = SpatialEnhancer().enhance(5, _chapters())
        scene = result["chapters"][0]["scenes"][0]
        assert scene["prescriptivePositioning"] is True
        assert "SCENE: Mira kneels by the seed tray" in scene["spatialInstructions"]
        assert "CHARACTERS: Mira, Grandma" in scene["spatialInstructions"]
        assert "ENVIRONMENT: Greenhouse" in scene["spatialInstructions"]
        assert scene["enhancedImagePrompt"].startswith("Warm morning light")
        assert result["prescriptivePositioningApplied"] is True
        assert result["spatialNotes"] == SCENE_NOTES

    def test_idempotent(self):
        enhancer = SpatialEnhancer()
        once = enhancer.enhance(5, _chapters())
        assert enhancer.enhance(5, once) == once

    def test_scene_without_notes(self):
        payload = {"chapters": [{"chapterNumber": 1, "scenes": [{"sceneNumber": 1}]}]}
        scene = SpatialEnhancer().enhance(5, payload)["chapters"][0]["scenes"][0]
        assert "enhancedImagePrompt" not in scene
        assert "SCENE: Scene description" in scene["spatialInstructions"]

    def test_other_steps_untouched(self):
        payload = _chapters()
        assert SpatialEnhancer().enhance(3, payload) is payload
