"""Spatial layout directives appended to environment and scene prompts.

Environment plates (step 4) are asked for a top-down view with placement
zones, and scenes (step 5) get prescriptive character positioning so the
illustrator places characters consistently inside those plates. Everything
here is pure string templating over the payload dict.
"""

import copy
from typing import Any

SPATIAL_VIEW_TYPE = "top-down-with-detail"

ENVIRONMENT_NOTES = (
    "Environments enhanced with top-down spatial layout requirements "
    "for accurate character placement"
)
SCENE_NOTES = (
    "Scenes enhanced with prescriptive character positioning requirements "
    "to prevent spatial inconsistencies"
)

SPATIAL_PROMPT_ADDITION = """SPATIAL LAYOUT REQUIREMENTS:
- Create from a top-down or elevated isometric view showing complete spatial relationships
- Include clear zones for character placement (seating areas, walkways, interaction points)
- Show architectural accuracy with proper proportions and scale references
- Define clear sight lines and accessibility paths
- Include spatial reference points for accurate character positioning

ZONE DEFINITION: Clearly define functional areas within this environment:
- Seating/resting areas with specific positions
- Movement corridors and pathways
- Interaction zones (doors, windows, furniture)
- Scale references for character placement
- Clear boundaries between different functional areas

This environment will serve as a spatial foundation for precise character placement in scenes."""

_SPATIAL_CONTEXT_MARKER = "SPATIAL CONTEXT:"

_SPATIAL_CONTEXT = """SPATIAL CONTEXT: This {name} environment needs comprehensive spatial layout visibility. Show the complete space from an elevated perspective that reveals:
- All functional zones and their relationships
- Clear pathways and access points
- Seating arrangements and interaction areas
- Proper scale and proportional relationships
- Environmental elements that characters can interact with

The view should provide enough spatial information for characters to be placed accurately and logically in subsequent scene compositions."""

_POSITIONING_MARKER = "SPATIAL POSITIONING CRITICAL REQUIREMENTS:"

_POSITIONING_DIRECTIVE = """SPATIAL POSITIONING CRITICAL REQUIREMENTS:
- Use EXACT positioning language (specific seat numbers, precise locations)
- Characters must interact realistically with environment elements
- Show proper scale relationships between characters and environment
- Validate that all positions are physically possible and logical
- Characters should appear naturally integrated, not artificially placed

PRESCRIPTIVE SCENE COMPOSITION: Use the environment as a spatial foundation and place each character in their specified, realistic position within that space."""

_SCENE_INSTRUCTIONS = """PRESCRIPTIVE CHARACTER POSITIONING:
When creating this scene, be extremely specific about character placement:

SCENE: {scene_text}
{scene_context}
POSITIONING REQUIREMENTS:
- Specify exact locations within the environment (e.g., "sitting in airplane seat 12A", "standing in the aisle between rows 5 and 6")
- Define character poses and body language clearly
- Describe what each character is touching, leaning on, or interacting with
- Specify facing directions and eye contact between characters
- Ensure all positions are physically possible and spatially consistent

SPATIAL VALIDATION:
- Characters cannot float or be placed in impossible positions
- All interactions with environment must be realistic (sitting IN seats, not ON trays)
- Character scale must be appropriate for the environment
- Multiple characters must have logical spatial relationships

This prescriptive approach prevents spatial inconsistencies and ensures realistic, believable scene composition."""


def _strip_after(text: str, marker: str) -> str:
    """Drop a previously appended directive so re-applying never stacks it."""
    idx = text.find(marker)
    if idx == -1:
        return text
    return text[:idx].rstrip()


class SpatialEnhancer:
    """Adds spatial layout directives to step 4 and step 5 payloads."""

    def enhance(self, step_number: int, payload: dict[str, Any]) -> dict[str, Any]:
        if step_number == 4:
            return self.enhance_environments(payload)
        if step_number == 5:
            return self.enhance_scenes(payload)
        return payload

    def enhance_environments(self, payload: dict[str, Any]) -> dict[str, Any]:
        environments = payload.get("environments")
        if not isinstance(environments, list):
            return payload

        result = copy.deepcopy(payload)
        enhanced = []
        for env in result["environments"]:
            if not isinstance(env, dict):
                enhanced.append(env)
                continue
            env["spatialViewType"] = SPATIAL_VIEW_TYPE
            env["spatialPromptAddition"] = SPATIAL_PROMPT_ADDITION
            description = env.get("description")
            if isinstance(description, str) and description.strip():
                base = _strip_after(description, _SPATIAL_CONTEXT_MARKER)
                env["description"] = base
                env["enhancedDescription"] = (
                    f"{base}\n\n{_SPATIAL_CONTEXT.format(name=env.get('name') or 'story')}"
                )
            enhanced.append(env)

        result["environments"] = enhanced
        result["spatialEnhancementApplied"] = True
        result["spatialNotes"] = ENVIRONMENT_NOTES
        return result

    def enhance_scenes(self, payload: dict[str, Any]) -> dict[str, Any]:
        chapters = payload.get("chapters")
        if not isinstance(chapters, list):
            return payload

        result = copy.deepcopy(payload)
        for chapter in result["chapters"]:
            if not isinstance(chapter, dict) or not isinstance(chapter.get("scenes"), list):
                continue
            chapter["scenes"] = [
                self._position_scene(scene) if isinstance(scene, dict) else scene
                for scene in chapter["scenes"]
            ]

        result["prescriptivePositioningApplied"] = True
        result["spatialNotes"] = SCENE_NOTES
        return result

    def _position_scene(self, scene: dict[str, Any]) -> dict[str, Any]:
        context_lines = []
        if scene.get("characters"):
            context_lines.append(f"CHARACTERS: {', '.join(str(c) for c in scene['characters'])}")
        if scene.get("environment"):
            context_lines.append(f"ENVIRONMENT: {scene['environment']}")
        scene_context = "".join(f"{line}\n" for line in context_lines)

        scene["prescriptivePositioning"] = True
        scene["spatialInstructions"] = _SCENE_INSTRUCTIONS.format(
            scene_text=scene.get("text") or scene.get("content") or "Scene description",
            scene_context=scene_context,
        )

        notes = scene.get("illustrationNotes")
        if isinstance(notes, str) and notes.strip():
            base = _strip_after(notes, _POSITIONING_MARKER)
            scene["illustrationNotes"] = base
            scene["enhancedImagePrompt"] = f"{base}\n\n{_POSITIONING_DIRECTIVE}"
        return scene
