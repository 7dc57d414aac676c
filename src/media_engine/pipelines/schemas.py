"""Analysis response schemas.

Each schema is sent to the vision model as a strict ``json_schema`` response
format and the reply is validated against the matching pydantic model. Field
names are part of the contract with the model and are kept as-is.
"""

from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from media_engine.adapters.llm.base import LLMResponse, ResponseSchema
from media_engine.domain.errors import AnalysisError

ModelT = TypeVar("ModelT", bound=BaseModel)

MAX_SEGMENTS = 3
FALLBACK_OBJECT = "Universal"


class ExerciseSegment(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    segment_number: int = Field(alias="segmentNumber")
    prompt: str
    narration: str
    exercise_name: str = Field(alias="exerciseName")
    instructions: str


class ExercisePlan(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_segments: int = Field(alias="totalSegments")
    segments: list[ExerciseSegment] = Field(min_length=1, max_length=MAX_SEGMENTS)


class FitnessAnalysis(BaseModel):
    """Scripted exercise demonstration: 1 to 3 ordered video segments."""

    model_config = ConfigDict(populate_by_name=True)

    identified_objects: list[str] = Field(alias="identifiedObjects")
    target_muscle_group: str = Field(alias="targetMuscleGroup")
    exercise_plan: ExercisePlan = Field(alias="exercisePlan")
    safety_notes: str = Field(alias="safetyNotes")


class VerseAnalysis(BaseModel):
    """Image prompt, narration script and the verse it quotes."""

    image_generation_prompt: str = Field(min_length=1)
    audio_script: str = Field(min_length=1)
    verse_reference: str


class ObjectRecognition(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    matched_object: str = Field(alias="matchedObject")


FITNESS_ANALYSIS_SCHEMA = ResponseSchema(
    name="fitness_analysis_response",
    schema={
        "type": "object",
        "required": ["identifiedObjects", "targetMuscleGroup", "exercisePlan", "safetyNotes"],
        "properties": {
            "identifiedObjects": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Objects in the image that can be used for exercise",
            },
            "targetMuscleGroup": {
                "type": "string",
                "description": "The muscle group the user wants to train",
            },
            "exercisePlan": {
                "type": "object",
                "required": ["totalSegments", "segments"],
                "properties": {
                    "totalSegments": {
                        "type": "number",
                        "description": "Number of video segments (1-3)",
                    },
                    "segments": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "required": [
                                "segmentNumber",
                                "prompt",
                                "narration",
                                "exerciseName",
                                "instructions",
                            ],
                            "properties": {
                                "segmentNumber": {"type": "number"},
                                "prompt": {"type": "string"},
                                "narration": {"type": "string"},
                                "exerciseName": {"type": "string"},
                                "instructions": {"type": "string"},
                            },
                            "additionalProperties": False,
                        },
                    },
                },
                "additionalProperties": False,
            },
            "safetyNotes": {"type": "string", "description": "Safety tips for the exercises"},
        },
        "additionalProperties": False,
    },
)

VERSE_ANALYSIS_SCHEMA = ResponseSchema(
    name="visual_theology_response",
    schema={
        "type": "object",
        "required": ["image_generation_prompt", "audio_script", "verse_reference"],
        "properties": {
            "image_generation_prompt": {"type": "string"},
            "audio_script": {"type": "string"},
            "verse_reference": {"type": "string"},
        },
        "additionalProperties": False,
    },
)


def object_recognition_schema(object_names: list[str]) -> ResponseSchema:
    """Recognition schema restricted to the library's object names."""
    names = ", ".join(f'"{name}"' for name in object_names)
    return ResponseSchema(
        name="object_recognition_response",
        schema={
            "type": "object",
            "required": ["matchedObject"],
            "properties": {
                "matchedObject": {
                    "type": "string",
                    "description": (
                        "The single best-matching object name. Must be exactly one of: "
                        f'{names}, or "{FALLBACK_OBJECT}" if none match.'
                    ),
                },
            },
            "additionalProperties": False,
        },
    )


def parse_analysis(response: LLMResponse, model: type[ModelT]) -> ModelT:
    """Validate an analysis reply.

    Raises:
        AnalysisError: If the model stopped for any reason other than normal
            completion, or the content does not match the schema.
    """
    if response.finish_reason != "stop":
        raise AnalysisError(f"Generation aborted: {response.finish_reason}")
    try:
        return model.model_validate_json(response.content)
    except ValidationError as e:
        raise AnalysisError(f"Failed to parse analysis response: {e.error_count()} errors") from e


def dump_analysis(analysis: BaseModel) -> dict[str, Any]:
    """Analysis payload as stored in the task result, with contract field names."""
    return analysis.model_dump(by_alias=True)
