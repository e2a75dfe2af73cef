"""Loading of JSON request and configuration files into engine models."""

import json
import logging
from pathlib import Path
from typing import List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, Field, ValidationError

from .exceptions import InputFormatError
from .models import (
    AllocationConfig,
    PagefitModel,
    ReferenceFormatAnalysis,
    SubtopicSelection,
    Topic,
    TopicSelection,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class AllocationRequest(PagefitModel):
    """Everything a single engine call may need, as read from a request file."""

    topics: List[Topic] = Field(default_factory=list, description="Candidate topics")
    selection: List[TopicSelection] = Field(
        default_factory=list, description="Currently selected topics"
    )
    reference: Optional[ReferenceFormatAnalysis] = Field(
        default=None, description="Reference document statistics"
    )
    overflow_amount: Optional[float] = Field(
        default=None, ge=0, description="Space to recover when reducing content"
    )

    def selected_topic_ids(self) -> List[str]:
        return [entry.topic_id for entry in self.selection]

    def selected_subtopics(self) -> List[SubtopicSelection]:
        return [
            SubtopicSelection(topic_id=entry.topic_id, subtopic_ids=entry.subtopic_ids)
            for entry in self.selection
        ]

    class Config:
        """Pydantic configuration."""

        json_schema_extra = {
            "example": {
                "topics": [
                    {"id": "t1", "title": "Limits", "priority": "high", "estimatedSpace": 400}
                ],
                "selection": [
                    {"topicId": "t1", "subtopicIds": [], "priority": "high", "estimatedSpace": 400}
                ],
                "reference": {
                    "contentDensity": 9000,
                    "topicCount": 6,
                    "averageTopicLength": 700,
                    "organizationStyle": "hierarchical",
                    "layoutPattern": "single-column"
                },
                "overflowAmount": None
            }
        }


def _load_json_model(path: Union[str, Path], model: Type[ModelT]) -> ModelT:
    path = Path(path)

    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise InputFormatError("File not found", source=path) from e
    except OSError as e:
        raise InputFormatError(f"Could not read file: {e}", source=path) from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise InputFormatError(f"Invalid JSON at line {e.lineno}, column {e.colno}: {e.msg}", source=path) from e

    if not isinstance(data, dict):
        raise InputFormatError("Expected a JSON object at the top level", source=path)

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise InputFormatError(
            f"Invalid {model.__name__}",
            source=path,
            errors=e.errors(),
        ) from e


def load_request(path: Union[str, Path]) -> AllocationRequest:
    """
    Load an allocation request from a JSON file.

    Keys may be camelCase or snake_case.

    Args:
        path: Path to the request file

    Returns:
        Parsed AllocationRequest

    Raises:
        InputFormatError: If the file is missing, is not valid JSON, or does
            not match the request schema
    """
    request = _load_json_model(path, AllocationRequest)
    logger.info(
        f"Loaded request from {path}: {len(request.topics)} topic(s), "
        f"{len(request.selection)} selected"
    )
    return request


def load_config(path: Union[str, Path]) -> AllocationConfig:
    """
    Load allocation tuning constants from a JSON file.

    Raises:
        InputFormatError: If the file cannot be parsed into AllocationConfig
    """
    config = _load_json_model(path, AllocationConfig)
    logger.debug(f"Loaded allocation config from {path}")
    return config
