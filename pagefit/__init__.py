"""pagefit - space allocation for compact study documents."""

__version__ = "0.1.0"

from .content_utilization import ContentUtilizationService
from .similarity import SimilarityScorer
from .space_advisor import SpaceAdvisor
from .space_calculator import SpaceCalculationService
from .models import AllocationConfig, SpaceConstraints, ReferenceFormatAnalysis, Topic, SubTopic, TopicSelection
