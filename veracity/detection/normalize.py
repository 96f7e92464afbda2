"""
Upstream response normalization.

AI or Not answers with a different shape per media class. Each shape is a
pydantic model tagged with `kind`; `normalize_response` validates the raw JSON
against the tagged union and folds it into one `Verdict`, so nothing past this
module ever touches upstream field names.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

CONFIDENCE_QUANTUM = Decimal("0.0001")


class Score(BaseModel):
    model_config = ConfigDict(extra="allow")

    is_detected: bool = False
    confidence: float = 0.0


class AIGenerated(BaseModel):
    model_config = ConfigDict(extra="allow")

    verdict: Literal["ai", "human"]
    ai: Score
    human: Optional[Score] = None
    generator: dict[str, float] = Field(default_factory=dict)

    @field_validator("generator", mode="before")
    @classmethod
    def _flatten_generator(cls, value):
        # Newer payloads nest each label as {"is_detected": ..., "confidence": ...}
        if not value:
            return {}
        flat = {}
        for label, score in value.items():
            if isinstance(score, dict):
                score = score.get("confidence", 0.0)
            flat[label] = score
        return flat


class GeneratedReport(BaseModel):
    model_config = ConfigDict(extra="allow")

    ai_generated: AIGenerated


class VideoReport(BaseModel):
    model_config = ConfigDict(extra="allow")

    ai_video: Score


class _Response(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    created_at: Optional[str] = None


class ImageResponse(_Response):
    kind: Literal["image"]
    report: GeneratedReport


class AudioResponse(_Response):
    kind: Literal["audio"]
    report: GeneratedReport


class TextResponse(_Response):
    kind: Literal["text"]
    report: GeneratedReport


class VideoResponse(_Response):
    kind: Literal["video"]
    report: VideoReport


UpstreamResponse = Annotated[
    Union[ImageResponse, AudioResponse, TextResponse, VideoResponse],
    Field(discriminator="kind"),
]

_response_adapter = TypeAdapter(UpstreamResponse)


class Verdict(BaseModel):
    verdict: Literal["ai", "human"]
    confidence: Decimal
    detected_generator: Optional[str] = None
    generator_scores: dict[str, float] = Field(default_factory=dict)

    @property
    def confidence_str(self) -> str:
        return format_confidence(self.confidence)


def quantize_confidence(value) -> Decimal:
    """Clamp to [0, 1] and fix to 4 decimal places."""
    d = Decimal(str(value))
    d = min(max(d, Decimal(0)), Decimal(1))
    return d.quantize(CONFIDENCE_QUANTUM, rounding=ROUND_HALF_UP)


def format_confidence(value) -> str:
    return str(quantize_confidence(value))


def pick_generator(scores: Optional[dict]) -> Optional[str]:
    """Label with the highest positive score; first one wins on ties; None when nothing scored."""
    positive = [(label, score) for label, score in (scores or {}).items() if score > 0]
    if not positive:
        return None
    label, _ = max(positive, key=lambda item: item[1])
    return label


def parse_response(kind: str, payload: dict):
    return _response_adapter.validate_python({**payload, "kind": kind})


def normalize_response(kind: str, payload: dict) -> Verdict:
    """Fold a raw upstream payload for media class `kind` into a Verdict."""
    parsed = parse_response(kind, payload)

    if isinstance(parsed, VideoResponse):
        video = parsed.report.ai_video
        return Verdict(
            verdict="ai" if video.is_detected else "human",
            confidence=quantize_confidence(video.confidence),
            detected_generator=None,
        )

    generated = parsed.report.ai_generated
    return Verdict(
        verdict=generated.verdict,
        confidence=quantize_confidence(generated.ai.confidence),
        detected_generator=pick_generator(generated.generator),
        generator_scores=dict(generated.generator),
    )
