"""
Model Generation Service for the AI structural model generator.

This module runs the full request pipeline: intent detection, the LLM call,
JSON extraction, topology and overlap repair, structure-type validation with
a correction round-trip, deterministic fallbacks, and, in edit mode,
boundary-condition and load preservation against the current model.

Validator faults are handled by one explicit fail-open seam (``_fail_open``):
a broken validator is logged and treated as "valid, unchanged" so a user
always receives a model. Parse failures are not validator faults; they send
the request to the procedural fallback tiers instead.

Usage:
    from src.ai.model_service import ModelGenerationService

    service = ModelGenerationService.from_env()
    model = service.generate_model("3層2スパンのラーメン構造")
    print(model.to_dict())
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional
import logging

from src.core.constants import DEFAULT_PORTAL_HEIGHT, DEFAULT_PORTAL_SPAN, DEFAULT_TRUSS_HEIGHT, DEFAULT_TRUSS_SPAN
from src.core.data_models import (
    BoundaryChangeIntent,
    LoadIntent,
    ModelParseError,
    StructuralModel,
    StructureDimensions,
    StructureType,
    TrussType,
    ValidationResult,
)
from src.fem.boundary_preservation import preserve_boundary_conditions
from src.fem.builders import (
    generate_basic_structure,
    generate_correct_frame_structure,
    generate_portal_frame,
    generate_warren_truss,
    minimal_frame,
    minimal_truss,
)
from src.fem.load_preservation import preserve_load_data
from src.fem.member_overlap import validate_and_fix_member_overlap
from src.fem.normalizer import normalize_model_boundaries
from src.fem.structure_validators import validate_structure
from src.fem.topology import validate_node_references

from .config import AIConfig
from .intent_detector import (
    detect_addition_mode,
    detect_boundary_change_intent,
    detect_load_edit_intent,
    detect_load_intent,
    detect_material_change_intent,
    detect_structure_dimensions,
    detect_structure_type,
    detect_truss_type,
    extract_height_from_prompt,
    extract_rise_from_prompt,
    extract_span_length_from_prompt,
)
from .prompts import (
    SYSTEM_PROMPT_BASE,
    create_beam_correction_prompt,
    create_edit_prompt,
    create_frame_correction_prompt,
    create_system_prompt,
    create_truss_correction_prompt,
    create_user_prompt,
)
from .providers import LLMMessage, LLMProvider, LLMProviderError, LLMResponse, RetryState
from .response_parser import ResponseParseError, parse_model_response

logger = logging.getLogger(__name__)

_PARSE_ERRORS = (ResponseParseError, ModelParseError)


@dataclass
class RequestContext:
    """Everything derived from a request before the LLM is called.

    Computed once so every stage sees the same dimensions and intents.
    """
    prompt: str
    mode: str
    current_model: Optional[StructuralModel]
    structure_type: StructureType
    truss_type: Optional[TrussType]
    dimensions: StructureDimensions
    load_intent: LoadIntent
    boundary_intent: BoundaryChangeIntent
    addition_mode: bool
    material_change: bool
    load_edit_intent: Optional[str]
    span_length: Optional[float] = None
    height: Optional[float] = None
    rise: Optional[float] = None

    @property
    def is_edit(self) -> bool:
        return self.mode == "edit" and self.current_model is not None


def _fail_open(stage: str, default: Any, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Run a validation stage; on an internal fault log it and return ``default``.

    Parse errors are re-raised: they mean the model is unusable, not that the
    stage is broken.
    """
    try:
        return func(*args, **kwargs)
    except _PARSE_ERRORS:
        raise
    except Exception:
        logger.exception(f"{stage} failed; continuing with the unchanged model")
        return default


def _unchanged(model: StructuralModel) -> ValidationResult:
    return ValidationResult(is_valid=True, fixed_model=model)


class ModelGenerationService:
    """Generates, validates and repairs structural models with an LLM.

    Attributes:
        config: AI configuration
        provider: LLM provider instance
    """

    def __init__(self, config: AIConfig, provider: Optional[LLMProvider] = None):
        """Initialize the service.

        Args:
            config: AI configuration
            provider: Optional pre-configured provider (creates new if None)
        """
        self.config = config
        self.provider = provider or config.create_provider()
        logger.info(f"ModelGenerationService initialized (model: {config.model})")

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "ModelGenerationService":
        return cls(AIConfig.from_env(env_file))

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def analyze_request(
        self,
        prompt: str,
        mode: str = "new",
        current_model: Optional[StructuralModel] = None,
    ) -> RequestContext:
        """Run every intent detector once for this request."""
        reference = current_model if mode == "edit" else None
        structure_type = detect_structure_type(prompt, reference)
        truss_type = detect_truss_type(prompt) if structure_type == StructureType.TRUSS else None
        return RequestContext(
            prompt=prompt,
            mode=mode,
            current_model=reference,
            structure_type=structure_type,
            truss_type=truss_type,
            dimensions=detect_structure_dimensions(prompt, reference),
            load_intent=detect_load_intent(prompt),
            boundary_intent=detect_boundary_change_intent(prompt) if reference else BoundaryChangeIntent(),
            addition_mode=reference is not None and detect_addition_mode(prompt),
            material_change=detect_material_change_intent(prompt),
            load_edit_intent=detect_load_edit_intent(prompt),
            span_length=extract_span_length_from_prompt(prompt),
            height=extract_height_from_prompt(prompt),
            rise=extract_rise_from_prompt(prompt),
        )

    def generate_model(
        self,
        prompt: str,
        mode: str = "new",
        current_model: Optional[StructuralModel] = None,
    ) -> StructuralModel:
        """Generate a validated model for ``prompt``.

        Args:
            prompt: User request
            mode: "new" or "edit"
            current_model: Model being edited (edit mode); never modified

        Returns:
            Final model with canonical boundary codes

        Raises:
            LLMProviderError: If the generation call exhausts every retry
        """
        ctx = self.analyze_request(prompt, mode, current_model)
        logger.info(
            f"Generating {ctx.structure_type.value} model (mode={mode}, "
            f"{ctx.dimensions.layers} layers x {ctx.dimensions.spans} spans"
            f"{', portal' if ctx.dimensions.is_portal_frame else ''})"
        )

        response = self._request_candidate(ctx)

        try:
            model = self._repair_candidate(response.content, ctx)
        except _PARSE_ERRORS as e:
            logger.warning(f"LLM output unusable ({e}); using procedural fallback")
            model = self._fallback_model(ctx)
        else:
            model = self._enforce_structure(model, ctx, response.retry_state)

        if ctx.is_edit:
            model = _fail_open(
                "Boundary preservation", model,
                preserve_boundary_conditions, ctx.current_model, model, ctx.boundary_intent,
            )
            model = _fail_open(
                "Load preservation", model,
                preserve_load_data, ctx.current_model, model, prompt,
            )

        model = normalize_model_boundaries(model)
        logger.info(f"Final model: {len(model.nodes)} nodes, {len(model.members)} members")
        return model

    def _request_candidate(self, ctx: RequestContext) -> LLMResponse:
        system_prompt = create_system_prompt(
            ctx.structure_type,
            truss_type=ctx.truss_type,
            dimensions=ctx.dimensions,
            load_intent=ctx.load_intent,
            mode=ctx.mode,
            span_length=ctx.span_length,
            height=ctx.height,
            rise=ctx.rise,
        )
        if ctx.is_edit:
            user_prompt = create_edit_prompt(
                ctx.prompt,
                ctx.current_model,
                ctx.boundary_intent,
                dimensions=ctx.dimensions,
                addition_mode=ctx.addition_mode,
                material_change=ctx.material_change,
                load_edit_intent=ctx.load_edit_intent,
            )
        else:
            user_prompt = create_user_prompt(ctx.prompt)

        messages = [
            LLMMessage(role="system", content=system_prompt),
            LLMMessage(role="user", content=user_prompt),
        ]
        response = self.provider.chat(
            messages=messages,
            policy=self.config.generation_policy,
            state=RetryState(),
        )
        logger.info(f"Generation call used {response.total_tokens} tokens")
        return response

    def _repair_candidate(self, text: str, ctx: RequestContext) -> StructuralModel:
        """Parse LLM text, then run topology and overlap repair.

        Raises:
            ResponseParseError: No JSON object in ``text``
            ModelParseError: Node list unusable
        """
        data = parse_model_response(text)

        topology = _fail_open("Topology validation", None, validate_node_references, data)
        if topology is None:
            model = StructuralModel.from_dict(data)
        else:
            model = topology.fixed_model
            if not topology.is_valid:
                logger.warning(f"Topology repaired: {len(topology.errors)} problem(s)")

        overlap = _fail_open(
            "Member overlap check", _unchanged(model),
            validate_and_fix_member_overlap, model, ctx.structure_type, ctx.truss_type,
        )
        return overlap.fixed_model

    def _validate(self, model: StructuralModel, ctx: RequestContext) -> ValidationResult:
        return _fail_open(
            f"{ctx.structure_type.value.title()} validation", _unchanged(model),
            validate_structure,
            model, ctx.prompt, ctx.structure_type, ctx.dimensions,
            ctx.current_model, ctx.truss_type,
        )

    def _enforce_structure(
        self,
        model: StructuralModel,
        ctx: RequestContext,
        state: RetryState,
    ) -> StructuralModel:
        """Validate by structure type; correct through the LLM or fall back."""
        result = self._validate(model, ctx)
        if result.is_valid:
            return result.fixed_model

        for error in result.errors:
            logger.warning(f"{ctx.structure_type.value} check: {error}")

        correction_prompt = self._correction_prompt(result, ctx)
        candidate = result.fixed_model
        corrected = self.call_ai_with_correction_prompt(correction_prompt, ctx, state)
        if corrected is not None:
            recheck = self._validate(corrected, ctx)
            if recheck.is_valid:
                logger.info("Correction accepted")
                return recheck.fixed_model
            logger.warning(f"Corrected model still has {len(recheck.errors)} problem(s)")
            candidate = recheck.fixed_model

        fallback = self._deterministic_model(ctx)
        if fallback is not None:
            logger.warning(f"Using procedural {ctx.structure_type.value} after failed correction")
            return fallback
        return candidate

    def _correction_prompt(self, result: ValidationResult, ctx: RequestContext) -> str:
        model = result.fixed_model
        if ctx.structure_type == StructureType.FRAME:
            return create_frame_correction_prompt(
                ctx.prompt, model, result.errors, ctx.dimensions,
                reference_model=ctx.current_model,
            )
        if ctx.structure_type == StructureType.TRUSS:
            return create_truss_correction_prompt(
                ctx.prompt, model, result.errors, ctx.truss_type or TrussType.DEFAULT,
                span_length=ctx.span_length, height=ctx.height,
            )
        return create_beam_correction_prompt(ctx.prompt, model, result.errors)

    def call_ai_with_correction_prompt(
        self,
        correction_prompt: str,
        ctx: RequestContext,
        state: Optional[RetryState] = None,
    ) -> Optional[StructuralModel]:
        """Ask the LLM for a corrected model.

        Uses the stricter correction policy and continues with the key that
        last succeeded. Returns None when the call or the parse fails, so the
        caller can fall back to procedural generation.
        """
        start = RetryState(key_index=state.key_index if state else 0)
        messages = [
            LLMMessage(role="system", content=SYSTEM_PROMPT_BASE),
            LLMMessage(role="user", content=correction_prompt),
        ]
        try:
            response = self.provider.chat(
                messages=messages,
                policy=self.config.correction_policy,
                state=start,
            )
        except LLMProviderError as e:
            logger.error(f"Correction call failed: {e}")
            return None

        try:
            return self._repair_candidate(response.content, ctx)
        except _PARSE_ERRORS as e:
            logger.warning(f"Correction response unusable: {e}")
            return None

    # ------------------------------------------------------------------
    # Fallbacks
    # ------------------------------------------------------------------

    def _deterministic_model(self, ctx: RequestContext) -> Optional[StructuralModel]:
        """Procedural model that satisfies the validator by construction, if one exists."""
        if ctx.structure_type == StructureType.FRAME:
            if ctx.dimensions.is_portal_frame:
                return generate_portal_frame(
                    height=ctx.height or DEFAULT_PORTAL_HEIGHT,
                    span=ctx.span_length or DEFAULT_PORTAL_SPAN,
                )
            return generate_correct_frame_structure(
                ctx.dimensions.layers, ctx.dimensions.spans, ctx.current_model,
            )
        if ctx.truss_type in (TrussType.WARREN, TrussType.CURVED_WARREN):
            return generate_warren_truss(
                height=ctx.height or DEFAULT_TRUSS_HEIGHT,
                span_length=ctx.span_length or DEFAULT_TRUSS_SPAN,
            )
        return None

    def _fallback_model(self, ctx: RequestContext) -> StructuralModel:
        """Model for an unparseable LLM response; never raises."""
        try:
            if ctx.structure_type == StructureType.FRAME:
                return self._deterministic_model(ctx)
            if ctx.structure_type == StructureType.TRUSS:
                return self._deterministic_model(ctx) or minimal_truss()
            return generate_basic_structure(ctx.dimensions)
        except Exception:
            logger.exception("Procedural fallback failed; returning minimal frame")
            return minimal_frame()
