"""Pre-execution guardrails: task validation and the clarification predicate."""

from dataclasses import dataclass, field

from ..config import get_site_catalog, settings
from ..models import TASK_TYPE, ParsedTask

# Values above this are almost certainly a parsing mistake
MAX_PRICE_SANITY_CEILING = 100_000
LOW_CONFIDENCE_WARNING = 0.7


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class ClarificationResult:
    needs_clarification: bool
    questions: list[str] = field(default_factory=list)


def _min_confidence(override: float | None) -> float:
    return settings.agent.min_confidence if override is None else override


def validate_task(parsed: ParsedTask, min_confidence: float | None = None) -> ValidationResult:
    """Check a parsed task for completeness and confidence.

    Every rule is evaluated so the caller sees all violations at once.
    """
    errors: list[str] = []
    warnings: list[str] = []
    threshold = _min_confidence(min_confidence)

    if parsed.task_type != TASK_TYPE:
        errors.append(f"Unsupported task type: {parsed.task_type}")

    product = parsed.product
    if not product.brand and not product.model:
        errors.append("Either brand or model must be specified to search for a product")
        if not product.category:
            warnings.append("No brand, model or category given; the search scope is very broad")

    max_price = parsed.constraints.max_price
    if max_price is not None:
        if max_price <= 0:
            errors.append("Maximum price must be a positive number")
        elif max_price > MAX_PRICE_SANITY_CEILING:
            warnings.append(f"Maximum price {max_price} is unusually high; please double-check it")

    sources = parsed.sources
    if not sources.mode:
        errors.append("A source mode must be specified (google, specific_sites or direct_url)")
    elif sources.mode == "specific_sites":
        if not sources.sites:
            errors.append("At least one site must be specified when searching specific sites")
        else:
            known = get_site_catalog()
            for site in sources.sites:
                if site.lower() not in known:
                    warnings.append(f"Site '{site}' is not in the known-site catalog; generic extraction will be attempted")
    elif sources.mode == "direct_url" and not sources.url:
        errors.append("A URL must be provided for direct URL mode")

    confidence = parsed.confidence
    if not 0 <= confidence <= 1:
        errors.append(f"Confidence must be between 0 and 1, got {confidence}")
    elif confidence < threshold:
        errors.append(f"Confidence {confidence:.2f} is below the minimum of {threshold:.2f}")
    elif confidence < LOW_CONFIDENCE_WARNING:
        warnings.append(f"Confidence {confidence:.2f} is low; results may not match the request")

    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)


def needs_clarification(parsed: ParsedTask, min_confidence: float | None = None) -> ClarificationResult:
    """Decide whether to ask the user for more detail before doing anything else."""
    questions: list[str] = []

    if not parsed.product.brand and not parsed.product.model:
        questions.append("What brand or specific product model are you looking for?")

    if parsed.confidence < _min_confidence(min_confidence):
        questions.append("Could you describe the product in more detail (brand, model, color or size)?")

    if parsed.sources.mode == "specific_sites" and not parsed.sources.sites:
        questions.append("Which websites should I check for prices?")

    return ClarificationResult(needs_clarification=bool(questions), questions=questions)


def format_validation_errors(result: ValidationResult) -> str:
    if result.valid and not result.warnings:
        return "Task is valid"

    lines = []
    if result.errors:
        lines.append("Errors:")
        lines.extend(f"  - {e}" for e in result.errors)
    if result.warnings:
        lines.append("Warnings:")
        lines.extend(f"  - {w}" for w in result.warnings)
    return "\n".join(lines)
