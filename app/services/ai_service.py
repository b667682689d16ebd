import re
import httpx
from typing import Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from app.core.config import settings
from app.core.errors import ServiceUnavailableError, UpstreamError, ValidationError
from app.core.logging import get_logger
from app.models.itinerary import HostVendor
from app.models.schemas import PriceComparison, PriceComparisonRequest, PriceRange, VendorDescriptionRequest

logger = get_logger("AI-GATEWAY")

MAX_MESSAGES = 50
MAX_MESSAGE_LENGTH = 16000
MAX_TOTAL_CONTENT_LENGTH = 100000

TRIP_PLANNER_SYSTEM_PROMPT = """You are JC, an expert local travel assistant specializing in Tulum, Mexico. \
You provide comprehensive, actionable recommendations like a knowledgeable local guide.

Assume all guests are in Tulum, Mexico unless stated otherwise.

At the start of every new conversation, before suggesting any activities, ask the guest when they are \
visiting and how many days they have. Group nearby activities together and always mention travel time \
between suggested activities.
{vendor_context}"""

COPYWRITER_SYSTEM_PROMPT = (
    "You are a professional copywriter specializing in luxury travel and vacation experiences. "
    "Write engaging, warm descriptions that make guests excited to book."
)


class AIGatewayClient:
    """
    Thin client for an OpenAI-compatible chat-completions endpoint.
    One attempt per call; failures surface as UpstreamError.
    """

    def __init__(self, url: Optional[str] = None, api_key: Optional[str] = None, model: Optional[str] = None, timeout: float = 60.0):
        self.url = url or settings.AI_GATEWAY_URL
        self.api_key = api_key or settings.AI_GATEWAY_API_KEY
        self.model = model or settings.AI_MODEL
        self.timeout = timeout

    def complete(self, messages: List[Dict[str, str]], temperature: Optional[float] = None) -> str:
        if not self.api_key:
            logger.error("AI gateway key is not configured")
            raise ServiceUnavailableError("Service configuration error")

        body = {"model": self.model, "messages": messages}
        if temperature is not None:
            body["temperature"] = temperature

        client = httpx.Client(timeout=self.timeout)
        try:
            response = client.post(
                self.url,
                json=body,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error("AI gateway error", status=status, body=e.response.text)
            if status == 429:
                raise UpstreamError("Rate limits exceeded, please try again later.")
            if status == 402:
                raise UpstreamError("AI usage limit reached.")
            raise UpstreamError(f"AI gateway error: {status}")
        except Exception as e:
            logger.error("AI gateway request failed", error=str(e))
            raise UpstreamError("AI gateway request failed")
        finally:
            client.close()

        content = (data.get("choices") or [{}])[0].get("message", {}).get("content")
        if not content:
            raise UpstreamError("No content generated")
        return content


def get_ai_client() -> AIGatewayClient:
    return AIGatewayClient()


def validate_messages(messages) -> List[Dict[str, str]]:
    """
    Check a chat transcript and trim it to the gateway limits.

    Over-long messages are truncated; when the total grows too large the
    oldest messages after the first are dropped so recent context survives.
    """
    if not isinstance(messages, list):
        raise ValidationError("Messages must be an array")
    if not messages:
        raise ValidationError("Messages array cannot be empty")
    if len(messages) > MAX_MESSAGES:
        raise ValidationError(f"Too many messages. Maximum is {MAX_MESSAGES}")

    validated: List[Dict[str, str]] = []
    total = 0
    for i, msg in enumerate(messages):
        if not isinstance(msg, dict):
            raise ValidationError(f"Message at index {i} is invalid")
        if msg.get("role") not in ("user", "assistant"):
            raise ValidationError(f"Invalid role at message {i}. Must be 'user' or 'assistant'")
        content = msg.get("content")
        if not isinstance(content, str):
            raise ValidationError(f"Content at message {i} must be a string")

        if len(content) > MAX_MESSAGE_LENGTH:
            content = content[:MAX_MESSAGE_LENGTH] + "... [truncated]"

        total += len(content)
        while total > MAX_TOTAL_CONTENT_LENGTH and len(validated) > 2:
            validated.pop(1)
            total = sum(len(m["content"]) for m in validated) + len(content)

        validated.append({"role": msg["role"], "content": content.strip()})

    return validated


def build_vendor_context(host_vendors: List[HostVendor]) -> str:
    if not host_vendors:
        return ""
    lines = []
    for v in host_vendors:
        duration = f"Duration: {v.duration}" if v.duration and v.duration != "N/A" else "Duration: Flexible (no time limit)"
        max_guests = f" | Max Guests: {v.max_guests}" if v.max_guests else ""
        included = ", ".join(v.included) or "Contact for details"
        lines.append(
            f'- "{v.name}" (ID: {v.id}, Category: {v.category}) by {v.vendor}\n'
            f"  Description: {v.description}\n"
            f"  Price: ${v.price} per person | {duration}{max_guests}\n"
            f"  Rating: {v.rating}/5\n"
            f"  What's Included: {included}\n"
            f"  Booking Link: /experience/{v.id}"
        )
    return (
        "\n\nHOST'S PREFERRED VENDORS:\nThe guest's host has these preferred vendors:\n"
        + "\n\n".join(lines)
        + "\n\nOnly share a booking link once the guest has picked one of these vendors."
    )


def trip_planner_chat(ai: AIGatewayClient, messages, host_vendors: List[HostVendor]) -> str:
    validated = validate_messages(messages)
    system = TRIP_PLANNER_SYSTEM_PROMPT.format(vendor_context=build_vendor_context(host_vendors))
    logger.info("Trip planner chat", messages=len(validated), host_vendors=len(host_vendors))
    return ai.complete([{"role": "system", "content": system}, *validated])


def generate_vendor_description(ai: AIGatewayClient, request: VendorDescriptionRequest) -> str:
    prompt = (
        f'Write a compelling, professional description for a {request.category} vendor called "{request.name}".\n\n'
        f"Details:\n"
        f"- Price: ${request.price_per_person} per person\n"
        f"- Duration: {request.duration}\n"
        f"- Maximum guests: {request.max_guests}\n"
        f"- What's included: {', '.join(request.included_items) or 'Not specified'}\n\n"
        "Write 2-3 engaging paragraphs (about 150 words total) that capture what makes this experience special "
        "and use warm, inviting language that appeals to vacation rental guests.\n\n"
        "Don't include the price or specifics in the description."
    )
    logger.info("Generating description", name=request.name)
    return ai.complete([
        {"role": "system", "content": COPYWRITER_SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ])


PRICE_EXPERT_SYSTEM_PROMPT = """You are a local travel expert specializing in {location}, Mexico tourism and experiences.
You provide accurate market price comparisons for tourist experiences and services.
Always be helpful and provide realistic price ranges based on current market conditions.
Focus on giving practical, actionable information that helps travelers make informed decisions."""

PRICE_COMPARISON_PROMPT = """I'm looking at a "{category}" experience called "{name}" in {location}, Mexico that costs ${price} per person{duration}.

Please provide a market price comparison with the following information:
1. The typical price range for similar {category} experiences in {location}
2. Whether this price is below average, average, or above average for the area
3. 2-3 comparable experiences/services in {location} with their typical price ranges
4. Any factors that might justify price differences (quality, inclusions, exclusivity)

Format your response as JSON with this structure:
{{
  "priceRange": {{ "low": number, "high": number }},
  "priceAssessment": "below_average" | "average" | "above_average" | "premium",
  "assessmentText": "brief explanation of the price positioning",
  "comparables": [
    {{ "name": "comparable experience name", "priceRange": "price range string", "notes": "brief note" }}
  ],
  "marketInsight": "1-2 sentence insight about the {category} market in {location}"
}}"""

JSON_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


def fallback_price_comparison(request: PriceComparisonRequest) -> PriceComparison:
    return PriceComparison(
        price_range=PriceRange(low=round(request.current_price * 0.7), high=round(request.current_price * 1.3)),
        price_assessment="average",
        assessment_text="Based on typical market rates for similar experiences.",
        comparables=[],
        market_insight=f"{request.category} experiences in {request.location} vary based on quality and inclusions.",
    )


def parse_price_comparison(content: str, request: PriceComparisonRequest) -> PriceComparison:
    """Reads the model's JSON, fenced or bare. Unreadable replies get a +/-30% estimate."""
    match = JSON_FENCE.search(content)
    raw = (match.group(1) if match else content).strip()
    try:
        return PriceComparison.model_validate_json(raw)
    except PydanticValidationError as e:
        logger.warning("Unparseable price comparison, using estimate", error=str(e))
        return fallback_price_comparison(request)


def compare_price(ai: AIGatewayClient, request: PriceComparisonRequest) -> PriceComparison:
    if not request.category.strip() or not request.experience_name.strip():
        raise ValidationError("Missing required fields: category, experienceName, currentPrice")

    prompt = PRICE_COMPARISON_PROMPT.format(
        category=request.category,
        name=request.experience_name,
        location=request.location,
        price=f"{request.current_price:g}",
        duration=f" for {request.duration}" if request.duration else "",
    )
    logger.info("Price comparison", category=request.category, price=request.current_price)
    content = ai.complete(
        [
            {"role": "system", "content": PRICE_EXPERT_SYSTEM_PROMPT.format(location=request.location)},
            {"role": "user", "content": prompt},
        ],
        temperature=0.3,
    )
    return parse_price_comparison(content, request)
