# app/services/itinerary_builder.py
import re
from typing import Dict, List, Optional

from app.core.logging import get_logger
from app.models.itinerary import ChatMessage, DayPlan, GeneratedItinerary, TripWindow
from app.services.ai_service import AIGatewayClient, TRIP_PLANNER_SYSTEM_PROMPT

logger = get_logger("GENERATE-ITINERARY")

GENERATE_ITINERARY_PROMPT = """Please create a complete day-by-day itinerary for my {days}-day trip{destination} \
from {start} to {end}. For each activity, include:
1. **Time** (morning, afternoon, evening with specific times)
2. **Activity name and location**
3. **Duration** (how long the activity takes)
4. **What's Included** (equipment, guides, meals, etc.)
5. **What to Bring** (sunscreen, water, camera, etc.)
6. **Travel Info** (distance and travel time from previous activity)

Format each day with a heading that starts with "Day 1", "Day 2", etc. and organize activities \
in a logical sequence considering travel times between locations."""

# "Day 3", "## Day 3: Ruins & Cenotes", "**Day 3 - Beach**"
DAY_HEADING = re.compile(r"^[#* \t]*Day[ \t]+(\d{1,2})\b[ \t:.\-–—*]*(.*?)[* \t]*$", re.IGNORECASE | re.MULTILINE)


def split_days(text: str) -> Dict[int, Dict[str, str]]:
    """
    Split generated text into {day_number: {"title", "content"}} blocks.
    A repeated day heading keeps its first block.
    """
    sections: Dict[int, Dict[str, str]] = {}
    matches = list(DAY_HEADING.finditer(text))
    for i, match in enumerate(matches):
        day = int(match.group(1))
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        if day in sections:
            continue
        sections[day] = {
            "title": match.group(2).strip() or None,
            "content": text[match.end():end].strip(),
        }
    return sections


def build_itinerary_days(text: str, window: TripWindow) -> List[DayPlan]:
    """
    Turn generated text into exactly ``window.days`` dated day plans.
    Days the model skipped come back empty; days beyond the window are dropped.
    """
    sections = split_days(text)
    day_plans: List[DayPlan] = []

    for day_idx in range(1, window.days + 1):
        section = sections.get(day_idx, {})
        day_plans.append(DayPlan(
            day=day_idx,
            planned_date=window.date_for_day(day_idx),
            title=section.get("title"),
            content=section.get("content", ""),
        ))

    return day_plans


def generate_itinerary(ai: AIGatewayClient, window: TripWindow, destination: Optional[str], messages: List[ChatMessage]) -> GeneratedItinerary:
    """
    Generate a day-by-day itinerary for the trip window, continuing the chat if one is given.
    """
    prompt = GENERATE_ITINERARY_PROMPT.format(
        days=window.days,
        destination=f" to {destination}" if destination else "",
        start=window.start_date.isoformat(),
        end=window.end_date.isoformat(),
    )
    logger.info("Generating itinerary", days=window.days, destination=destination, history=len(messages))

    conversation = [{"role": "system", "content": TRIP_PLANNER_SYSTEM_PROMPT.format(vendor_context="")}]
    conversation += [{"role": m.role, "content": m.content} for m in messages]
    conversation.append({"role": "user", "content": prompt})

    text = ai.complete(conversation)
    plan = build_itinerary_days(text, window)

    return GeneratedItinerary(
        destination=destination,
        start_date=window.start_date,
        end_date=window.end_date,
        total_days=len(plan),
        plan=plan,
    )
