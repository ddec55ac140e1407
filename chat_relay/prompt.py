"""System prompt assembly from the persona and client-supplied restaurant records."""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, Field, validator

from .config import RelayConfig


class RestaurantRecord(BaseModel):
    name: str = Field("", alias="restaurant")
    location: str = ""
    food_type: List[str] = Field(default_factory=list, alias="foodType")
    food_menu: List[str] = Field(default_factory=list, alias="foodMenu")
    stars: float = 0
    reviews: List[str] = Field(default_factory=list)

    @validator("food_type", "food_menu", "reviews", pre=True)
    def _as_list(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value else []
        return [str(item) for item in value]

    @validator("stars", pre=True)
    def _as_rating(cls, value):
        try:
            return float(value)
        except (TypeError, ValueError):
            return 0

    @validator("name", "location", pre=True)
    def _as_text(cls, value):
        return "" if value is None else str(value)


def format_record(record: RestaurantRecord) -> str:
    menu = ", ".join(record.food_menu)
    reviews = "; ".join(record.reviews[:2])
    return f"{record.name} ({record.location}): {menu} - {record.stars:g}⭐ - Reviews: {reviews}"


def build_context(records: Optional[Sequence[RestaurantRecord]]) -> str:
    """One line per restaurant; empty when no records were supplied."""
    if not records:
        return ""
    return "\n".join(format_record(record) for record in records)


def build_system_prompt(config: RelayConfig, records: Optional[Sequence[RestaurantRecord]] = None) -> str:
    context = build_context(records)
    data_block = f"Current food data:\n{context}\n" if context else ""
    return f"{config.persona_prompt}\n\n{data_block}\n\n{config.response_guidelines}"


def build_messages(
    system_prompt: str,
    history: Sequence[Dict[str, str]],
    new_messages: Sequence[Dict[str, str]],
) -> List[Dict[str, str]]:
    """[system] + stored history + incoming messages, dropping client-sent system entries."""
    prompt: List[Dict[str, str]] = [{"role": "system", "content": system_prompt}]
    prompt.extend(history)
    prompt.extend(msg for msg in new_messages if msg.get("role") != "system")
    return prompt
